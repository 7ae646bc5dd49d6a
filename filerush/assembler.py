import asyncio
import logging
from typing import AsyncIterator, BinaryIO, Callable, Optional, Union

from .typehints import Connection, Sink
from .transfer.sink import TransportSink
from .transfer.chunks import AsyncFile
from .transfer.streaming import CHUNK_SIZE
from .utils.httputils import render_chunk, LAST_CHUNK
from .execution.pools import BoundedWorkerPool
from .entities import Response, BodyProducer, StrategyResult, Chunk
from .exceptions import ClientDisconnectedError, TransferTimeoutError, TransferIOError

logger = logging.getLogger(__name__)

OCTET_STREAM = 'application/octet-stream'

# in-memory buffers are written by slices, so a stalled client is detected
# by a drain timeout and transport never has to copy the whole buffer
BUFFER_WRITE_SLICE = 256 * 1024


async def _drain(conn: Connection, timeout: Optional[float], written: int) -> None:
    try:
        await asyncio.wait_for(conn.drain(), timeout)
    except asyncio.TimeoutError:
        raise TransferTimeoutError(
            f'client did not accept data for {timeout} seconds (written {written} bytes)'
        )
    except ConnectionError as exc:
        raise ClientDisconnectedError(f'connection lost after {written} bytes: {exc}') from exc


class BufferBody(BodyProducer):
    def __init__(self, buffer: Union[bytes, bytearray], timeout: Optional[float] = None):
        self.buffer = buffer
        self.timeout = timeout

    async def send(self, conn: Connection) -> int:
        view = memoryview(self.buffer)
        written = 0

        while written < len(view):
            if conn.is_closing():
                raise ClientDisconnectedError(f'connection closed after {written} bytes')

            piece = view[written:written + BUFFER_WRITE_SLICE]
            conn.write(piece)
            written += len(piece)
            await _drain(conn, self.timeout, written)

        return written


class ChunkedBody(BodyProducer):
    """
    Transfer-Encoding: chunked body. Each chunk is pulled from the producer
    only after the previous one was accepted by the transport
    """

    def __init__(self,
                 chunks: AsyncIterator[Chunk],
                 timeout: Optional[float] = None,
                 source: Optional[AsyncFile] = None):
        self.chunks = chunks
        self.timeout = timeout
        self.source = source

    async def send(self, conn: Connection) -> int:
        written = 0

        try:
            async for chunk in self.chunks:
                if conn.is_closing():
                    raise ClientDisconnectedError(f'connection closed after {written} bytes')

                if chunk.last:
                    conn.write(LAST_CHUNK)
                    await _drain(conn, self.timeout, written)
                    break

                conn.write(render_chunk(chunk.data))
                written += len(chunk.data)
                await _drain(conn, self.timeout, written)
        finally:
            await self.discard()

        return written

    async def discard(self) -> None:
        # closes the file if sequence wasn't exhausted
        await self.chunks.aclose()

        # a sequence that was never started doesn't run its cleanup on aclose()
        if self.source is not None and not self.source.closed:
            await self.source.close()


class SendfileBody(BodyProducer):
    """
    Lets the event loop copy file to the socket by itself (os.sendfile()
    where available), so file content never gets into application buffers
    """

    def __init__(self,
                 file: BinaryIO,
                 count: int,
                 chunk_size: int = CHUNK_SIZE,
                 timeout: Optional[float] = None):
        self.file = file
        self.count = count
        self.chunk_size = chunk_size
        self.timeout = timeout

    async def send(self, conn: Connection) -> int:
        loop = conn.loop

        try:
            if not self.count:
                return 0

            try:
                sent = await loop.sendfile(conn.transport, self.file, 0, self.count, fallback=True)
            except NotImplementedError:
                # uvloop has no sendfile() at all
                logger.debug('event loop does not implement sendfile(), streaming file instead')

                return await self._stream(conn)

            # sendfile() stops silently at the end of a file that shrank
            if sent < self.count:
                raise TransferIOError(f'file was truncated after {sent} bytes '
                                      f'(expected {self.count})')

            return sent
        except ConnectionError as exc:
            raise ClientDisconnectedError(f'sendfile failed: {exc}') from exc
        finally:
            await self.discard()

    async def _stream(self, conn: Connection) -> int:
        loop = conn.loop
        written = 0

        while written < self.count:
            try:
                data = await loop.run_in_executor(
                    None, self.file.read, min(self.chunk_size, self.count - written)
                )
            except OSError as exc:
                raise TransferIOError(f'read failed after {written} bytes: {exc}') from exc

            if not data:
                raise TransferIOError(f'file was truncated after {written} bytes')

            conn.write(data)
            written += len(data)
            await _drain(conn, self.timeout, written)

        return written

    async def discard(self) -> None:
        if not self.file.closed:
            await asyncio.get_running_loop().run_in_executor(None, self.file.close)


class BlockingStreamBody(BodyProducer):
    """
    Runs a blocking transfer on the worker pool. The worker writes into the
    connection through a TransportSink, so it is blocked while the client
    doesn't keep up
    """

    def __init__(self,
                 stream: Callable[[Sink], int],
                 pool: BoundedWorkerPool,
                 timeout: Optional[float] = None):
        self.stream = stream
        self.pool = pool
        self.timeout = timeout

    async def send(self, conn: Connection) -> int:
        sink = TransportSink(conn, self.timeout)

        return await self.pool.run(self.stream, sink)


class ResponseAssembler:
    def __init__(self,
                 worker_pool: BoundedWorkerPool,
                 chunk_size: int = CHUNK_SIZE,
                 transfer_timeout: Optional[float] = None):
        self.worker_pool = worker_pool
        self.chunk_size = chunk_size
        self.transfer_timeout = transfer_timeout

    def assemble(self, result: StrategyResult, response: Response) -> Response:
        headers = {'content-type': OCTET_STREAM}
        timeout = self.transfer_timeout

        if result.chunks is not None:
            # length isn't promised, body goes as chunks
            headers['transfer-encoding'] = 'chunked'
            producer = ChunkedBody(result.chunks, timeout, source=result.chunks_source)
        else:
            headers['content-length'] = result.handle.size

            if result.file is not None:
                producer = SendfileBody(result.file, result.handle.size, self.chunk_size, timeout)
            elif result.stream is not None:
                producer = BlockingStreamBody(result.stream, self.worker_pool, timeout)
            elif result.buffer is not None:
                producer = BufferBody(result.buffer, timeout)
            else:
                raise ValueError(f'{result.strategy}: strategy result carries no body')

        return response(headers=headers, producer=producer)

    @staticmethod
    def not_found(response: Response) -> Response:
        return response(code=404, headers={'content-length': 0})

    @staticmethod
    def internal_error(response: Response) -> Response:
        return response(code=500, headers={'content-length': 0})
