import logging
from typing import Iterator

from ..typehints import Sink
from ..entities import FileHandle, Chunk
from ..execution.context import ensure_off_event_loop
from ..exceptions import NotFoundError, TransferIOError, ClientDisconnectedError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


class StreamingTransfer:
    """
    Copies a file to a sink chunk by chunk, flushing after each write, so only
    one chunk of the file is held in memory regardless of its size.
    Blocks the calling thread for the whole transfer
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f'chunk size must be positive, got {chunk_size}')

        self.chunk_size = chunk_size

    def iter_chunks(self, handle: FileHandle) -> Iterator[Chunk]:
        """
        Yields chunks of the file in order, the last one is an empty
        Chunk with `last` flag set. Next read happens only when the
        next chunk is requested.

        Exactly handle.size bytes are produced: bytes appended after the
        file was resolved are not read, and a file that shrank fails with
        TransferIOError, as content-length is already promised by then
        """

        ensure_off_event_loop('StreamingTransfer')

        try:
            fd = open(handle.path, 'rb')
        except FileNotFoundError:
            raise NotFoundError(handle.name)
        except OSError as exc:
            raise TransferIOError(f'{handle.name}: failed to open: {exc}') from exc

        read = 0

        with fd:
            while read < handle.size:
                try:
                    data = fd.read(min(self.chunk_size, handle.size - read))
                except OSError as exc:
                    raise TransferIOError(f'{handle.name}: read failed: {exc}') from exc

                if not data:
                    raise TransferIOError(
                        f'{handle.name}: file was truncated while reading '
                        f'(expected {handle.size} bytes, got {read})'
                    )

                read += len(data)
                yield Chunk(data)

            yield Chunk(b'', last=True)

    def transfer(self, handle: FileHandle, sink: Sink) -> int:
        """
        Returns count of bytes written to the sink. Nothing is rolled back
        on failure, the receiver just gets a truncated stream
        """

        written = 0
        chunks = self.iter_chunks(handle)

        try:
            for chunk in chunks:
                if chunk.last:
                    break

                try:
                    sink.write(chunk.data)
                    sink.flush()
                except TransferIOError:
                    raise
                except OSError as exc:
                    raise ClientDisconnectedError(
                        f'{handle.name}: write failed after {written} bytes: {exc}'
                    ) from exc

                written += len(chunk.data)
        finally:
            chunks.close()

        logger.debug(f'{handle.name}: streamed {written} bytes')

        return written
