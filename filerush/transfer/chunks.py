import asyncio
import logging
from functools import partial
from typing import AsyncIterator, List, BinaryIO

import aiofiles
from aiofiles.threadpool.binary import AsyncBufferedReader

from .streaming import CHUNK_SIZE
from ..entities import FileHandle, Chunk
from ..exceptions import NotFoundError, TransferIOError

logger = logging.getLogger(__name__)

AsyncFile = AsyncBufferedReader

# single-shot reads don't need to be small, they end up in one buffer anyway
WHOLE_READ_SLICE = 1024 * 1024


def _open_failure(handle: FileHandle, exc: OSError) -> Exception:
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(handle.name)

    return TransferIOError(f'{handle.name}: failed to open: {exc}')


class AsyncChunkProducer:
    """
    Reads files without blocking the event loop. Reads themselves are done
    by aiofiles in a thread of loop's default executor, so the loop is only
    notified when a read is complete
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        self.chunk_size = chunk_size

    async def open_async(self, handle: FileHandle) -> AsyncFile:
        try:
            return await aiofiles.open(handle.path, 'rb')
        except OSError as exc:
            raise _open_failure(handle, exc) from exc

    async def read_chunks(self, async_file: AsyncFile, name: str = '') -> AsyncIterator[Chunk]:
        """
        Lazy sequence of chunks. Nothing is read ahead: next read is issued
        only when consumer asks for the next chunk, so there is never more
        than one chunk that was read but not consumed yet.

        Sequence ends with an empty Chunk with `last` flag. The file is closed
        when sequence is exhausted, failed, or closed by consumer (aclose()).
        Read failure is raised from the iteration as TransferIOError, as some
        chunks may already be delivered by that moment
        """

        try:
            while True:
                try:
                    data = await async_file.read(self.chunk_size)
                except OSError as exc:
                    raise TransferIOError(f'{name}: read failed: {exc}') from exc

                if not data:
                    yield Chunk(b'', last=True)
                    return

                yield Chunk(data)
        finally:
            await async_file.close()

    async def read_whole(self, handle: FileHandle) -> List[bytes]:
        """
        Single-shot mode: the whole file is read with the same non-blocking
        reads and returned as a list of parts once complete. Parts still have
        to be joined into one buffer by the caller
        """

        parts: List[bytes] = []
        async_file = await self.open_async(handle)

        try:
            while True:
                try:
                    data = await async_file.read(WHOLE_READ_SLICE)
                except OSError as exc:
                    raise TransferIOError(f'{handle.name}: read failed: {exc}') from exc

                if not data:
                    return parts

                parts.append(data)
        finally:
            await async_file.close()

    @staticmethod
    async def open_for_sendfile(handle: FileHandle) -> BinaryIO:
        """
        loop.sendfile() needs a usual file object, so it is opened in the
        default executor instead of aiofiles
        """

        loop = asyncio.get_running_loop()

        try:
            return await loop.run_in_executor(None, partial(open, handle.path, 'rb'))
        except OSError as exc:
            raise _open_failure(handle, exc) from exc
