import io
import logging
from typing import TYPE_CHECKING

from ..entities import FileHandle
from ..execution.context import ensure_off_event_loop
from ..exceptions import NotFoundError, TransferIOError

if TYPE_CHECKING:
    from ..execution.pools import LightweightThreadPool

logger = logging.getLogger(__name__)

# how many bytes one blocking read of a lightweight thread may take at most
COOPERATIVE_SLICE_SIZE = 1024 * 1024


def _open_raw(handle: FileHandle) -> io.FileIO:
    try:
        return io.FileIO(handle.path, 'rb')
    except FileNotFoundError:
        raise NotFoundError(handle.name)
    except OSError as exc:
        raise TransferIOError(f'{handle.name}: failed to open: {exc}') from exc


class WholeFileLoader:
    """
    Reads the whole file into one buffer that is allocated once with the
    size known from the file handle.

    Memory cost is O(file size): keeping the amount of concurrent loads in
    a safe memory budget is a job of the caller
    """

    def __init__(self, slice_size: int = COOPERATIVE_SLICE_SIZE):
        self.slice_size = slice_size

    def load(self, handle: FileHandle) -> bytearray:
        ensure_off_event_loop('WholeFileLoader')

        buffer = bytearray(handle.size)
        view = memoryview(buffer)
        filled = 0

        with _open_raw(handle) as raw:
            while filled < handle.size:
                try:
                    read = raw.readinto(view[filled:])
                except OSError as exc:
                    raise TransferIOError(f'{handle.name}: read failed: {exc}') from exc

                if not read:
                    break

                filled += read

        return self._checked(handle, buffer, filled)

    async def load_cooperative(self,
                               handle: FileHandle,
                               pool: 'LightweightThreadPool') -> bytearray:
        """
        The same as load(), but meant to be awaited inside a lightweight
        thread: every read is a separate blocking call on a carrier thread,
        so carrier is released between slices. A single slice still pins
        its carrier until the read returns
        """

        buffer = bytearray(handle.size)
        view = memoryview(buffer)
        filled = 0
        raw = await pool.block(_open_raw, handle)

        try:
            while filled < handle.size:
                upper = min(filled + self.slice_size, handle.size)

                try:
                    read = await pool.block(raw.readinto, view[filled:upper])
                except OSError as exc:
                    raise TransferIOError(f'{handle.name}: read failed: {exc}') from exc

                if not read:
                    break

                filled += read
        finally:
            await pool.block(raw.close)

        return self._checked(handle, buffer, filled)

    @staticmethod
    def _checked(handle: FileHandle, buffer: bytearray, filled: int) -> bytearray:
        # bytes appended after the file was resolved are just not read,
        # but a shrunk file would break content-length promised to the client
        if filled != handle.size:
            raise TransferIOError(
                f'{handle.name}: file was truncated while reading '
                f'(expected {handle.size} bytes, got {filled})'
            )

        logger.debug(f'{handle.name}: loaded {filled} bytes')

        return buffer
