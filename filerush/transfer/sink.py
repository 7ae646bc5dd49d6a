import asyncio
import concurrent.futures
from typing import Optional

from ..typehints import Connection
from ..exceptions import ClientDisconnectedError, TransferTimeoutError


class TransportSink:
    """
    File-like object that lets a worker thread write into a connection owned
    by the event loop. Writes are scheduled on the loop in the order they
    were made; flush() blocks the worker until the transport buffer goes
    below its high-water mark, or fails if client is gone or stalled
    """

    def __init__(self,
                 conn: Connection,
                 timeout: Optional[float] = None):
        self.conn = conn
        self.loop = conn.loop
        self.timeout = timeout
        self.written = 0

    def write(self, data: bytes) -> None:
        if self.conn.is_closing():
            raise ClientDisconnectedError(f'connection closed after {self.written} bytes')

        self.loop.call_soon_threadsafe(self._write_on_loop, data)
        self.written += len(data)

    def flush(self) -> None:
        future = asyncio.run_coroutine_threadsafe(self.conn.drain(), self.loop)

        try:
            future.result(self.timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise TransferTimeoutError(
                f'client did not accept data for {self.timeout} seconds '
                f'(written {self.written} bytes)'
            )
        except ConnectionError as exc:
            raise ClientDisconnectedError(
                f'connection lost after {self.written} bytes: {exc}'
            ) from exc

    def _write_on_loop(self, data: bytes) -> None:
        if self.conn.is_closing():
            # next flush() will report the disconnect
            return

        self.conn.write(data)
