"""
pytest configuration and fixtures.
"""

import asyncio
import socket
import threading
import http.client
from typing import Generator, List, Optional

import pytest

from filerush.app import DownloadApp
from filerush.samples import create_sample, MEGABYTE
from filerush.webserver import WebServer, Settings
from filerush.storage.local import LocalFileStore

SAMPLE_SIZES_MB = (1, 5, 20)


class FakeConnection:
    """
    Connection that records everything written into it. Drain starts
    failing after `fail_after_drains` drains, as if client disconnected
    """

    def __init__(self, fail_after_drains: Optional[int] = None):
        self.loop = asyncio.get_running_loop()
        self.transport = None
        self.written: List[bytes] = []
        self.drains = 0
        self.fail_after_drains = fail_after_drains
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionResetError('connection is closed')

        self.written.append(bytes(data))

    async def drain(self) -> None:
        self.drains += 1

        if self.fail_after_drains is not None and self.drains > self.fail_after_drains:
            self.closed = True
            raise ConnectionResetError('client went away')

    def is_closing(self) -> bool:
        return self.closed

    def abort(self) -> None:
        self.closed = True

    @property
    def data(self) -> bytes:
        return b''.join(self.written)


class ServerThread:
    """Runs the download server in a background thread."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.app = DownloadApp(settings)
        self.webserver = WebServer(settings)

        self.sock = socket.socket()
        self.sock.bind(('127.0.0.1', 0))
        self.port = self.sock.getsockname()[1]
        self.server = self.webserver.make_server(self.app, self.sock)

        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.server.poll())

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        self.loop.call_soon_threadsafe(self.server.stop)
        self._thread.join(timeout=10)
        self.app.on_stop_serving()
        self.sock.close()
        self.loop.close()

    def connection(self, timeout: float = 30) -> http.client.HTTPConnection:
        return http.client.HTTPConnection('127.0.0.1', self.port, timeout=timeout)

    def get(self, path: str, method: str = 'GET'):
        conn = self.connection()

        try:
            conn.request(method, path)
            response = conn.getresponse()

            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()


@pytest.fixture(scope='session')
def sample_root(tmp_path_factory) -> str:
    """Directory with 1, 5 and 20 MB samples plus a small and an empty file."""
    root = tmp_path_factory.mktemp('files')

    for size in SAMPLE_SIZES_MB:
        create_sample(str(root / f'sample_{size:03d}mb.pdf'), size * MEGABYTE, seed=size)

    create_sample(str(root / 'small.pdf'), 10_000, seed=0)
    (root / 'empty.bin').write_bytes(b'')
    (root / 'nested').mkdir()

    return str(root)


@pytest.fixture
def fake_connection():
    """FakeConnection class, instances must be created on a running loop."""
    return FakeConnection


@pytest.fixture
def store(sample_root: str) -> LocalFileStore:
    return LocalFileStore(sample_root)


@pytest.fixture
def settings(sample_root: str) -> Settings:
    return Settings(
        root=sample_root,
        port=0,
        workers=4,
        carriers=2,
        transfer_timeout=10,
    )


@pytest.fixture(scope='module')
def running_server(sample_root: str) -> Generator[ServerThread, None, None]:
    server = ServerThread(Settings(root=sample_root, port=0, workers=4, carriers=2,
                                   transfer_timeout=10))
    server.start()

    yield server

    server.stop()
