import socket
import asyncio
import logging
from traceback import format_exc
from dataclasses import dataclass, field
from typing import Type, Union, Optional

from .utils import sockutils
from .server.base import HTTPServer
from .storage.base import FileStore
from .storage.local import LocalFileStore
from .transfer.streaming import CHUNK_SIZE
from .entities import CaseInsensitiveDict
from .dispatcher.base import BaseDispatcher
from .server.aiohttpserver import AioHTTPServer

logging.basicConfig(
    format='[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'
)


@dataclass
class Settings:
    host: str = field(default='127.0.0.1')
    port: int = field(default=8080)
    root: str = field(default='.')
    max_bind_retries: Optional[int] = field(default=None)
    bind_retries_timeout: Union[int, float] = field(default=3)
    max_connections: int = field(default=1024)

    chunk_size: int = field(default=CHUNK_SIZE)
    # None means a small multiple of cpu cores
    workers: Optional[int] = field(default=None)
    # None means one carrier thread per cpu core
    carriers: Optional[int] = field(default=None)
    # how long a client may not accept data before the transfer is aborted
    transfer_timeout: Optional[float] = field(default=30)
    pin_warning_threshold: float = field(default=0.5)
    write_buffer_high: int = field(default=64 * 1024)
    use_uvloop: bool = field(default=False)

    default_headers: CaseInsensitiveDict = field(
        default_factory=lambda: CaseInsensitiveDict(
            server='filerush',
            connection='keep-alive'
        )
    )

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger('filerush'))

    store: Type[FileStore] = field(default=LocalFileStore)
    httpserver: Type[HTTPServer] = field(default=AioHTTPServer)

    asyncio_logging: bool = field(default=True)
    asyncio_logging_level: int = field(default=logging.WARNING)


def new_event_loop(settings: Settings) -> asyncio.AbstractEventLoop:
    if settings.use_uvloop:
        import uvloop

        return uvloop.new_event_loop()

    return asyncio.new_event_loop()


class WebServer:
    def __init__(self,
                 settings: Optional[Settings] = None,
                 ):
        settings = settings or Settings()

        self.logger = settings.logger
        asyncio_logger = logging.getLogger('asyncio')
        asyncio_logger.disabled = not settings.asyncio_logging
        asyncio_logger.setLevel(settings.asyncio_logging_level)

        self.settings = settings
        self.http_server: Optional[HTTPServer] = None

    def make_server(self, dp: BaseDispatcher, sock: socket.socket) -> HTTPServer:
        return self.settings.httpserver(
            sock,
            self.settings.max_connections,
            dp.on_begin_serving,
            dp.process_request,
            self.settings.default_headers,
            self.settings.write_buffer_high
        )

    def bind(self) -> socket.socket:
        self.logger.debug(f'trying to bind on {self.settings.host}:{self.settings.port}...')

        sock, retries_went = sockutils.bind_with_retries(
            host=self.settings.host,
            port=self.settings.port,
            max_retries=self.settings.max_bind_retries or 99999,
            retries_timeout=self.settings.bind_retries_timeout
        )

        if sock is None:
            retries_timeout = self.settings.bind_retries_timeout
            self.logger.error(f'failed to bind server on {self.settings.host}:{self.settings.port}: '
                              f'max retries exceeded (retries={retries_went}, '
                              f'retries_timeout={retries_timeout}, '
                              f'time_elapsed={round(retries_went * retries_timeout, 2)}secs)')
            raise SystemExit(1)

        self.logger.info(f'successfully bound socket on {self.settings.host}:{self.settings.port}')

        return sock

    def run(self, dp: BaseDispatcher):
        """
        Binds the socket and serves until interrupted by user. Errors of the
        server itself are logged, and serving continues
        """

        if not isinstance(dp, BaseDispatcher):
            raise TypeError(f'{dp} object must be inherited from '
                            'filerush.dispatcher.base.BaseDispatcher object!')

        sock = self.bind()
        self.http_server = self.make_server(dp, sock)
        self.logger.info('press CTRL-C to stop the server')

        loop = new_event_loop(self.settings)
        asyncio.set_event_loop(loop)

        try:
            while True:
                try:
                    loop.run_until_complete(self.http_server.poll())
                    break
                except (KeyboardInterrupt, SystemExit, EOFError):
                    self.logger.info('shutting down (aborted by user)...')
                    break
                except Exception as exc:
                    self.logger.exception(f'an error occurred while running http server: {exc}\n'
                                          f'Detailed trace:\n{format_exc()}')
                    self.logger.info('continuing the job')
        finally:
            dp.on_stop_serving()
            sock.close()
            loop.close()

    def stop(self):
        if self.http_server is not None:
            self.http_server.stop()
