import socket
import asyncio
import logging
from typing import Optional, Callable, List, Set

from httptools import HttpRequestParser
from httptools.parser.errors import HttpParserError, HttpParserUpgrade

from . import base
from ..typehints import AsyncFunction
from ..exceptions import HTTPBadRequest
from ..utils.httputils import render_http_response
from ..entities import Request, Response, CaseInsensitiveDict
from ..parser.httptools_protocol import Protocol as LLHttpProtocol

logger = logging.getLogger(__name__)

CLIENT_DISCONNECTED = 'constant for client runners tasks to stop themselves silently'
BAD_REQUEST_RESPONSE = render_http_response(
    protocol=b'1.1',
    code=HTTPBadRequest.code,
    status_code=HTTPBadRequest.description,
    headers=b'content-length: 0\r\nconnection: close',
    body=b''
)


class AsyncioServerProtocol(asyncio.Protocol):
    """
    One client connection. Besides feeding the parser, implements write
    flow control: drain() suspends the writer while transport's buffer is
    above the high-water mark, and fails once the client is gone
    """

    def __init__(self,
                 on_message_complete: AsyncFunction,
                 default_headers: CaseInsensitiveDict,
                 write_buffer_high: int,
                 on_connection_lost: Callable[['AsyncioServerProtocol'], None]):
        self.on_message_complete = on_message_complete
        self.write_buffer_high = write_buffer_high
        self.on_connection_lost = on_connection_lost

        self.loop = asyncio.get_running_loop()
        self.transport: Optional[asyncio.Transport] = None

        self.request_obj = Request()
        self.response_obj = Response(default_headers)
        self.protocol = LLHttpProtocol(self.request_obj)
        self.parser = self._new_parser()

        self.requests_queue = asyncio.Queue()
        self.disconnected = False
        self._paused = False
        self._drain_waiters: List[asyncio.Future] = []

    def _new_parser(self) -> HttpRequestParser:
        parser = HttpRequestParser(self.protocol)
        self.protocol.parser = parser

        return parser

    def connection_made(self, transport: asyncio.Transport) -> None:
        self.transport = transport
        transport.set_write_buffer_limits(high=self.write_buffer_high)
        self.loop.create_task(client_runner(self))

    def data_received(self, data: bytes) -> None:
        self.requests_queue.put_nowait(data)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.disconnected = True
        self.requests_queue.put_nowait(CLIENT_DISCONNECTED)
        self._wake_drain_waiters(ConnectionResetError(f'connection lost: {exc or "closed"}'))
        self.on_connection_lost(self)

    def pause_writing(self) -> None:
        self._paused = True

    def resume_writing(self) -> None:
        self._paused = False
        self._wake_drain_waiters()

    def _wake_drain_waiters(self, exc: Optional[Exception] = None) -> None:
        waiters, self._drain_waiters = self._drain_waiters, []

        for waiter in waiters:
            if waiter.done():
                continue

            if exc is None:
                waiter.set_result(None)
            else:
                waiter.set_exception(exc)

    def write(self, data: bytes) -> None:
        if self.is_closing():
            raise ConnectionResetError('connection is closed')

        self.transport.write(data)

    async def drain(self) -> None:
        if self.disconnected:
            raise ConnectionResetError('connection lost')

        if not self._paused:
            return

        waiter = self.loop.create_future()
        self._drain_waiters.append(waiter)
        await waiter

    def is_closing(self) -> bool:
        return self.disconnected or self.transport.is_closing()

    def abort(self) -> None:
        self.transport.abort()

    def close(self) -> None:
        self.transport.close()


class AioHTTPServer(base.HTTPServer):
    def __init__(self,
                 sock: socket.socket,
                 max_conns: int,
                 on_begin_serving: Callable,
                 on_message_complete: AsyncFunction,
                 default_headers: CaseInsensitiveDict,
                 write_buffer_high: int = 64 * 1024):
        super(AioHTTPServer, self).__init__(
            sock=sock,
            max_conns=max_conns,
            on_begin_serving=on_begin_serving,
            on_message_complete=on_message_complete,
            default_headers=default_headers,
            write_buffer_high=write_buffer_high
        )

        self.server: Optional[asyncio.AbstractServer] = None
        self.connections: Set[AsyncioServerProtocol] = set()
        self._stopped: Optional[asyncio.Event] = None
        sock.listen(max_conns)

    def _protocol_factory(self) -> AsyncioServerProtocol:
        protocol = AsyncioServerProtocol(
            self.on_message_complete,
            self.default_headers,
            self.write_buffer_high,
            self.connections.discard
        )
        self.connections.add(protocol)

        return protocol

    async def poll(self):
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()

        server = await loop.create_server(
            self._protocol_factory,
            sock=self.sock,
            backlog=self.max_conns,
            start_serving=False
        )
        self.server = server
        await server.start_serving()
        self.on_begin_serving()

        await self._stopped.wait()

        server.close()

        for conn in list(self.connections):
            conn.close()

        await server.wait_closed()

    def stop(self):
        if self._stopped is not None:
            self._stopped.set()


async def client_runner(conn: AsyncioServerProtocol) -> None:
    while True:
        data = await conn.requests_queue.get()

        if data == CLIENT_DISCONNECTED:
            return

        try:
            conn.parser.feed_data(data)
        except HttpParserUpgrade:
            logger.debug('protocol upgrades are not supported, closing connection')
            conn.close()
            return
        except HttpParserError as exc:
            # if some error occurred, relationship won't be good in future
            logger.debug(f'disconnected client due to parsing request error: {exc}')

            if not conn.is_closing():
                conn.write(BAD_REQUEST_RESPONSE)
                conn.close()

            return

        if conn.protocol.received:
            keep_alive = await conn.on_message_complete(
                conn.request_obj,
                conn.response_obj,
                conn
            )

            conn.request_obj.wipe()
            conn.response_obj.wipe()
            conn.protocol.__init__(conn.request_obj)
            conn.parser = conn._new_parser()

            if not keep_alive:
                if not conn.is_closing():
                    conn.close()

                return
