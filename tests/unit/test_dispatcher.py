"""
Unit tests for routing, error handlers and response writing.
"""

import asyncio

import pytest

from filerush import exceptions
from filerush.entities import Request, Response, CaseInsensitiveDict, BodyProducer
from filerush.dispatcher.default import AsyncDispatcher


def make_request(path: bytes, method: bytes = b'GET', keep_alive: bool = True) -> Request:
    request = Request()
    request.method = method
    request.path = path
    request.protocol = '1.1'
    request.keep_alive = keep_alive

    return request


def make_response() -> Response:
    return Response(CaseInsensitiveDict(server='filerush'))


class FailingBody(BodyProducer):
    def __init__(self, exc: Exception):
        self.exc = exc

    async def send(self, conn) -> int:
        conn.write(b'partial')
        raise self.exc


@pytest.fixture
def dispatcher() -> AsyncDispatcher:
    dp = AsyncDispatcher()

    @dp.get('/hello')
    async def hello(request, response):
        return response(body=b'hello')

    @dp.get('/files/<name>')
    async def files(request, response):
        return response(body=request.path_params['name'])

    @dp.get('/broken')
    async def broken(request, response):
        raise exceptions.NotFoundError('broken')

    @dp.get('/bug')
    async def bug(request, response):
        raise KeyError('bug')

    @dp.handle_error(exceptions.FileRushError)
    async def on_filerush_error(request, response, exc):
        return response(code=404, headers={'content-length': 0})

    return dp


def process(dp: AsyncDispatcher, request: Request, fake_connection):
    async def run():
        conn = fake_connection()
        keep_alive = await dp.process_request(request, make_response(), conn)

        return conn, keep_alive

    return asyncio.run(run())


class TestRouting:
    def test_usual_route(self, dispatcher, fake_connection):
        conn, keep_alive = process(dispatcher, make_request(b'/hello'), fake_connection)

        assert keep_alive
        assert conn.data.startswith(b'HTTP/1.1 200 OK\r\n')
        assert b'content-length: 5\r\n' in conn.data
        assert conn.data.endswith(b'\r\n\r\nhello')

    def test_template_route(self, dispatcher, fake_connection):
        conn, _ = process(dispatcher, make_request(b'/files/a.pdf'), fake_connection)

        assert conn.data.endswith(b'a.pdf')

    def test_no_route(self, dispatcher, fake_connection):
        conn, keep_alive = process(dispatcher, make_request(b'/nowhere'), fake_connection)

        assert keep_alive
        assert conn.data.startswith(b'HTTP/1.1 404 ')
        assert conn.data.endswith(b'content-length: 0\r\n\r\n')

    def test_method_not_allowed(self, dispatcher, fake_connection):
        conn, _ = process(dispatcher, make_request(b'/hello', b'POST'), fake_connection)

        assert conn.data.startswith(b'HTTP/1.1 405 ')

    def test_not_keep_alive(self, dispatcher, fake_connection):
        conn, keep_alive = process(dispatcher, make_request(b'/hello', keep_alive=False),
                                   fake_connection)

        assert not keep_alive
        assert b'connection: close\r\n' in conn.data

    def test_handler_must_be_coroutine(self, dispatcher):
        with pytest.raises(exceptions.HandlerMustBeCoroutineError):
            dispatcher.get('/sync')(lambda request, response: response)


class TestErrorHandlers:
    def test_handler_found_by_base_class(self, dispatcher, fake_connection):
        conn, _ = process(dispatcher, make_request(b'/broken'), fake_connection)

        assert conn.data.startswith(b'HTTP/1.1 404 ')

    def test_unhandled_exception(self, dispatcher, fake_connection):
        conn, keep_alive = process(dispatcher, make_request(b'/bug'), fake_connection)

        assert keep_alive
        assert conn.data.startswith(b'HTTP/1.1 500 ')


class TestBodyFailures:
    @pytest.mark.parametrize('exc', [
        exceptions.TransferIOError('read failed'),
        ConnectionResetError('gone'),
        RuntimeError('bug'),
    ])
    def test_failure_after_head_aborts_connection(self, fake_connection, exc):
        dp = AsyncDispatcher()

        @dp.get('/body')
        async def body(request, response):
            return response(headers={'content-length': 100}, producer=FailingBody(exc))

        conn, keep_alive = process(dp, make_request(b'/body'), fake_connection)

        assert not keep_alive
        assert conn.closed
        assert conn.data.endswith(b'\r\n\r\npartial')
        assert b'content-length: 100\r\n' in conn.data

    def test_file_removed_mid_body_is_not_a_bug(self, fake_connection, caplog):
        dp = AsyncDispatcher()

        @dp.get('/body')
        async def body(request, response):
            return response(headers={'content-length': 100},
                            producer=FailingBody(exceptions.NotFoundError('gone.bin')))

        conn, keep_alive = process(dp, make_request(b'/body'), fake_connection)

        assert not keep_alive
        assert conn.closed
        assert 'transfer aborted' in caplog.text
        assert not [record for record in caplog.records if record.levelname == 'ERROR']
