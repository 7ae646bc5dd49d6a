"""
Unit tests for response assembling and body producers.
"""

import socket
import asyncio
from types import SimpleNamespace

import pytest

from filerush.entities import Response, StrategyResult, TransferStrategy, Chunk, CaseInsensitiveDict
from filerush.execution.pools import BoundedWorkerPool
from filerush.storage.local import LocalFileStore
from filerush.transfer.streaming import StreamingTransfer
from filerush.assembler import (
    ResponseAssembler,
    BufferBody,
    ChunkedBody,
    SendfileBody,
    BlockingStreamBody,
    BUFFER_WRITE_SLICE,
    OCTET_STREAM,
)
from filerush.transfer.chunks import AsyncChunkProducer
from filerush.exceptions import ClientDisconnectedError, TransferTimeoutError, TransferIOError


def read_file(store: LocalFileStore, name: str) -> bytes:
    with open(store.resolve(name).path, 'rb') as fd:
        return fd.read()


def dechunk(data: bytes) -> bytes:
    body = b''

    while True:
        size_line, data = data.split(b'\r\n', 1)
        size = int(size_line, 16)

        if not size:
            assert data == b'\r\n'
            return body

        body += data[:size]
        assert data[size:size + 2] == b'\r\n'
        data = data[size + 2:]


async def chunks_of(data: bytes, size: int, state: dict):
    try:
        for offset in range(0, len(data), size):
            yield Chunk(data[offset:offset + size])

        yield Chunk(b'', last=True)
    finally:
        state['closed'] = True


@pytest.fixture
def worker_pool():
    pool = BoundedWorkerPool(workers=2)
    yield pool
    pool.shutdown()


@pytest.fixture
def response() -> Response:
    return Response(CaseInsensitiveDict(server='filerush'))


class TestAssemble:
    """Tests for ResponseAssembler.assemble()."""

    def test_buffer(self, store, worker_pool, response):
        handle = store.resolve('small.pdf')
        result = StrategyResult(TransferStrategy.BLOCKING_WHOLE_BUFFER, handle,
                                buffer=bytearray(handle.size))

        assembled = ResponseAssembler(worker_pool).assemble(result, response)

        assert assembled.code == 200
        assert assembled.headers['Content-Type'] == OCTET_STREAM
        assert assembled.headers['Content-Length'] == handle.size
        assert 'transfer-encoding' not in assembled.headers
        assert isinstance(assembled.producer, BufferBody)

    def test_chunks(self, store, worker_pool, response):
        handle = store.resolve('small.pdf')
        result = StrategyResult(TransferStrategy.ASYNC_CHUNK_STREAM, handle,
                                chunks=chunks_of(b'', 1, {}))

        assembled = ResponseAssembler(worker_pool).assemble(result, response)

        assert assembled.headers['transfer-encoding'] == 'chunked'
        assert 'content-length' not in assembled.headers
        assert isinstance(assembled.producer, ChunkedBody)

    def test_file(self, store, worker_pool, response):
        handle = store.resolve('small.pdf')

        with open(handle.path, 'rb') as fd:
            result = StrategyResult(TransferStrategy.ASYNC_WHOLE_FILE, handle, file=fd)
            assembled = ResponseAssembler(worker_pool).assemble(result, response)

        assert assembled.headers['content-length'] == handle.size
        assert isinstance(assembled.producer, SendfileBody)

    def test_stream(self, store, worker_pool, response):
        handle = store.resolve('small.pdf')
        result = StrategyResult(TransferStrategy.BLOCKING_STREAM, handle, stream=lambda sink: 0)

        assembled = ResponseAssembler(worker_pool).assemble(result, response)

        assert assembled.headers['content-length'] == handle.size
        assert isinstance(assembled.producer, BlockingStreamBody)

    def test_no_payload(self, store, worker_pool, response):
        result = StrategyResult(TransferStrategy.BLOCKING_STREAM, store.resolve('small.pdf'))

        with pytest.raises(ValueError):
            ResponseAssembler(worker_pool).assemble(result, response)

    def test_not_found(self, response):
        assembled = ResponseAssembler.not_found(response)

        assert assembled.code == 404
        assert assembled.body == b''
        assert assembled.headers['content-length'] == 0
        assert assembled.producer is None

    def test_internal_error(self, response):
        assembled = ResponseAssembler.internal_error(response)

        assert assembled.code == 500
        assert assembled.body == b''


class TestBufferBody:
    def test_written_by_slices(self, fake_connection):
        data = bytes(range(256)) * 4096  # 1 MiB

        async def send():
            conn = fake_connection()
            written = await BufferBody(bytearray(data)).send(conn)

            return conn, written

        conn, written = asyncio.run(send())

        assert written == len(data)
        assert conn.data == data
        assert max(len(piece) for piece in conn.written) == BUFFER_WRITE_SLICE
        assert conn.drains == len(conn.written)

    def test_disconnect(self, fake_connection):
        async def send():
            await BufferBody(b'x' * BUFFER_WRITE_SLICE * 4).send(fake_connection(fail_after_drains=1))

        with pytest.raises(ClientDisconnectedError):
            asyncio.run(send())

    def test_stalled_client(self, fake_connection):
        async def send():
            conn = fake_connection()

            async def never_drains():
                await asyncio.sleep(10)

            conn.drain = never_drains
            await BufferBody(b'x' * 10, timeout=0.05).send(conn)

        with pytest.raises(TransferTimeoutError):
            asyncio.run(send())


class TestChunkedBody:
    def test_framing(self, fake_connection):
        data = bytes(range(256)) * 40
        state = {}

        async def send():
            conn = fake_connection()
            written = await ChunkedBody(chunks_of(data, 1000, state)).send(conn)

            return conn, written

        conn, written = asyncio.run(send())

        assert written == len(data)
        assert conn.data.endswith(b'0\r\n\r\n')
        assert dechunk(conn.data) == data
        assert state['closed']

    def test_discard_closes_file_of_unstarted_chunks(self, store):
        handle = store.resolve('small.pdf')
        producer = AsyncChunkProducer()

        async def discard():
            async_file = await producer.open_async(handle)
            chunks = producer.read_chunks(async_file, handle.name)
            await ChunkedBody(chunks, source=async_file).discard()

            return async_file.closed

        assert asyncio.run(discard())

    def test_disconnect_stops_producer(self, fake_connection):
        state = {}
        produced = []

        async def counting():
            async for chunk in chunks_of(b'y' * 10_000, 1000, state):
                produced.append(chunk)
                yield chunk

        async def send():
            await ChunkedBody(counting()).send(fake_connection(fail_after_drains=2))

        with pytest.raises(ClientDisconnectedError):
            asyncio.run(send())

        # third chunk failed to be delivered, nothing was pulled after it
        assert len(produced) == 3

    def test_discard_closes_producer(self):
        state = {}

        async def discard():
            chunks = chunks_of(b'z' * 10, 5, state)
            await chunks.__anext__()
            await ChunkedBody(chunks).discard()

        asyncio.run(discard())

        assert state['closed']


class TestSendfileBody:
    def test_empty_file(self, store, fake_connection):
        handle = store.resolve('empty.bin')
        fd = open(handle.path, 'rb')

        async def send():
            return await SendfileBody(fd, 0).send(fake_connection())

        assert asyncio.run(send()) == 0
        assert fd.closed

    def test_stream_without_sendfile(self, store, fake_connection):
        handle = store.resolve('small.pdf')

        async def stream():
            conn = fake_connection()

            with open(handle.path, 'rb') as fd:
                written = await SendfileBody(fd, handle.size, chunk_size=4096)._stream(conn)

            return conn, written

        conn, written = asyncio.run(stream())

        assert written == handle.size
        assert conn.data == read_file(store, 'small.pdf')
        assert len(conn.written) == 3

    @staticmethod
    async def send_over_socketpair(path: str, count: int):
        loop = asyncio.get_running_loop()
        server_side, client_side = socket.socketpair()
        transport, _ = await loop.connect_accepted_socket(asyncio.Protocol, server_side)
        conn = SimpleNamespace(loop=loop, transport=transport)

        try:
            with open(path, 'rb') as fd:
                return await SendfileBody(fd, count).send(conn)
        finally:
            transport.close()
            client_side.close()

    def test_sendfile(self, tmp_path):
        path = tmp_path / 'whole.bin'
        path.write_bytes(b'q' * 3_000)

        assert asyncio.run(self.send_over_socketpair(str(path), 3_000)) == 3_000

    def test_shrunk_file_fails(self, tmp_path):
        path = tmp_path / 'shrunk.bin'
        # content-length of 10 000 bytes was promised, only 3 000 are left
        path.write_bytes(b'q' * 3_000)

        with pytest.raises(TransferIOError):
            asyncio.run(self.send_over_socketpair(str(path), 10_000))


class TestBlockingStreamBody:
    def test_worker_writes_through_loop(self, store, worker_pool, fake_connection):
        handle = store.resolve('sample_001mb.pdf')
        transfer = StreamingTransfer(16 * 1024)

        async def send():
            conn = fake_connection()
            body = BlockingStreamBody(lambda sink: transfer.transfer(handle, sink), worker_pool, 5)
            written = await body.send(conn)

            return conn, written

        conn, written = asyncio.run(send())

        assert written == handle.size
        assert conn.data == read_file(store, 'sample_001mb.pdf')

    def test_disconnect(self, store, worker_pool, fake_connection):
        handle = store.resolve('sample_001mb.pdf')
        transfer = StreamingTransfer(16 * 1024)

        async def send():
            conn = fake_connection(fail_after_drains=3)
            body = BlockingStreamBody(lambda sink: transfer.transfer(handle, sink), worker_pool, 5)

            return await body.send(conn)

        with pytest.raises(ClientDisconnectedError):
            asyncio.run(send())
