from typing import Dict, List, Tuple, Callable, Awaitable

from ..storage.base import FileStore
from ..exceptions import NotFoundError, TransferIOError
from ..transfer.whole import WholeFileLoader
from ..transfer.chunks import AsyncChunkProducer
from ..transfer.streaming import StreamingTransfer, CHUNK_SIZE
from .pools import BoundedWorkerPool, LightweightThreadPool
from ..entities import TransferStrategy, ExecutionContext, StrategyResult, FileHandle

Runner = Callable[[str], Awaitable[StrategyResult]]

ENDPOINTS: Dict[str, TransferStrategy] = {
    'asyncFile': TransferStrategy.ASYNC_WHOLE_FILE,
    'asyncBuffer': TransferStrategy.ASYNC_CHUNKED_BUFFER,
    'asyncByteArray': TransferStrategy.ASYNC_CHUNKED_BUFFER,
    'asyncMultiBuffer': TransferStrategy.ASYNC_CHUNK_STREAM,
    'stream': TransferStrategy.BLOCKING_STREAM,
    'byteArray': TransferStrategy.BLOCKING_WHOLE_BUFFER,
    'byteArrayVirtual': TransferStrategy.BLOCKING_WHOLE_BUFFER_LIGHTWEIGHT,
}

CONTEXTS: Dict[TransferStrategy, ExecutionContext] = {
    TransferStrategy.ASYNC_WHOLE_FILE: ExecutionContext.EVENT_LOOP,
    TransferStrategy.ASYNC_CHUNKED_BUFFER: ExecutionContext.EVENT_LOOP,
    TransferStrategy.ASYNC_CHUNK_STREAM: ExecutionContext.EVENT_LOOP,
    TransferStrategy.BLOCKING_STREAM: ExecutionContext.BOUNDED_WORKER_POOL,
    TransferStrategy.BLOCKING_WHOLE_BUFFER: ExecutionContext.BOUNDED_WORKER_POOL,
    TransferStrategy.BLOCKING_WHOLE_BUFFER_LIGHTWEIGHT: ExecutionContext.LIGHTWEIGHT_THREAD_POOL,
}


def join_parts(parts: List[bytes], handle: FileHandle) -> bytearray:
    """
    Copies parts into one contiguous buffer of file's size. CPU-bound
    for big files, that's why it is done on a worker thread
    """

    buffer = bytearray(handle.size)
    view = memoryview(buffer)
    offset = 0

    for part in parts:
        # file may have grown after it was resolved, the tail is ignored
        part = part[:handle.size - offset]
        view[offset:offset + len(part)] = part
        offset += len(part)

    if offset != handle.size:
        raise TransferIOError(
            f'{handle.name}: file was truncated while reading '
            f'(expected {handle.size} bytes, got {offset})'
        )

    return buffer


class ExecutionStrategySelector:
    """
    Maps an endpoint to a transfer strategy and runs the strategy on the
    execution context it requires. Selection depends on the endpoint only
    """

    def __init__(self,
                 store: FileStore,
                 worker_pool: BoundedWorkerPool,
                 lightweight_pool: LightweightThreadPool,
                 chunk_size: int = CHUNK_SIZE):
        self.store = store
        self.worker_pool = worker_pool
        self.lightweight_pool = lightweight_pool

        self.streaming = StreamingTransfer(chunk_size)
        self.loader = WholeFileLoader()
        self.producer = AsyncChunkProducer(chunk_size)

        self._runners: Dict[TransferStrategy, Runner] = {
            TransferStrategy.ASYNC_WHOLE_FILE: self._async_whole_file,
            TransferStrategy.ASYNC_CHUNKED_BUFFER: self._async_chunked_buffer,
            TransferStrategy.ASYNC_CHUNK_STREAM: self._async_chunk_stream,
            TransferStrategy.BLOCKING_STREAM: self._blocking_stream,
            TransferStrategy.BLOCKING_WHOLE_BUFFER: self._blocking_whole_buffer,
            TransferStrategy.BLOCKING_WHOLE_BUFFER_LIGHTWEIGHT: self._lightweight_whole_buffer,
        }

    @staticmethod
    def select(endpoint: str) -> Tuple[TransferStrategy, ExecutionContext]:
        try:
            strategy = ENDPOINTS[endpoint]
        except KeyError:
            raise NotFoundError(endpoint, msg='no such download strategy')

        return strategy, CONTEXTS[strategy]

    async def run(self, strategy: TransferStrategy, name: str) -> StrategyResult:
        return await self._runners[strategy](name)

    async def _async_whole_file(self, name: str) -> StrategyResult:
        handle = await self.store.resolve_async(name)
        file = await self.producer.open_for_sendfile(handle)

        return StrategyResult(TransferStrategy.ASYNC_WHOLE_FILE, handle, file=file)

    async def _async_chunked_buffer(self, name: str) -> StrategyResult:
        handle = await self.store.resolve_async(name)
        parts = await self.producer.read_whole(handle)
        buffer = await self.worker_pool.run(join_parts, parts, handle)

        return StrategyResult(TransferStrategy.ASYNC_CHUNKED_BUFFER, handle, buffer=buffer)

    async def _async_chunk_stream(self, name: str) -> StrategyResult:
        handle = await self.store.resolve_async(name)
        async_file = await self.producer.open_async(handle)

        return StrategyResult(
            TransferStrategy.ASYNC_CHUNK_STREAM,
            handle,
            chunks=self.producer.read_chunks(async_file, handle.name),
            chunks_source=async_file
        )

    async def _blocking_stream(self, name: str) -> StrategyResult:
        handle = await self.worker_pool.run(self.store.resolve, name)

        return StrategyResult(
            TransferStrategy.BLOCKING_STREAM,
            handle,
            stream=lambda sink: self.streaming.transfer(handle, sink)
        )

    async def _blocking_whole_buffer(self, name: str) -> StrategyResult:
        def resolve_and_load() -> StrategyResult:
            handle = self.store.resolve(name)

            return StrategyResult(
                TransferStrategy.BLOCKING_WHOLE_BUFFER,
                handle,
                buffer=self.loader.load(handle)
            )

        return await self.worker_pool.run(resolve_and_load)

    async def _lightweight_whole_buffer(self, name: str) -> StrategyResult:
        return await self.lightweight_pool.run(self._load_on_lightweight_thread, name)

    async def _load_on_lightweight_thread(self, name: str) -> StrategyResult:
        pool = self.lightweight_pool
        handle = await pool.block(self.store.resolve, name)

        return StrategyResult(
            TransferStrategy.BLOCKING_WHOLE_BUFFER_LIGHTWEIGHT,
            handle,
            buffer=await self.loader.load_cooperative(handle, pool)
        )
