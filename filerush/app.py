"""
Download endpoints. Every endpoint serves the same files from the same root,
the only difference is the strategy used to get bytes from the disk to the
socket:

    /download/asyncFile/<name>          zero-copy send by the event loop
    /download/asyncBuffer/<name>        whole file read without blocking the loop
    /download/asyncByteArray/<name>     (alias of asyncBuffer)
    /download/asyncMultiBuffer/<name>   chunks read without blocking the loop
    /download/stream/<name>             chunks read by a worker thread
    /download/byteArray/<name>          whole file read by a worker thread
    /download/byteArrayVirtual/<name>   whole file read by a lightweight thread
"""

import logging
from typing import TYPE_CHECKING

from .entities import Request, Response
from .assembler import ResponseAssembler
from .dispatcher.default import AsyncDispatcher
from .execution.selector import ExecutionStrategySelector, ENDPOINTS
from .execution.pools import BoundedWorkerPool, LightweightThreadPool
from .exceptions import NotFoundError, TransferIOError, BlockingOnEventLoopError

if TYPE_CHECKING:
    from .webserver import Settings

logger = logging.getLogger(__name__)


class DownloadApp(AsyncDispatcher):
    def __init__(self, settings: 'Settings'):
        super(DownloadApp, self).__init__(settings.logger)

        self.settings = settings
        self.store = settings.store(settings.root)
        self.worker_pool = BoundedWorkerPool(settings.workers)
        self.lightweight_pool = LightweightThreadPool(
            carriers=settings.carriers,
            pin_warning_threshold=settings.pin_warning_threshold
        )
        self.selector = ExecutionStrategySelector(
            store=self.store,
            worker_pool=self.worker_pool,
            lightweight_pool=self.lightweight_pool,
            chunk_size=settings.chunk_size
        )
        self.assembler = ResponseAssembler(
            worker_pool=self.worker_pool,
            chunk_size=settings.chunk_size,
            transfer_timeout=settings.transfer_timeout
        )

        for endpoint in ENDPOINTS:
            self.get(f'/download/{endpoint}/<name>')(self._make_download_handler(endpoint))

        self.handle_error(NotFoundError)(self.on_not_found)
        self.handle_error(TransferIOError)(self.on_transfer_error)
        self.handle_error(BlockingOnEventLoopError)(self.on_transfer_error)

    def _make_download_handler(self, endpoint: str):
        strategy, context = self.selector.select(endpoint)

        async def download(request: Request, response: Response) -> Response:
            name = request.path_params['name']
            logger.info(f'{endpoint} [{name}]')

            result = await self.selector.run(strategy, name)

            return self.assembler.assemble(result, response)

        download.__qualname__ = f'download_{endpoint}'
        logger.debug(f'{endpoint}: {strategy.name} on {context.value}')

        return download

    async def on_not_found(self, request: Request, response: Response, exc: Exception) -> Response:
        logger.info(f'{request.path.decode()}: {exc}')

        return self.assembler.not_found(response)

    async def on_transfer_error(self, request: Request, response: Response, exc: Exception) -> Response:
        logger.error(f'{request.path.decode()}: failed before sending anything: {exc}')

        return self.assembler.internal_error(response)

    def on_begin_serving(self):
        self.lightweight_pool.start()
        logger.info(f'serving files from {self.store.root} '
                    f'(workers={self.worker_pool.workers}, carriers={self.lightweight_pool.carriers}, '
                    f'chunk size={self.settings.chunk_size})')

    def on_stop_serving(self):
        self.lightweight_pool.shutdown(wait=False)
        self.worker_pool.shutdown(wait=False)
