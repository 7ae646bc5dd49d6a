"""
Execution contexts for code that must not run on the event loop.

BoundedWorkerPool is a usual fixed-size thread pool: every submitted job
occupies a worker thread for its whole duration, extra jobs wait in the
pool's queue.

LightweightThreadPool hosts any amount of lightweight threads. A lightweight
thread is a coroutine scheduled by a loop that lives in its own scheduler
thread, so lightweight threads cost almost nothing and never touch the
server's event loop. Whenever a lightweight thread needs to block, it hands
the blocking call to one of a few carrier threads via block() and is
suspended until the call returns, letting other lightweight threads run.

Known degradation mode: a blocking call can't be interrupted, so it pins
its carrier thread until it returns. If all the carriers are pinned, every
lightweight thread that needs to block waits in the queue. Calls that pin a
carrier for longer than `pin_warning_threshold` seconds are logged and
counted, instead of degrading throughput silently
"""

import os
import time
import asyncio
import logging
import threading
from functools import partial
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def default_workers_count() -> int:
    return (os.cpu_count() or 1) * 2


def default_carriers_count() -> int:
    return os.cpu_count() or 1


class BoundedWorkerPool:
    def __init__(self, workers: Optional[int] = None):
        self.workers = workers or default_workers_count()
        self.executor = ThreadPoolExecutor(
            max_workers=self.workers,
            thread_name_prefix='filerush-worker'
        )

        # instrumentation: how many jobs are running now and at most
        self.active = 0
        self.peak = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(self.executor, partial(self._tracked, func, *args))

    def _tracked(self, func: Callable[..., T], *args: Any) -> T:
        with self._counter_lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

        try:
            return func(*args)
        finally:
            with self._counter_lock:
                self.active -= 1

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


class LightweightThreadPool:
    def __init__(self,
                 carriers: Optional[int] = None,
                 pin_warning_threshold: float = 0.5):
        self.carriers = carriers or default_carriers_count()
        self.pin_warning_threshold = pin_warning_threshold
        self.pinned_calls = 0

        self._carriers_executor = ThreadPoolExecutor(
            max_workers=self.carriers,
            thread_name_prefix='filerush-carrier'
        )
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scheduler: Optional[threading.Thread] = None
        self._started = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._scheduler is None:
                self._scheduler = threading.Thread(
                    target=self._run_scheduler,
                    name='filerush-lightweight-scheduler',
                    daemon=True
                )
                self._scheduler.start()

        self._started.wait()

    def _run_scheduler(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._started.set()

        try:
            loop.run_forever()
        finally:
            loop.close()

    async def run(self, coro_func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """
        Spawns a lightweight thread running coro_func(*args) and waits for
        its result from the caller's loop. There is no limit on how many
        lightweight threads may exist simultaneously
        """

        self.start()
        future = asyncio.run_coroutine_threadsafe(coro_func(*args), self._loop)

        return await asyncio.wrap_future(future)

    async def block(self, func: Callable[..., T], *args: Any) -> T:
        """
        Runs a blocking call on a carrier thread. Must be awaited from
        a lightweight thread
        """

        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(
            self._carriers_executor, partial(self._pinned, func, *args)
        )

    def _pinned(self, func: Callable[..., T], *args: Any) -> T:
        began = time.monotonic()

        try:
            return func(*args)
        finally:
            elapsed = time.monotonic() - began

            if elapsed > self.pin_warning_threshold:
                with self._lock:
                    self.pinned_calls += 1

                logger.warning(f'{getattr(func, "__qualname__", func)} pinned carrier thread '
                               f'{threading.current_thread().name} for {elapsed:.3f}s')

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            loop, scheduler = self._loop, self._scheduler
            self._scheduler = None
            self._loop = None
            self._started.clear()

        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)

            if wait and scheduler is not None:
                scheduler.join()

        self._carriers_executor.shutdown(wait=wait)
