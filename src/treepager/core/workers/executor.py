"""Background execution of CPU-heavy operations on a lazily created thread pool.

The executor is constructed and injected explicitly; there is no shared
process-wide instance. The pool is created on first use and shut down after
``idle_timeout`` seconds without work. When disabled, or when the pool cannot
accept work, operations run inline on the calling thread.
"""

import asyncio
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from loguru import logger

from treepager.config import WORKER_IDLE_TIMEOUT
from treepager.core.workers.operations import OPERATIONS, Operation, Progress
from treepager.models.node import WorkerProgress

ProgressCallback = Callable[[WorkerProgress], None]


def _progress_adapter(
    operation: str,
    on_progress: ProgressCallback | None,
    loop: asyncio.AbstractEventLoop | None,
) -> Progress | None:
    """Wrap a progress callback; with a loop, deliver on the loop thread."""
    if on_progress is None:
        return None

    def report(done: int, total: int) -> None:
        update = WorkerProgress(operation, done, total)
        if loop is None:
            on_progress(update)
        else:
            loop.call_soon_threadsafe(on_progress, update)

    return report


class BackgroundExecutor:
    """Runs named stateless operations off the event loop."""

    def __init__(
        self,
        *,
        idle_timeout: float = WORKER_IDLE_TIMEOUT,
        max_workers: int = 2,
        enabled: bool = True,
        operations: Mapping[str, Operation] | None = None,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.max_workers = max_workers
        self.enabled = enabled
        self._operations = dict(OPERATIONS if operations is None else operations)
        self._pool: ThreadPoolExecutor | None = None
        self._idle_timer: asyncio.TimerHandle | None = None
        self._active = 0

    @property
    def is_running(self) -> bool:
        return self._pool is not None

    def _ensure_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="treepager-worker"
            )
            logger.debug("Started worker pool with {} threads", self.max_workers)
        return self._pool

    async def execute(
        self,
        operation: str,
        payload: dict[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> Any:
        """Run operation with payload and return its result."""
        func = self._operations.get(operation)
        if func is None:
            msg = f"Unknown background operation: {operation!r}"
            raise ValueError(msg)

        if not self.enabled:
            return self._run_inline(operation, func, payload, on_progress)

        loop = asyncio.get_running_loop()
        progress = _progress_adapter(operation, on_progress, loop)
        try:
            future = self._ensure_pool().submit(func, payload, progress)
        except RuntimeError:
            logger.warning("Worker pool unavailable, running {} inline", operation)
            self._pool = None
            return self._run_inline(operation, func, payload, on_progress)

        self._cancel_idle_timer()
        self._active += 1
        try:
            return await asyncio.wrap_future(future)
        finally:
            self._active -= 1
            if self._active == 0:
                self._idle_timer = loop.call_later(self.idle_timeout, self._shutdown_idle)

    def _run_inline(
        self,
        operation: str,
        func: Operation,
        payload: dict[str, Any],
        on_progress: ProgressCallback | None,
    ) -> Any:
        return func(payload, _progress_adapter(operation, on_progress, None))

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _shutdown_idle(self) -> None:
        self._idle_timer = None
        if self._active == 0 and self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None
            logger.debug("Worker pool idle for {}s, shut down", self.idle_timeout)

    def close(self) -> None:
        """Shut the pool down; a later execute() starts a fresh one."""
        self._cancel_idle_timer()
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
