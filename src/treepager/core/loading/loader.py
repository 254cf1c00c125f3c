"""Viewport-driven chunk loader.

The loader keeps a sparse ``index -> Record`` store aligned with the
consumer's viewport. Viewport updates are synchronous: they create chunk
descriptors, evict far-away chunks when the store is over its ceiling and
queue missing chunks. After a quiet period of ``debounce_delay`` the queue is
drained by a single task that fetches one chunk at a time, most urgent first.

All state is owned by the loader and only touched from the event loop thread,
so no locks are involved. A reset swaps the cancellation token; fetches
started under an old token finish but their results are discarded.
"""

import asyncio
import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import replace

from loguru import logger

from treepager.cancellation import CancellationToken
from treepager.config import LoaderConfig
from treepager.core.filters.predicate import NO_RESTRICTION, Predicate
from treepager.core.loading.cache import ChunkCache
from treepager.models.node import (
    ChunkDescriptor,
    EventKind,
    FetchWindow,
    LoaderEvent,
    LoadingMetrics,
    Record,
    SortSpec,
)
from treepager.protocols import DataSourceProtocol

Listener = Callable[[LoaderEvent], None]


class ChunkLoader:
    """Fetches and evicts fixed-size ranges of the flattened order."""

    def __init__(
        self,
        source: DataSourceProtocol,
        config: LoaderConfig | None = None,
        *,
        total_items: int = 0,
        predicate: Predicate = NO_RESTRICTION,
        sort: SortSpec | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.config = config or LoaderConfig()
        self.total_items = max(0, total_items)
        self.predicate = predicate
        self.sort = sort or SortSpec()
        self._clock = clock

        self._descriptors: dict[int, ChunkDescriptor] = {}
        self._store: dict[int, Record] = {}
        self._cache = ChunkCache(self.config.cache_size, clock=clock)
        self._queue: set[int] = set()
        self._viewport: tuple[int, int] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._drain_token: CancellationToken | None = None
        self._token = CancellationToken()
        self._latencies: deque[float] = deque(maxlen=self.config.latency_window)
        self._counters = LoadingMetrics()
        self._listeners: list[Listener] = []

    # --- Listeners and metrics ---

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _emit(self, event: LoaderEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Loader listener failed on {} event", event.kind)

    @property
    def metrics(self) -> LoadingMetrics:
        latencies = self._latencies
        return replace(
            self._counters,
            total_chunks=math.ceil(self.total_items / self.config.chunk_size),
            loaded_chunks=sum(1 for d in self._descriptors.values() if d.loaded),
            cached_chunks=len(self._cache),
            average_load_time=sum(latencies) / len(latencies) if latencies else 0.0,
        )

    @property
    def loaded_count(self) -> int:
        return len(self._store)

    @property
    def viewport(self) -> tuple[int, int] | None:
        return self._viewport

    def descriptors(self) -> list[ChunkDescriptor]:
        return [self._descriptors[i] for i in sorted(self._descriptors)]

    def pending_chunks(self) -> list[int]:
        """Queued chunk indices, most urgent first."""
        return sorted(self._queue, key=self._queue_key)

    # --- Chunk geometry ---

    def _chunk_bounds(self, index: int) -> tuple[int, int]:
        start = index * self.config.chunk_size
        return start, min(start + self.config.chunk_size, self.total_items)

    def _chunk_indices(self, start: int, end: int) -> range:
        start = max(0, start)
        end = min(self.total_items, end)
        if end <= start:
            return range(0)
        size = self.config.chunk_size
        return range(start // size, (end - 1) // size + 1)

    def _descriptor(self, index: int, priority: int) -> ChunkDescriptor:
        descriptor = self._descriptors.get(index)
        if descriptor is None:
            start, end = self._chunk_bounds(index)
            descriptor = ChunkDescriptor(
                start=start, end=end, last_accessed=self._clock(), priority=priority
            )
            self._descriptors[index] = descriptor
        else:
            descriptor.priority = priority
        return descriptor

    def _queue_key(self, index: int) -> tuple[int, int]:
        descriptor = self._descriptors.get(index)
        return (descriptor.priority if descriptor else 0, index)

    # --- Viewport ---

    def update_viewport(self, start: int, end: int) -> None:
        """Report the visible range ``[start, end)`` of the flattened order.

        Fetches are scheduled on the running event loop. Without one, the
        chunks stay queued until ``wait_idle`` or a later update runs in a loop.
        """
        start = max(0, start)
        end = max(start, min(end, self.total_items))
        self._viewport = (start, end)
        screen = end - start

        if len(self._store) > self.config.max_loaded_items:
            self._evict_outside(start, end, screen)

        ahead = math.ceil(screen * self.config.load_ahead_factor)
        for index in self._chunk_indices(start - ahead, end + ahead):
            chunk_start, chunk_end = self._chunk_bounds(index)
            if chunk_start < end and start < chunk_end:
                priority = 0
            elif chunk_end <= start:
                priority = start - chunk_end
            else:
                priority = chunk_start - end
            descriptor = self._descriptor(index, priority)
            if not descriptor.loaded and not descriptor.loading:
                self._queue.add(index)

        self._schedule_drain()

    def _evict_outside(self, start: int, end: int, screen: int) -> None:
        margin = screen * self.config.unload_threshold
        keep_start = start - margin
        keep_end = end + margin
        for index, descriptor in list(self._descriptors.items()):
            if not descriptor.loaded:
                continue
            if descriptor.end <= keep_start or descriptor.start >= keep_end:
                self._unload(index, descriptor)

    def _unload(self, index: int, descriptor: ChunkDescriptor) -> None:
        for i in range(descriptor.start, descriptor.end):
            self._store.pop(i, None)
        del self._descriptors[index]
        self._counters.unload_operations += 1
        logger.debug("Unloaded chunk [{}, {})", descriptor.start, descriptor.end)
        self._emit(LoaderEvent(EventKind.UNLOAD, descriptor.start, descriptor.end))

    # --- Draining ---

    def _schedule_drain(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Drained by the next update or wait_idle made inside a loop.
            logger.debug("No running event loop; {} chunks stay queued", len(self._queue))
            return
        self._timer = loop.call_later(self.config.debounce_delay, self._on_debounce)

    def _on_debounce(self) -> None:
        self._timer = None
        running = self._drain_task is not None and not self._drain_task.done()
        if running and self._drain_token is self._token:
            # The running drain picks up chunks queued since it started.
            return
        self._drain_token = self._token
        self._drain_task = asyncio.get_running_loop().create_task(self._drain(self._token))

    async def _drain(self, token: CancellationToken) -> None:
        while self._queue and not token.cancelled:
            index = min(self._queue, key=self._queue_key)
            self._queue.discard(index)
            descriptor = self._descriptors.get(index)
            if descriptor is None or descriptor.loaded or descriptor.loading:
                continue
            await self._load_chunk(descriptor, token)
        self._emit(LoaderEvent(EventKind.METRICS))

    async def wait_idle(self) -> None:
        """Wait for the pending debounce timer and the drain it starts.

        Chunks queued while no event loop was running are drained here.
        """
        while True:
            if self._drain_task is not None and not self._drain_task.done():
                await self._drain_task
            elif self._timer is not None:
                await asyncio.sleep(self.config.debounce_delay)
            elif self._queue:
                self._on_debounce()
            else:
                return

    async def _load_chunk(self, descriptor: ChunkDescriptor, token: CancellationToken) -> None:
        start, end = descriptor.start, descriptor.end
        cached = self._cache.get(start, end)
        if cached is not None:
            self._counters.cache_hits += 1
            self._commit(descriptor, cached)
            logger.debug("Chunk [{}, {}) served from cache", start, end)
            self._emit(LoaderEvent(EventKind.LOAD, start, end, cached))
            return

        descriptor.loading = True
        began = self._clock()
        try:
            records = await self.source.fetch(
                self.predicate, FetchWindow(start, end - start), self.sort, token=token
            )
        except Exception as exc:
            descriptor.loading = False
            if token.cancelled:
                return
            descriptor.loaded = False
            self._counters.failed_loads += 1
            logger.exception("Failed to load chunk [{}, {})", start, end)
            self._emit(LoaderEvent(EventKind.ERROR, start, end, error=str(exc)))
            return

        if token.cancelled:
            descriptor.loading = False
            logger.debug("Discarding chunk [{}, {}) fetched before reset", start, end)
            return

        self._latencies.append(self._clock() - began)
        fetched = tuple(records[: end - start])
        self._cache.put(start, end, fetched)
        self._commit(descriptor, fetched)
        self._counters.load_operations += 1
        logger.debug("Loaded chunk [{}, {}) with {} records", start, end, len(fetched))
        self._emit(LoaderEvent(EventKind.LOAD, start, end, fetched))

    def _commit(self, descriptor: ChunkDescriptor, records: tuple[Record, ...]) -> None:
        for offset, record in enumerate(records):
            self._store[descriptor.start + offset] = record
        descriptor.loading = False
        descriptor.loaded = True
        descriptor.last_accessed = self._clock()

    # --- Queries and commands ---

    def get_item(self, index: int) -> Record | None:
        """Record at index, or None while it is pending."""
        descriptor = self._descriptors.get(index // self.config.chunk_size) if index >= 0 else None
        if descriptor is not None:
            descriptor.last_accessed = self._clock()
            self._cache.touch(descriptor.start, descriptor.end)
        return self._store.get(index)

    def is_range_loaded(self, start: int, end: int) -> bool:
        for index in self._chunk_indices(start, end):
            descriptor = self._descriptors.get(index)
            if descriptor is None or not descriptor.loaded:
                return False
        return True

    async def force_load_range(self, start: int, end: int) -> None:
        """Load ``[start, end)`` now, without debounce or load-ahead."""
        token = self._token
        for index in self._chunk_indices(start, end):
            descriptor = self._descriptor(index, 0)
            self._queue.discard(index)
            if descriptor.loaded or descriptor.loading:
                continue
            await self._load_chunk(descriptor, token)
            if token.cancelled:
                return
        if not self.is_range_loaded(start, end) and self._drain_task is not None:
            # Part of the range is in flight on the drain task.
            if not self._drain_task.done() and self._drain_token is token:
                await self._drain_task

    async def initial_load(self) -> None:
        """Load the first ``initial_load_size`` items."""
        await self.force_load_range(0, min(self.config.initial_load_size, self.total_items))

    def snapshot(self) -> dict[int, Record]:
        """Sparse copy of the loaded items."""
        return dict(self._store)

    def reset(self, total_items: int | None = None) -> None:
        """Drop every chunk, the cache and pending work."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._token.cancel()
        self._token = CancellationToken()
        if total_items is not None:
            self.total_items = max(0, total_items)
        self._descriptors.clear()
        self._store.clear()
        self._cache.clear()
        self._queue.clear()
        self._latencies.clear()
        self._counters = LoadingMetrics()
        self._viewport = None
        logger.debug("Loader reset ({} items)", self.total_items)

    async def aclose(self) -> None:
        self.reset()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._drain_task = None
