"""A tree view session: one data source, its filters, loader and workers.

Filter changes are applied in one step: the raw search or user predicate is
probed for matches, the orchestrator derives the combined predicate, the
source counts it, and the loader restarts under it with an initial load.
The combined predicate stays fixed until the next filter change, so indices
of the flattened order remain stable while the user scrolls. Matches found
in chunks loaded meanwhile are merged into the orchestrator and shape the
expansion of the next change.
"""

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from treepager.config import MATCH_PROBE_LIMIT, LoaderConfig
from treepager.core.filters.orchestrator import FilterConfig, FilterOrchestrator
from treepager.core.filters.predicate import Predicate
from treepager.core.filters.search_policy import SearchPolicy
from treepager.core.loading.loader import ChunkLoader
from treepager.core.workers.executor import BackgroundExecutor, ProgressCallback
from treepager.errors import DataSourceError
from treepager.models.node import (
    EventKind,
    FetchWindow,
    LoaderEvent,
    LoadingMetrics,
    Record,
    SortSpec,
)
from treepager.protocols import BackgroundExecutorProtocol, DataSourceProtocol


class TreeSession:
    """Glue between the data source, filter orchestrator, chunk loader and executor."""

    def __init__(
        self,
        source: DataSourceProtocol,
        *,
        loader_config: LoaderConfig | None = None,
        filter_config: FilterConfig | None = None,
        search_policy: SearchPolicy | None = None,
        executor: BackgroundExecutorProtocol | None = None,
        sort: SortSpec | None = None,
        probe_limit: int = MATCH_PROBE_LIMIT,
    ) -> None:
        self.source = source
        self.orchestrator = FilterOrchestrator(
            filter_config or FilterConfig(indexed_attributes=source.indexed_attributes),
            search_policy=search_policy,
        )
        self.loader = ChunkLoader(source, loader_config, sort=sort)
        self.executor = executor or BackgroundExecutor()
        self.probe_limit = probe_limit
        self._search_timer: asyncio.TimerHandle | None = None
        self._search_task: asyncio.Task[bool] | None = None
        self.loader.add_listener(self._on_loader_event)

    @property
    def total_items(self) -> int:
        return self.loader.total_items

    @property
    def predicate(self) -> Predicate:
        return self.loader.predicate

    @property
    def metrics(self) -> LoadingMetrics:
        return self.loader.metrics

    async def open(self) -> int:
        """Count the unfiltered view and load its first items."""
        return await self.apply_filters()

    async def apply_filters(self) -> int:
        """Re-derive the combined predicate and restart loading under it."""
        match_predicate = self.orchestrator.active_match_predicate()
        if match_predicate is not None:
            await self._probe_matches(match_predicate)

        combined = self.orchestrator.get_combined_filter()
        total = await self.source.count(combined)
        self.loader.predicate = combined
        self.loader.reset(total)
        await self.loader.initial_load()
        logger.info(
            "View has {} items (expansion: {})",
            total,
            self.orchestrator.last_expansion_tier,
        )
        return total

    async def _probe_matches(self, predicate: Predicate) -> None:
        try:
            records = await self.source.fetch(
                predicate, FetchWindow(0, self.probe_limit), self.loader.sort
            )
        except DataSourceError:
            logger.exception("Match probe failed; ancestor expansion falls back to roots")
            records = []
        self.orchestrator.update_matching_nodes(records)

    def _on_loader_event(self, event: LoaderEvent) -> None:
        if event.kind != EventKind.LOAD or not event.records:
            return
        if self.orchestrator.active_match_predicate() is not None:
            self.orchestrator.update_matching_nodes(event.records, merge=True)

    # --- Filter intents ---

    async def set_search(self, text: str | None) -> bool:
        """Search for text; returns False when the query was too short to apply."""
        accepted = self.orchestrator.set_search_filter(text)
        await self.apply_filters()
        return accepted

    def queue_search(self, text: str) -> float | None:
        """Apply text as the search once the typing delay has passed.

        Each call replaces the pending one. Returns the delay in seconds, or
        None when the query is too short to be issued. Needs a running loop.
        """
        self._cancel_pending_search()
        delay = self.orchestrator.search_policy.search_delay(text)
        if delay is None:
            return None
        loop = asyncio.get_running_loop()
        self._search_timer = loop.call_later(delay, self._start_search, text)
        return delay

    def _start_search(self, text: str) -> None:
        self._search_timer = None
        self._search_task = asyncio.get_running_loop().create_task(self.set_search(text))

    def _cancel_pending_search(self) -> None:
        if self._search_timer is not None:
            self._search_timer.cancel()
            self._search_timer = None

    async def wait_search(self) -> bool | None:
        """Wait for a queued search; returns whether it was applied."""
        while self._search_timer is not None:
            await asyncio.sleep(0.01)
        if self._search_task is None:
            return None
        task, self._search_task = self._search_task, None
        return await task

    async def set_user_filters(self, values: Mapping[str, Any]) -> None:
        self.orchestrator.set_user_filters(values)
        await self.apply_filters()

    async def set_parent(self, parent_id: str | None = None, *, parent_path: str | None = None) -> None:
        self.orchestrator.set_parent_filter(parent_id, parent_path=parent_path)
        await self.apply_filters()

    async def set_structure_range(self, start: str | None, end: str | None = None) -> None:
        self.orchestrator.set_structure_filter(start, end)
        await self.apply_filters()

    async def set_subtree(self, root_paths: Iterable[str] | None) -> None:
        self.orchestrator.set_subtree_filter(root_paths)
        await self.apply_filters()

    async def set_expanded(self, expanded_paths: Iterable[str] | None) -> None:
        self.orchestrator.set_expansion_filter(expanded_paths)
        await self.apply_filters()

    async def clear_filters(self) -> None:
        self.orchestrator.clear_all()
        await self.apply_filters()

    # --- Viewport ---

    def update_viewport(self, start: int, end: int) -> None:
        """Move the viewport; fetches are scheduled on the running event loop."""
        self.loader.update_viewport(start, end)

    def get_item(self, index: int) -> Record | None:
        return self.loader.get_item(index)

    def snapshot(self) -> dict[int, Record]:
        return self.loader.snapshot()

    async def load_window(self, start: int, end: int) -> dict[int, Record]:
        """Move the viewport to ``[start, end)`` and wait until it is loaded."""
        self.loader.update_viewport(start, end)
        await self.loader.wait_idle()
        await self.loader.force_load_range(start, end)
        return {i: r for i, r in self.loader.snapshot().items() if start <= i < end}

    # --- Background operations on loaded records ---

    def _loaded_payload(self) -> list[dict[str, Any]]:
        return [r.to_dict() for _, r in sorted(self.loader.snapshot().items())]

    async def search_loaded(
        self,
        query: str,
        *,
        limit: int = 100,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """Score loaded records against query without asking the source."""
        payload = {"records": self._loaded_payload(), "query": query, "limit": limit}
        return await self.executor.execute("search", payload, on_progress)

    async def build_subtree(
        self,
        root_id: str | None = None,
        *,
        max_depth: int | None = None,
    ) -> list[dict[str, Any]]:
        """Nest the loaded records below root_id."""
        payload = {"records": self._loaded_payload(), "root_id": root_id, "max_depth": max_depth}
        return await self.executor.execute("build_subtree", payload)

    async def recompute_paths(self) -> dict[str, str]:
        """Synthesized paths for the loaded records that lack one."""
        return await self.executor.execute("recompute_paths", {"records": self._loaded_payload()})

    async def close(self) -> None:
        self._cancel_pending_search()
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
            try:
                await self._search_task
            except asyncio.CancelledError:
                pass
        self._search_task = None
        await self.loader.aclose()
        self.executor.close()
