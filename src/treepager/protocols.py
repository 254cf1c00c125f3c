"""Protocols for dependency injection in treepager."""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from treepager.cancellation import CancellationToken
from treepager.core.filters.predicate import Predicate
from treepager.models.node import FetchWindow, Record, SortSpec, WorkerProgress


@runtime_checkable
class DataSourceProtocol(Protocol):
    """Protocol for paged, filterable record sources."""

    @property
    def indexed_attributes(self) -> frozenset[str]:
        """Attributes the source can filter and sort on efficiently."""
        ...

    async def fetch(
        self,
        predicate: Predicate,
        window: FetchWindow,
        sort: SortSpec,
        *,
        token: CancellationToken | None = None,
    ) -> list[Record]:
        """Return records satisfying predicate, ordered by sort, within window."""
        ...

    async def count(self, predicate: Predicate) -> int:
        """Return the number of records satisfying predicate."""
        ...


@runtime_checkable
class BackgroundExecutorProtocol(Protocol):
    """Protocol for off-thread execution of named operations."""

    async def execute(
        self,
        operation: str,
        payload: dict[str, Any],
        on_progress: Callable[[WorkerProgress], None] | None = None,
    ) -> Any:
        """Run a named operation and return its result."""
        ...

    def close(self) -> None:
        """Release any pooled workers."""
        ...
