"""Domain models for treepager."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Record fields addressable by attribute name in predicates and sorts.
STANDARD_FIELDS: tuple[str, ...] = (
    "id",
    "parent_id",
    "label",
    "note",
    "path",
    "sort_order",
    "depth",
    "child_count",
)


@dataclass(frozen=True)
class Record:
    """A single hierarchical record as returned by a data source."""

    id: str
    parent_id: str | None
    label: str
    note: str = ""
    path: str | None = None
    sort_order: int | None = None
    depth: int | None = None
    child_count: int = 0
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)

    def value(self, name: str) -> Any:
        """Resolve an attribute by name, standard fields first."""
        if name in STANDARD_FIELDS:
            return getattr(self, name)
        return self.attributes.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "label": self.label,
            "note": self.note,
            "path": self.path,
            "sort_order": self.sort_order,
            "depth": self.depth,
            "child_count": self.child_count,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        return cls(
            id=str(data["id"]),
            parent_id=data.get("parent_id"),
            label=data.get("label", ""),
            note=data.get("note", ""),
            path=data.get("path"),
            sort_order=data.get("sort_order"),
            depth=data.get("depth"),
            child_count=data.get("child_count", 0),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass
class ChunkDescriptor:
    """Load state of one contiguous range of the flattened order.

    The range is half-open: ``start <= index < end``.
    """

    start: int
    end: int
    loaded: bool = False
    loading: bool = False
    last_accessed: float = 0.0
    priority: int = 0

    @property
    def size(self) -> int:
        return self.end - self.start

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


@dataclass
class LoadingMetrics:
    """Counters describing chunk loader activity."""

    total_chunks: int = 0
    loaded_chunks: int = 0
    cached_chunks: int = 0
    load_operations: int = 0
    unload_operations: int = 0
    cache_hits: int = 0
    failed_loads: int = 0
    average_load_time: float = 0.0


class EventKind(StrEnum):
    LOAD = "load"
    UNLOAD = "unload"
    ERROR = "error"
    METRICS = "metrics"


@dataclass(frozen=True)
class LoaderEvent:
    """Notification emitted by the chunk loader to its listeners."""

    kind: EventKind
    start: int = 0
    end: int = 0
    records: tuple[Record, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class FetchWindow:
    """Offset and limit of a paged fetch."""

    offset: int
    limit: int


@dataclass(frozen=True)
class SortSpec:
    """Sort attribute for the flattened order."""

    attribute: str = "sort_order"
    descending: bool = False


@dataclass(frozen=True)
class Breadcrumb:
    """A single ancestor in a breadcrumb trail."""

    node_id: str
    label: str
    depth: int
    path: str


@dataclass(frozen=True)
class WorkerProgress:
    """Progress report from a background operation."""

    operation: str
    completed: int
    total: int

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0
