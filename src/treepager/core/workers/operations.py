"""Stateless operations run by the background executor.

Each operation takes a plain-data payload and returns plain data, so it can
run on any thread without touching loader or orchestrator state. A progress
callback, when given, is invoked as ``progress(completed, total)``.
"""

from collections.abc import Callable
from typing import Any

from treepager.core.filters.predicate import predicate_from_dict
from treepager.core.hierarchy.synthesis import PathSynthesizer
from treepager.core.tree.arena import NodeArena
from treepager.models.node import Record

Progress = Callable[[int, int], None]
Operation = Callable[[dict[str, Any], Progress | None], Any]

SEARCH_RESULT_LIMIT = 100
EXACT_MATCH_SCORE = 100
PARTIAL_MATCH_SCORE = 50
_PROGRESS_STEP = 100


def _records(payload: dict[str, Any]) -> list[Record]:
    return [Record.from_dict(r) for r in payload.get("records", [])]


def search_records(payload: dict[str, Any], progress: Progress | None = None) -> list[dict[str, Any]]:
    """Score records whose label contains the query; exact matches rank first."""
    query = str(payload.get("query", "")).strip().lower()
    limit = int(payload.get("limit", SEARCH_RESULT_LIMIT))
    records = _records(payload)
    if not query:
        return []

    hits: list[dict[str, Any]] = []
    for i, record in enumerate(records, start=1):
        label = record.label.lower()
        if query in label:
            score = EXACT_MATCH_SCORE if label == query else PARTIAL_MATCH_SCORE
            hits.append({"id": record.id, "label": record.label, "path": record.path, "score": score})
        if progress is not None and (i % _PROGRESS_STEP == 0 or i == len(records)):
            progress(i, len(records))
    hits.sort(key=lambda h: -h["score"])
    return hits[:limit]


def filter_records(payload: dict[str, Any], progress: Progress | None = None) -> list[str]:
    """Ids of the records matching a serialized predicate."""
    predicate = predicate_from_dict(payload["predicate"])
    records = _records(payload)
    matched: list[str] = []
    for i, record in enumerate(records, start=1):
        if predicate.matches(record):
            matched.append(record.id)
        if progress is not None and (i % _PROGRESS_STEP == 0 or i == len(records)):
            progress(i, len(records))
    return matched


def build_subtree(payload: dict[str, Any], progress: Progress | None = None) -> list[dict[str, Any]]:
    """Nest flat records under ``root_id`` (None for the whole forest)."""
    arena = NodeArena(_records(payload))
    tree = arena.subtree(payload.get("root_id"), max_depth=payload.get("max_depth"))
    if progress is not None:
        progress(len(arena), len(arena))
    return tree


def recompute_paths(payload: dict[str, Any], progress: Progress | None = None) -> dict[str, str]:
    """Synthesize hierarchy paths for records without one."""
    paths = PathSynthesizer().assign(_records(payload))
    if progress is not None:
        progress(len(paths), len(paths))
    return paths


OPERATIONS: dict[str, Operation] = {
    "search": search_records,
    "filter": filter_records,
    "build_subtree": build_subtree,
    "recompute_paths": recompute_paths,
}
