"""Local hierarchy path synthesis for sources that do not persist paths."""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from enum import StrEnum

from loguru import logger

from treepager.core.hierarchy.path import child_path, is_valid_path
from treepager.models.node import Record


class PathMode(StrEnum):
    EXTERNAL = "external"
    SYNTHESIZED = "synthesized"


def detect_path_mode(records: Iterable[Record]) -> PathMode:
    """Decide which path mode a record set uses.

    A set where only some records carry a path is a configuration error: it is
    logged and treated as external, since synthesized paths would disagree
    with the persisted ones.
    """
    with_path = 0
    without_path = 0
    for record in records:
        if record.path is None:
            without_path += 1
        else:
            with_path += 1
    if with_path and without_path:
        logger.warning(
            "Mixed hierarchy path modes: {} records carry paths, {} do not; "
            "treating paths as externally assigned",
            with_path,
            without_path,
        )
        return PathMode.EXTERNAL
    return PathMode.EXTERNAL if with_path else PathMode.SYNTHESIZED


class PathSynthesizer:
    """Assigns hierarchy paths from parent links and sibling order.

    Siblings are numbered by ``sort_order`` (input order breaks ties). Paths
    already present on a record are kept as they are and their descendants
    derive from them. Results are cached per node id until invalidated.
    """

    def __init__(self) -> None:
        self._paths: dict[str, str] = {}

    def cached(self, node_id: str) -> str | None:
        return self._paths.get(node_id)

    def assign(self, records: Iterable[Record]) -> dict[str, str]:
        """Return node id to path for every record that can be placed."""
        items = list(records)
        by_id = {r.id: r for r in items}
        children: dict[str | None, list[tuple[int, int, Record]]] = defaultdict(list)
        for position, record in enumerate(items):
            parent = record.parent_id if record.parent_id in by_id else None
            order = record.sort_order if record.sort_order is not None else 0
            children[parent].append((order, position, record))

        result: dict[str, str] = {}
        visited: set[str] = set()
        todo: list[tuple[str | None, str | None]] = [(None, None)]
        while todo:
            parent_id, parent_path = todo.pop()
            siblings = sorted(children.get(parent_id, ()), key=lambda t: (t[0], t[1]))
            for index, (_order, _position, record) in enumerate(siblings, start=1):
                if record.id in visited:
                    continue
                visited.add(record.id)
                path = self._place(record, parent_id, parent_path, index)
                if path is not None:
                    result[record.id] = path
                todo.append((record.id, path))

        unplaced = len(items) - len(visited)
        if unplaced:
            logger.warning("{} records are unreachable from any root (cycle?)", unplaced)
        return result

    def _place(
        self,
        record: Record,
        parent_id: str | None,
        parent_path: str | None,
        index: int,
    ) -> str | None:
        if record.path is not None:
            if is_valid_path(record.path):
                self._paths[record.id] = record.path
                return record.path
            logger.debug("Record {} has malformed path {!r}", record.id, record.path)
            return None
        cached = self._paths.get(record.id)
        if cached is not None:
            return cached
        if parent_id is not None and parent_path is None:
            # Parent position is unknown, so this one is too.
            return None
        path = child_path(parent_path, index)
        self._paths[record.id] = path
        return path

    def with_paths(self, records: Iterable[Record]) -> list[Record]:
        """Copies of records with synthesized paths filled in."""
        items = list(records)
        paths = self.assign(items)
        return [
            r if r.path is not None or r.id not in paths else replace(r, path=paths[r.id])
            for r in items
        ]

    def invalidate(self, node_ids: Iterable[str]) -> None:
        """Forget cached paths, e.g. after nodes were moved."""
        for node_id in node_ids:
            self._paths.pop(node_id, None)

    def clear(self) -> None:
        self._paths.clear()
