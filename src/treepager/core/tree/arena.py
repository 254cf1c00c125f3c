"""Arena of loaded nodes with id-only parent/child references."""

from collections import defaultdict
from collections.abc import Collection, Iterable
from typing import Any

from treepager.core.hierarchy.path import path_sort_key
from treepager.models.node import Record


def _sibling_key(record: Record) -> tuple[Any, ...]:
    return (
        record.sort_order is None,
        record.sort_order or 0,
        path_sort_key(record.path),
        record.id,
    )


class NodeArena:
    """Nodes indexed by id, related only through id references.

    A node may reference a parent that was never loaded or was discarded;
    it is then treated as a root until the parent arrives. Discarding a node
    never invalidates other nodes.
    """

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._nodes: dict[str, Record] = {}
        self._children: dict[str | None, set[str]] = defaultdict(set)
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> Record | None:
        return self._nodes.get(node_id)

    def add(self, record: Record) -> None:
        previous = self._nodes.get(record.id)
        if previous is not None:
            self._children[previous.parent_id].discard(record.id)
        self._nodes[record.id] = record
        self._children[record.parent_id].add(record.id)

    def discard(self, node_id: str) -> Record | None:
        record = self._nodes.pop(node_id, None)
        if record is not None:
            self._children[record.parent_id].discard(node_id)
        return record

    def children_of(self, node_id: str | None) -> list[Record]:
        ids = self._children.get(node_id, ())
        return sorted((self._nodes[i] for i in ids if i in self._nodes), key=_sibling_key)

    def roots(self) -> list[Record]:
        roots = [
            r for r in self._nodes.values()
            if r.parent_id is None or r.parent_id not in self._nodes
        ]
        return sorted(roots, key=_sibling_key)

    def ancestors_of(self, node_id: str) -> list[Record]:
        """Loaded ancestors, root first; stops at a missing parent or a cycle."""
        chain: list[Record] = []
        seen = {node_id}
        record = self._nodes.get(node_id)
        while record is not None and record.parent_id is not None:
            if record.parent_id in seen:
                break
            seen.add(record.parent_id)
            record = self._nodes.get(record.parent_id)
            if record is not None:
                chain.append(record)
        chain.reverse()
        return chain

    def flatten(self, expanded: Collection[str] | None = None) -> list[Record]:
        """Depth-first order; children are only visited under expanded nodes.

        ``expanded=None`` treats every node as expanded.
        """
        result: list[Record] = []
        seen: set[str] = set()
        stack = list(reversed(self.roots()))
        while stack:
            record = stack.pop()
            if record.id in seen:
                continue
            seen.add(record.id)
            result.append(record)
            if expanded is None or record.id in expanded:
                stack.extend(reversed(self.children_of(record.id)))
        return result

    def subtree(self, node_id: str | None = None, *, max_depth: int | None = None) -> list[dict[str, Any]]:
        """Nested dicts below node_id (or from the roots), children under "children"."""
        start = self.roots() if node_id is None else self.children_of(node_id)
        seen: set[str] = set() if node_id is None else {node_id}
        result: list[dict[str, Any]] = []
        stack = [(r, 1, result) for r in reversed(start)]
        while stack:
            record, depth, siblings = stack.pop()
            if record.id in seen:
                continue
            seen.add(record.id)
            entry = record.to_dict()
            siblings.append(entry)
            if max_depth is None or depth < max_depth:
                entry["children"] = []
                stack.extend(
                    (child, depth + 1, entry["children"])
                    for child in reversed(self.children_of(record.id))
                )
        return result
