"""Parse outline JSON documents into records."""

from typing import Any

from loguru import logger

from treepager.core.hierarchy.synthesis import PathMode, PathSynthesizer, detect_path_mode
from treepager.models.node import Record

ROOT_ID = "root"

# Keys of a raw node that map onto Record fields rather than attributes.
_RESERVED_KEYS = frozenset({"id", "content", "note", "children", "path"})


def parse_outline(data: dict[str, Any]) -> tuple[list[Record], PathMode]:
    """Parse an outline dict into records in depth-first pre-order.

    The node with id ``"root"`` is a virtual container and is not returned;
    its children become top-level records. ``sort_order`` is the pre-order
    position and ``depth`` is zero for top-level records. Nodes carrying a
    ``path`` keep it; otherwise paths are synthesized from sibling order.

    Args:
        data: Raw outline data with a ``nodes`` list.

    Returns:
        Tuple of (records, path mode in use).
    """
    raw_nodes = data["nodes"]
    nodes_by_id: dict[str, dict[str, Any]] = {str(n["id"]): n for n in raw_nodes}
    if ROOT_ID not in nodes_by_id:
        msg = f"Outline has no {ROOT_ID!r} node"
        raise ValueError(msg)

    root = nodes_by_id.pop(ROOT_ID)
    records: list[Record] = []
    todo: list[tuple[str, str | None, int]] = [
        (str(c), None, 0) for c in reversed(root.get("children", []))
    ]
    while todo:
        node_id, parent_id, depth = todo.pop()
        raw = nodes_by_id.pop(node_id, None)
        if raw is None:
            logger.warning("Skipping missing or repeated child {!r}", node_id)
            continue
        children = [str(c) for c in raw.get("children", [])]
        records.append(
            Record(
                id=node_id,
                parent_id=parent_id,
                label=raw.get("content", ""),
                note=raw.get("note", ""),
                path=raw.get("path"),
                sort_order=len(records),
                depth=depth,
                child_count=len(children),
                attributes={k: v for k, v in raw.items() if k not in _RESERVED_KEYS},
            )
        )
        todo.extend((c, node_id, depth + 1) for c in reversed(children))

    if nodes_by_id:
        msg = f"Orphaned nodes: {sorted(nodes_by_id.keys())!r}"
        raise ValueError(msg)

    mode = detect_path_mode(records)
    if mode == PathMode.SYNTHESIZED:
        records = PathSynthesizer().with_paths(records)
    return records, mode
