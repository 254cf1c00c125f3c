"""Tree navigation over the record store: lookups, breadcrumbs, children."""

import sqlite3

from treepager.core.hierarchy.path import ancestor_chain
from treepager.models.node import Breadcrumb, Record
from treepager.sources.sqlite import row_to_record

_COLUMNS = "id, parent_id, label, note, path, sort_order, depth, child_count, attributes"


def get_record(conn: sqlite3.Connection, node_id: str) -> Record | None:
    row = conn.execute(f"SELECT {_COLUMNS} FROM records WHERE id = ?", (node_id,)).fetchone()
    return row_to_record(row) if row else None


def get_breadcrumbs(conn: sqlite3.Connection, *, path: str | None) -> tuple[Breadcrumb, ...]:
    """Get ancestor breadcrumbs for a node given its hierarchy path.

    Returns breadcrumbs in order from root to immediate parent (excludes the node itself).
    A malformed path has no known ancestors.
    """
    ancestors = ancestor_chain(path)
    if not ancestors:
        return ()

    placeholders = ",".join("?" * len(ancestors))
    rows = conn.execute(
        f"SELECT id, label, depth, path FROM records WHERE path IN ({placeholders})",
        ancestors,
    ).fetchall()
    order = {p: i for i, p in enumerate(ancestors)}
    rows.sort(key=lambda r: order[r[3]])
    return tuple(
        Breadcrumb(node_id=r[0], label=r[1], depth=order[r[3]], path=r[3]) for r in rows
    )


def get_children(
    conn: sqlite3.Connection,
    *,
    parent_id: str | None,
    limit: int = 50,
) -> tuple[Record, ...]:
    """Get direct children of a node (top-level records for None), in sort order."""
    if parent_id is None:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM records WHERE parent_id IS NULL "
            "ORDER BY sort_order LIMIT ?",
            (limit,),
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM records WHERE parent_id = ? ORDER BY sort_order LIMIT ?",
            (parent_id, limit),
        ).fetchall()
    return tuple(row_to_record(r) for r in rows)
