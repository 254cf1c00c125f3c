"""Render loaded windows and assembled subtrees as markdown."""

import io
from collections.abc import Mapping
from typing import Any

from treepager.models.node import Record

PENDING_MARKER = "- ... (loading)"


def _write_item(
    out: io.StringIO,
    *,
    depth: int,
    label: str,
    note: str,
    checked: bool | None,
    include_notes: bool,
) -> None:
    indent = "    " * depth
    prefix = "- "
    if checked is not None:
        prefix = "- [x] " if checked else "- [ ] "

    lines = label.split("\n")
    out.write(f"{indent}{prefix}{lines[0]}\n")
    for line in lines[1:]:
        out.write(f"{indent}  {line}\n")

    if include_notes and note:
        for note_line in note.split("\n"):
            out.write(f"{indent}  > {note_line}\n")


def render_window_as_markdown(
    items: Mapping[int, Record],
    start: int,
    end: int,
    *,
    include_notes: bool = True,
) -> str:
    """Render flattened indices ``[start, end)`` as indented markdown.

    Indices missing from items are still pending and render as a placeholder
    row, so the output always has one entry per index.
    """
    out = io.StringIO()
    for index in range(start, end):
        record = items.get(index)
        if record is None:
            out.write(f"{PENDING_MARKER}\n")
            continue
        _write_item(
            out,
            depth=record.depth or 0,
            label=record.label,
            note=record.note,
            checked=record.attributes.get("checked"),
            include_notes=include_notes,
        )
    return out.getvalue()


def render_tree_as_markdown(
    nodes: list[dict[str, Any]],
    *,
    include_notes: bool = True,
) -> str:
    """Render nested node dicts (children under ``"children"``) as markdown."""
    out = io.StringIO()
    stack = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        _write_item(
            out,
            depth=depth,
            label=node.get("label", ""),
            note=node.get("note", ""),
            checked=(node.get("attributes") or {}).get("checked"),
            include_notes=include_notes,
        )
        children = node.get("children")
        if children is None and node.get("child_count"):
            count = node["child_count"]
            noun = "child" if count == 1 else "children"
            out.write(f"{'    ' * (depth + 1)}- ... ({count} more {noun}, id={node['id']})\n")
            continue
        stack.extend((child, depth + 1) for child in reversed(children or []))
    return out.getvalue()
