"""Hierarchy path algebra.

A hierarchy path encodes a node's position as the 1-based sibling index at
every depth, dot separated with a trailing separator: ``"1.3."`` is the third
child of the first root. Ancestry is a literal prefix test on the serialized
form, so ``"1.1."`` is not an ancestor of ``"1.10."``.

Segments are positive ASCII integers without leading zeros. Malformed paths
are never an error here. They parse to ``None``, take no part in ancestor or
descendant computations and sort after every valid path.
"""

import re
from collections.abc import Iterable

SEPARATOR = "."

# Canonical segment: ASCII digits, no leading zero.
_SEGMENT = re.compile(r"[1-9][0-9]*", re.ASCII)


def parse_path(path: str | None) -> tuple[int, ...] | None:
    """Split a path into its positive integer segments, or None if malformed."""
    if not path or not path.endswith(SEPARATOR):
        return None
    parts = path[:-1].split(SEPARATOR)
    segments: list[int] = []
    for part in parts:
        if not _SEGMENT.fullmatch(part):
            return None
        segments.append(int(part))
    return tuple(segments)


def format_path(segments: Iterable[int]) -> str:
    """Serialize segments back to ``"a.b.c."`` form."""
    items = list(segments)
    if not items:
        msg = "A hierarchy path needs at least one segment"
        raise ValueError(msg)
    if any(s < 1 for s in items):
        msg = f"Path segments must be positive, got {items!r}"
        raise ValueError(msg)
    return "".join(f"{s}{SEPARATOR}" for s in items)


def is_valid_path(path: str | None) -> bool:
    return parse_path(path) is not None


def depth_of(path: str | None) -> int | None:
    """Zero-based depth, or None when the path is malformed."""
    segments = parse_path(path)
    return None if segments is None else len(segments) - 1


def is_descendant_of(path: str | None, ancestor_path: str | None) -> bool:
    """True iff ancestor_path is a proper prefix of path."""
    if path is None or ancestor_path is None:
        return False
    if parse_path(path) is None or parse_path(ancestor_path) is None:
        return False
    return path != ancestor_path and path.startswith(ancestor_path)


def parent_of(path: str | None) -> str | None:
    """Path of the immediate parent; None for roots and malformed paths."""
    segments = parse_path(path)
    if segments is None or len(segments) < 2:
        return None
    return format_path(segments[:-1])


def ancestor_chain(path: str | None) -> tuple[str, ...]:
    """All proper ancestor paths, root first."""
    segments = parse_path(path)
    if segments is None:
        return ()
    return tuple(format_path(segments[:i]) for i in range(1, len(segments)))


def ancestor_paths_for(paths: Iterable[str | None]) -> frozenset[str]:
    """Union of the ancestor chains of paths.

    A path that is itself an ancestor of another given path is included.
    """
    ancestors: set[str] = set()
    for path in paths:
        ancestors.update(ancestor_chain(path))
    return frozenset(ancestors)


def sibling_position(path: str | None) -> int | None:
    """1-based position among siblings, taken from the last segment."""
    segments = parse_path(path)
    return None if segments is None else segments[-1]


def path_sort_key(path: str | None) -> tuple[int, tuple[int, ...], str]:
    """Sort key ordering valid paths numerically and malformed ones last."""
    segments = parse_path(path)
    if segments is None:
        return (1, (), path or "")
    return (0, segments, "")


def compare_paths(a: str | None, b: str | None) -> int:
    """Three-way numeric comparison: negative, zero or positive."""
    key_a = path_sort_key(a)
    key_b = path_sort_key(b)
    return (key_a > key_b) - (key_a < key_b)


def child_path(parent: str | None, position: int) -> str:
    """Path of the child at position under parent (a root when parent is None)."""
    if parent is None:
        return format_path((position,))
    segments = parse_path(parent)
    if segments is None:
        msg = f"Cannot derive a child of malformed path {parent!r}"
        raise ValueError(msg)
    return format_path((*segments, position))


def next_child_path(parent: str | None, sibling_paths: Iterable[str | None]) -> str:
    """Path for a new last child of parent, given the existing siblings."""
    parent_depth = -1 if parent is None else depth_of(parent)
    if parent_depth is None:
        msg = f"Cannot derive a child of malformed path {parent!r}"
        raise ValueError(msg)
    highest = 0
    for sibling in sibling_paths:
        position = sibling_position(sibling)
        if position is None or depth_of(sibling) != parent_depth + 1:
            continue
        if parent is not None and not is_descendant_of(sibling, parent):
            continue
        highest = max(highest, position)
    return child_path(parent, highest + 1)
