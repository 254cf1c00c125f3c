"""Builders for the predicates a tree view asks its data source for."""

from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from treepager.core.filters.predicate import (
    AtMost,
    Contains,
    Equals,
    InSet,
    PathRange,
    Predicate,
    SegmentCount,
    StartsWith,
    and_,
    or_,
)
from treepager.core.hierarchy.path import (
    ancestor_chain,
    ancestor_paths_for,
    format_path,
    parse_path,
)


def children_filter(parent_attribute: str, parent_id: str | None) -> Predicate | None:
    """Direct children of parent_id by parent reference."""
    if not parent_id:
        return None
    return Equals(parent_attribute, parent_id)


def path_children_filter(path_attribute: str, parent_path: str | None) -> Predicate | None:
    """Direct children of parent_path (roots when parent_path is None)."""
    if parent_path is None:
        return SegmentCount(path_attribute, 1)
    segments = parse_path(parent_path)
    if segments is None:
        logger.warning("Cannot build a children filter for malformed path {!r}", parent_path)
        return None
    return and_(
        StartsWith(path_attribute, parent_path),
        SegmentCount(path_attribute, len(segments) + 1),
    )


def path_range_filter(path_attribute: str, start: str, end: str) -> Predicate | None:
    """Nodes from start through end, including the subtree of end."""
    start_segments = parse_path(start)
    end_segments = parse_path(end)
    if start_segments is None or end_segments is None:
        logger.warning("Cannot build a range filter for {!r}..{!r}", start, end)
        return None
    after_end = format_path((*end_segments[:-1], end_segments[-1] + 1))
    return PathRange(path_attribute, start, after_end)


def subtree_filter(path_attribute: str, prefixes: Iterable[str]) -> Predicate | None:
    """Nodes at or below any of the given paths."""
    terms = [StartsWith(path_attribute, p) for p in prefixes if parse_path(p) is not None]
    if not terms:
        return None
    return or_(*terms)


def search_filter(text: str, attributes: Iterable[str]) -> Predicate | None:
    """Match text against every attribute by type-appropriate comparison.

    Strings use a case-insensitive substring test; numeric and boolean
    equality are added when the text reads as a number or as true/false.
    """
    text = text.strip()
    attributes = list(attributes)
    if not text or not attributes:
        return None

    numeric: float | int | None = None
    try:
        numeric = float(text)
    except ValueError:
        numeric = None
    if numeric is not None and numeric.is_integer():
        numeric = int(numeric)
    boolean = {"true": True, "false": False}.get(text.lower())

    terms: list[Predicate] = []
    for attribute in attributes:
        terms.append(Contains(attribute, text))
        if numeric is not None:
            terms.append(Equals(attribute, numeric))
        if boolean is not None:
            terms.append(Equals(attribute, boolean))
    return or_(*terms)


def root_filter(
    *,
    depth_attribute: str | None = None,
    path_attribute: str | None = None,
    parent_attribute: str | None = None,
    root_depth: int = 0,
) -> Predicate | None:
    """Root-level nodes, by depth, path shape or missing parent, in that order."""
    if depth_attribute:
        return Equals(depth_attribute, root_depth)
    if path_attribute:
        return SegmentCount(path_attribute, 1)
    if parent_attribute:
        return Equals(parent_attribute, None)
    return None


def visible_nodes_filter(path_attribute: str, expanded_paths: Iterable[str]) -> Predicate:
    """Roots plus children of every expanded node whose ancestors are expanded too."""
    expanded = {p for p in expanded_paths if parse_path(p) is not None}
    visible_parents = [
        p for p in expanded if all(a in expanded for a in ancestor_chain(p))
    ]
    terms: list[Predicate | None] = [SegmentCount(path_attribute, 1)]
    terms.extend(path_children_filter(path_attribute, p) for p in sorted(visible_parents))
    return or_(*terms)


def ancestors_by_sort_filter(
    sort_attribute: str,
    depth_attribute: str,
    *,
    max_sort: Any,
    max_depth: int,
) -> Predicate:
    """Nodes no later in flattened order and no deeper than the given bounds."""
    return and_(AtMost(sort_attribute, max_sort), AtMost(depth_attribute, max_depth))


def ancestor_paths_filter(path_attribute: str, paths: Iterable[str | None]) -> Predicate | None:
    """Nodes whose path is a proper ancestor of any given path."""
    ancestors = ancestor_paths_for(paths)
    if not ancestors:
        return None
    return InSet(path_attribute, ancestors)


def user_filter_conditions(values: Mapping[str, Any]) -> list[Predicate]:
    """One condition per attribute: substring match for text, equality otherwise.

    Unset values (None or empty text) are skipped.
    """
    conditions: list[Predicate] = []
    for attribute, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if isinstance(value, str):
            conditions.append(Contains(attribute, value.strip()))
        else:
            conditions.append(Equals(attribute, value))
    return conditions
