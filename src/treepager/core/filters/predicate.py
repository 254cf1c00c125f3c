"""Immutable filter predicates.

Every predicate can be evaluated against a loaded ``Record``, compiled to an
SQLite ``WHERE`` fragment with positional parameters, and serialized to plain
data for transport. Attribute names resolve to record columns first and to
keys of the JSON ``attributes`` column otherwise.
"""

import re
from dataclasses import dataclass
from typing import Any

from treepager.core.hierarchy.path import parse_path, path_sort_key
from treepager.models.node import STANDARD_FIELDS, Record

_ATTRIBUTE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SEGMENT_COUNT_FUNCTION = "tp_segment_count"
PATH_IN_RANGE_FUNCTION = "tp_path_in_range"
PATH_SORT_FUNCTION = "tp_path_sort_key"


def column_expression(attribute: str) -> str:
    if not _ATTRIBUTE_RE.match(attribute):
        msg = f"Invalid attribute name: {attribute!r}"
        raise ValueError(msg)
    if attribute in STANDARD_FIELDS:
        return attribute
    return f"json_extract(attributes, '$.{attribute}')"


def segment_count(path: str | None) -> int | None:
    """Number of segments of a valid path, None otherwise."""
    segments = parse_path(path)
    return None if segments is None else len(segments)


def path_in_range(path: str | None, start: str | None, end: str | None) -> bool:
    """True when start <= path < end in numeric path order; open bounds allowed."""
    if parse_path(path) is None:
        return False
    key = path_sort_key(path)
    if start is not None and key < path_sort_key(start):
        return False
    return not (end is not None and key >= path_sort_key(end))


def path_sort_text(path: str | None) -> str:
    """Text key that sorts valid paths numerically and malformed ones last."""
    segments = parse_path(path)
    if segments is None:
        return "~" + (path or "")
    return "".join(f"{s:010d}." for s in segments)


def sql_functions() -> dict[str, tuple[int, Any]]:
    """SQL functions a connection must provide for compiled predicates."""
    return {
        SEGMENT_COUNT_FUNCTION: (1, segment_count),
        PATH_IN_RANGE_FUNCTION: (3, lambda p, s, e: int(path_in_range(p, s, e))),
        PATH_SORT_FUNCTION: (1, path_sort_text),
    }


def _ordered(value: Any, bound: Any, *, at_most: bool) -> bool:
    if value is None:
        return False
    try:
        return value <= bound if at_most else value >= bound
    except TypeError:
        return False


@dataclass(frozen=True)
class NoRestriction:
    """Matches every record."""

    def matches(self, record: Record) -> bool:
        return True

    def to_sql(self) -> tuple[str, list[Any]]:
        return "1 = 1", []

    def to_dict(self) -> dict[str, Any]:
        return {"op": "all"}


@dataclass(frozen=True)
class EmptyResult:
    """Matches nothing."""

    def matches(self, record: Record) -> bool:
        return False

    def to_sql(self) -> tuple[str, list[Any]]:
        return "0 = 1", []

    def to_dict(self) -> dict[str, Any]:
        return {"op": "none"}


@dataclass(frozen=True)
class Equals:
    attribute: str
    value: Any

    def matches(self, record: Record) -> bool:
        return record.value(self.attribute) == self.value

    def to_sql(self) -> tuple[str, list[Any]]:
        if self.value is None:
            return f"{column_expression(self.attribute)} IS NULL", []
        return f"{column_expression(self.attribute)} = ?", [self.value]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "eq", "attribute": self.attribute, "value": self.value}


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""

    attribute: str
    text: str

    def matches(self, record: Record) -> bool:
        value = record.value(self.attribute)
        if value is None:
            return False
        return self.text.lower() in str(value).lower()

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"instr(lower({column_expression(self.attribute)}), lower(?)) > 0", [self.text]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "contains", "attribute": self.attribute, "value": self.text}


@dataclass(frozen=True)
class StartsWith:
    attribute: str
    prefix: str

    def matches(self, record: Record) -> bool:
        value = record.value(self.attribute)
        return isinstance(value, str) and value.startswith(self.prefix)

    def to_sql(self) -> tuple[str, list[Any]]:
        column = column_expression(self.attribute)
        return f"substr({column}, 1, length(?)) = ?", [self.prefix, self.prefix]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "startswith", "attribute": self.attribute, "value": self.prefix}


@dataclass(frozen=True)
class AtMost:
    attribute: str
    bound: Any

    def matches(self, record: Record) -> bool:
        return _ordered(record.value(self.attribute), self.bound, at_most=True)

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{column_expression(self.attribute)} <= ?", [self.bound]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "le", "attribute": self.attribute, "value": self.bound}


@dataclass(frozen=True)
class AtLeast:
    attribute: str
    bound: Any

    def matches(self, record: Record) -> bool:
        return _ordered(record.value(self.attribute), self.bound, at_most=False)

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{column_expression(self.attribute)} >= ?", [self.bound]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "ge", "attribute": self.attribute, "value": self.bound}


@dataclass(frozen=True)
class InSet:
    attribute: str
    values: frozenset[Any]

    def matches(self, record: Record) -> bool:
        value = record.value(self.attribute)
        try:
            return value in self.values
        except TypeError:
            return False

    def to_sql(self) -> tuple[str, list[Any]]:
        if not self.values:
            return "0 = 1", []
        ordered = sorted(self.values, key=str)
        placeholders = ", ".join("?" * len(ordered))
        return f"{column_expression(self.attribute)} IN ({placeholders})", ordered

    def to_dict(self) -> dict[str, Any]:
        return {"op": "in", "attribute": self.attribute, "value": sorted(self.values, key=str)}


@dataclass(frozen=True)
class SegmentCount:
    """Matches records whose path attribute has exactly ``count`` segments."""

    attribute: str
    count: int

    def matches(self, record: Record) -> bool:
        return segment_count(record.value(self.attribute)) == self.count

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{SEGMENT_COUNT_FUNCTION}({column_expression(self.attribute)}) = ?", [self.count]

    def to_dict(self) -> dict[str, Any]:
        return {"op": "segments", "attribute": self.attribute, "value": self.count}


@dataclass(frozen=True)
class PathRange:
    """Matches paths in ``[start, end)`` by numeric path order."""

    attribute: str
    start: str | None = None
    end: str | None = None

    def matches(self, record: Record) -> bool:
        return path_in_range(record.value(self.attribute), self.start, self.end)

    def to_sql(self) -> tuple[str, list[Any]]:
        column = column_expression(self.attribute)
        return f"{PATH_IN_RANGE_FUNCTION}({column}, ?, ?) = 1", [self.start, self.end]

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": "path_range",
            "attribute": self.attribute,
            "value": [self.start, self.end],
        }


@dataclass(frozen=True)
class And:
    children: tuple["Predicate", ...]

    def matches(self, record: Record) -> bool:
        return all(c.matches(record) for c in self.children)

    def to_sql(self) -> tuple[str, list[Any]]:
        return _join(self.children, "AND", "1 = 1")

    def to_dict(self) -> dict[str, Any]:
        return {"op": "and", "children": [c.to_dict() for c in self.children]}


@dataclass(frozen=True)
class Or:
    children: tuple["Predicate", ...]

    def matches(self, record: Record) -> bool:
        return any(c.matches(record) for c in self.children)

    def to_sql(self) -> tuple[str, list[Any]]:
        return _join(self.children, "OR", "0 = 1")

    def to_dict(self) -> dict[str, Any]:
        return {"op": "or", "children": [c.to_dict() for c in self.children]}


Predicate = (
    NoRestriction
    | EmptyResult
    | Equals
    | Contains
    | StartsWith
    | AtMost
    | AtLeast
    | InSet
    | SegmentCount
    | PathRange
    | And
    | Or
)

NO_RESTRICTION = NoRestriction()
EMPTY_RESULT = EmptyResult()


def _join(children: tuple[Predicate, ...], keyword: str, empty: str) -> tuple[str, list[Any]]:
    if not children:
        return empty, []
    parts: list[str] = []
    params: list[Any] = []
    for child in children:
        sql, child_params = child.to_sql()
        parts.append(f"({sql})")
        params.extend(child_params)
    return f" {keyword} ".join(parts), params


def and_(*predicates: Predicate | None) -> Predicate:
    """Conjunction that flattens nested ANDs and drops trivial terms."""
    terms: list[Predicate] = []
    for p in predicates:
        if p is None or isinstance(p, NoRestriction):
            continue
        if isinstance(p, EmptyResult):
            return EMPTY_RESULT
        if isinstance(p, And):
            terms.extend(p.children)
        else:
            terms.append(p)
    if not terms:
        return NO_RESTRICTION
    return terms[0] if len(terms) == 1 else And(tuple(terms))


def or_(*predicates: Predicate | None) -> Predicate:
    """Disjunction that flattens nested ORs and drops trivial terms."""
    terms: list[Predicate] = []
    for p in predicates:
        if p is None or isinstance(p, EmptyResult):
            continue
        if isinstance(p, NoRestriction):
            return NO_RESTRICTION
        if isinstance(p, Or):
            terms.extend(p.children)
        else:
            terms.append(p)
    if not terms:
        return EMPTY_RESULT
    return terms[0] if len(terms) == 1 else Or(tuple(terms))


_LEAF_TYPES: dict[str, Any] = {
    "eq": Equals,
    "contains": Contains,
    "startswith": StartsWith,
    "le": AtMost,
    "ge": AtLeast,
    "segments": SegmentCount,
}


def predicate_from_dict(data: dict[str, Any]) -> Predicate:
    """Rebuild a predicate from its ``to_dict`` form."""
    op = data.get("op")
    if op == "all":
        return NO_RESTRICTION
    if op == "none":
        return EMPTY_RESULT
    if op == "and":
        return And(tuple(predicate_from_dict(c) for c in data["children"]))
    if op == "or":
        return Or(tuple(predicate_from_dict(c) for c in data["children"]))
    if op == "in":
        return InSet(data["attribute"], frozenset(data["value"]))
    if op == "path_range":
        start, end = data["value"]
        return PathRange(data["attribute"], start, end)
    leaf = _LEAF_TYPES.get(op or "")
    if leaf is None:
        msg = f"Unknown predicate operator: {op!r}"
        raise ValueError(msg)
    return leaf(data["attribute"], data["value"])
