"""Tests for the predicate builders used by the filter orchestrator."""

from treepager.core.filters.builders import (
    ancestor_paths_filter,
    ancestors_by_sort_filter,
    children_filter,
    path_children_filter,
    path_range_filter,
    root_filter,
    search_filter,
    subtree_filter,
    user_filter_conditions,
    visible_nodes_filter,
)
from treepager.core.filters.predicate import (
    And,
    AtMost,
    Contains,
    Equals,
    InSet,
    PathRange,
    SegmentCount,
    StartsWith,
)
from treepager.models.node import Record


def _at(path: str) -> Record:
    return Record(id=path, parent_id=None, label=path, path=path)


def test_children_filter() -> None:
    assert children_filter("parent_id", "a") == Equals("parent_id", "a")
    assert children_filter("parent_id", None) is None


def test_path_children_filter_selects_one_level() -> None:
    predicate = path_children_filter("path", "1.")
    assert predicate == And((StartsWith("path", "1."), SegmentCount("path", 2)))
    assert predicate.matches(_at("1.3."))
    assert not predicate.matches(_at("1.3.1."))
    assert not predicate.matches(_at("10.1."))


def test_path_children_filter_for_roots_and_malformed_parent() -> None:
    assert path_children_filter("path", None) == SegmentCount("path", 1)
    assert path_children_filter("path", "1.x.") is None


def test_path_range_filter_includes_subtree_of_end() -> None:
    predicate = path_range_filter("path", "1.2.", "1.4.")
    assert predicate == PathRange("path", "1.2.", "1.5.")
    assert predicate.matches(_at("1.2."))
    assert predicate.matches(_at("1.4.9."))
    assert not predicate.matches(_at("1.5."))
    assert not predicate.matches(_at("1.1.7."))
    assert path_range_filter("path", "bad", "1.") is None


def test_subtree_filter() -> None:
    predicate = subtree_filter("path", ["2.", "bad", "4.1."])
    assert predicate is not None
    assert predicate.matches(_at("2.7."))
    assert predicate.matches(_at("4.1."))
    assert not predicate.matches(_at("4.2."))
    assert subtree_filter("path", ["bad"]) is None


def test_search_filter_text_matches_any_attribute() -> None:
    predicate = search_filter("  Cake ", ["label", "note"])
    assert predicate is not None
    record = Record(id="1", parent_id=None, label="x", note="chocolate cake")
    assert predicate.matches(record)
    assert not predicate.matches(Record(id="2", parent_id=None, label="bread"))


def test_search_filter_adds_numeric_and_boolean_equality() -> None:
    numeric = search_filter("42.0", ["priority"])
    assert numeric is not None
    assert Equals("priority", 42) in numeric.children  # type: ignore[union-attr]
    boolean = search_filter("TRUE", ["checked"])
    assert boolean is not None
    assert Equals("checked", True) in boolean.children  # type: ignore[union-attr]


def test_search_filter_blank_text_is_no_filter() -> None:
    assert search_filter("   ", ["label"]) is None
    assert search_filter("cake", []) is None


def test_root_filter_prefers_depth_then_path_then_parent() -> None:
    assert root_filter(depth_attribute="depth", path_attribute="path") == Equals("depth", 0)
    assert root_filter(path_attribute="path", parent_attribute="parent_id") == SegmentCount("path", 1)
    assert root_filter(parent_attribute="parent_id") == Equals("parent_id", None)
    assert root_filter(depth_attribute="level", root_depth=1) == Equals("level", 1)
    assert root_filter() is None


def test_visible_nodes_filter_requires_expanded_ancestors() -> None:
    predicate = visible_nodes_filter("path", ["1.", "1.2.", "3.1."])
    assert predicate.matches(_at("4."))
    assert predicate.matches(_at("1.5."))
    assert predicate.matches(_at("1.2.1."))
    # 3. is collapsed, so children of 3.1. stay hidden
    assert not predicate.matches(_at("3.1.1."))
    assert not predicate.matches(_at("3.1."))


def test_ancestors_by_sort_filter() -> None:
    predicate = ancestors_by_sort_filter("sort_order", "depth", max_sort=10, max_depth=2)
    assert predicate == And((AtMost("sort_order", 10), AtMost("depth", 2)))


def test_ancestor_paths_filter() -> None:
    predicate = ancestor_paths_filter("path", ["1.2.3.", "4.", "2.1."])
    assert predicate == InSet("path", frozenset({"1.", "1.2.", "2."}))
    assert ancestor_paths_filter("path", ["4.", "5."]) is None


def test_user_filter_conditions_skip_unset_values() -> None:
    conditions = user_filter_conditions(
        {"label": " cake ", "priority": 3, "checked": False, "note": "  ", "owner": None}
    )
    assert conditions == [
        Contains("label", "cake"),
        Equals("priority", 3),
        Equals("checked", False),
    ]
