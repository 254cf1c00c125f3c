"""Tests for background operations on plain-data payloads."""

from treepager.core.filters.predicate import Contains
from treepager.core.workers.operations import (
    OPERATIONS,
    build_subtree,
    filter_records,
    recompute_paths,
    search_records,
)
from treepager.models.node import Record
from tests.unit.fakes import make_records


def _payload(records: list[Record], **extra: object) -> dict[str, object]:
    return {"records": [r.to_dict() for r in records], **extra}


def test_search_ranks_exact_matches_first() -> None:
    records = [
        Record(id="1", parent_id=None, label="Python cake"),
        Record(id="2", parent_id=None, label="python"),
        Record(id="3", parent_id=None, label="Rust"),
    ]
    hits = search_records(_payload(records, query="Python"))
    assert [h["id"] for h in hits] == ["2", "1"]
    assert hits[0]["score"] == 100
    assert hits[1]["score"] == 50


def test_search_respects_limit_and_reports_progress() -> None:
    progress: list[tuple[int, int]] = []
    hits = search_records(
        _payload(make_records(250), query="item", limit=5),
        lambda done, total: progress.append((done, total)),
    )
    assert len(hits) == 5
    assert progress == [(100, 250), (200, 250), (250, 250)]


def test_search_with_blank_query_finds_nothing() -> None:
    assert search_records(_payload(make_records(3), query="  ")) == []


def test_filter_records_uses_serialized_predicate() -> None:
    payload = _payload(make_records(20), predicate=Contains("label", "item 1").to_dict())
    assert filter_records(payload) == [f"n{i}" for i in [1, *range(10, 20)]]


def test_build_subtree(outline_records: list[Record]) -> None:
    tree = build_subtree(_payload(outline_records, root_id="a", max_depth=None))
    assert [n["id"] for n in tree] == ["a1", "a2"]


def test_recompute_paths() -> None:
    records = [
        Record(id="r", parent_id=None, label="r", sort_order=0),
        Record(id="c", parent_id="r", label="c", sort_order=1),
    ]
    assert recompute_paths(_payload(records)) == {"r": "1.", "c": "1.1."}


def test_registry_names() -> None:
    assert set(OPERATIONS) == {"search", "filter", "build_subtree", "recompute_paths"}


def test_build_subtree_handles_deep_chains() -> None:
    records = [Record(id="d0", parent_id=None, label="d0", sort_order=0)] + [
        Record(id=f"d{i}", parent_id=f"d{i - 1}", label=f"d{i}", sort_order=i)
        for i in range(1, 2000)
    ]
    tree = build_subtree(_payload(records, root_id="d1990", max_depth=None))
    assert [n["id"] for n in tree] == ["d1991"]
