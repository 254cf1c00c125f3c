"""Tests for path mode detection and local path synthesis."""

from treepager.core.hierarchy.synthesis import PathMode, PathSynthesizer, detect_path_mode
from treepager.models.node import Record


def _rec(node_id: str, parent_id: str | None, sort_order: int | None = None, path: str | None = None) -> Record:
    return Record(id=node_id, parent_id=parent_id, label=node_id, sort_order=sort_order, path=path)


def test_detect_path_mode() -> None:
    assert detect_path_mode([_rec("a", None), _rec("b", None)]) == PathMode.SYNTHESIZED
    assert detect_path_mode([_rec("a", None, path="1.")]) == PathMode.EXTERNAL
    assert detect_path_mode([]) == PathMode.SYNTHESIZED


def test_mixed_path_modes_are_treated_as_external() -> None:
    records = [_rec("a", None, path="1."), _rec("b", None)]
    assert detect_path_mode(records) == PathMode.EXTERNAL


def test_assign_numbers_siblings_by_sort_order() -> None:
    records = [
        _rec("b", None, sort_order=2),
        _rec("a", None, sort_order=1),
        _rec("a2", "a", sort_order=5),
        _rec("a1", "a", sort_order=3),
        _rec("a1x", "a1", sort_order=4),
    ]
    paths = PathSynthesizer().assign(records)
    assert paths == {
        "a": "1.",
        "b": "2.",
        "a1": "1.1.",
        "a2": "1.2.",
        "a1x": "1.1.1.",
    }


def test_assign_breaks_sort_ties_by_input_order() -> None:
    records = [_rec("x", None), _rec("y", None), _rec("z", None)]
    assert PathSynthesizer().assign(records) == {"x": "1.", "y": "2.", "z": "3."}


def test_parent_missing_from_input_makes_a_root() -> None:
    records = [_rec("a", "gone", sort_order=0), _rec("b", None, sort_order=1)]
    assert PathSynthesizer().assign(records) == {"a": "1.", "b": "2."}


def test_external_paths_are_kept_and_descendants_derive_from_them() -> None:
    records = [_rec("a", None, sort_order=0, path="7."), _rec("c", "a", sort_order=1)]
    assert PathSynthesizer().assign(records) == {"a": "7.", "c": "7.1."}


def test_malformed_external_path_leaves_subtree_unplaced() -> None:
    records = [
        _rec("a", None, sort_order=0, path="oops"),
        _rec("c", "a", sort_order=1),
        _rec("d", None, sort_order=2),
    ]
    paths = PathSynthesizer().assign(records)
    assert "a" not in paths
    assert "c" not in paths
    assert paths["d"] == "2."


def test_cycles_are_left_unplaced() -> None:
    records = [_rec("r", None), _rec("x", "y"), _rec("y", "x")]
    assert PathSynthesizer().assign(records) == {"r": "1."}


def test_cached_paths_survive_until_invalidated() -> None:
    synth = PathSynthesizer()
    synth.assign([_rec("a", None, sort_order=0), _rec("b", None, sort_order=1)])
    assert synth.cached("b") == "2."

    # b moved to the front but keeps its cached path
    paths = synth.assign([_rec("b", None, sort_order=0), _rec("a", None, sort_order=1)])
    assert paths["b"] == "2."

    synth.invalidate(["a", "b"])
    assert synth.cached("b") is None
    paths = synth.assign([_rec("b", None, sort_order=0), _rec("a", None, sort_order=1)])
    assert paths == {"b": "1.", "a": "2."}


def test_with_paths_fills_only_missing_paths() -> None:
    records = [_rec("a", None, sort_order=0, path="3."), _rec("b", "a", sort_order=1)]
    result = PathSynthesizer().with_paths(records)
    assert [r.path for r in result] == ["3.", "3.1."]
    assert result[0] is records[0]


def test_clear_drops_every_cached_path() -> None:
    synth = PathSynthesizer()
    synth.assign([_rec("a", None)])
    synth.clear()
    assert synth.cached("a") is None
