"""Tests for the import loader that writes outline files into SQLite."""

import json
import sqlite3
from pathlib import Path

import pytest

from treepager.core.database.schema import create_schema, get_metadata
from treepager.core.hierarchy.synthesis import PathMode
from treepager.core.importer.loader import import_outline


def _db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    return conn


def test_import_writes_records(outline_file: Path) -> None:
    conn = _db()
    stats = import_outline(conn, outline_file)

    assert not stats.skipped
    assert stats.records_imported == 7
    assert stats.path_mode == PathMode.SYNTHESIZED
    row = conn.execute(
        "SELECT parent_id, label, path, sort_order, depth, attributes FROM records WHERE id = 'a1'"
    ).fetchone()
    assert row[:5] == ("a", "FastAPI service", "1.1.", 1, 1)
    assert json.loads(row[5]) == {"checked": True, "priority": 2}
    assert get_metadata(conn, "path_mode") == "synthesized"


def test_unchanged_file_is_skipped(outline_file: Path) -> None:
    conn = _db()
    import_outline(conn, outline_file)
    stats = import_outline(conn, outline_file)
    assert stats.skipped
    assert stats.records_imported == 0


def test_force_reimports(outline_file: Path) -> None:
    conn = _db()
    import_outline(conn, outline_file)
    stats = import_outline(conn, outline_file, force=True)
    assert not stats.skipped
    assert conn.execute("SELECT COUNT(*) FROM records").fetchone()[0] == 7


def test_changed_file_replaces_records(outline_file: Path) -> None:
    conn = _db()
    import_outline(conn, outline_file)
    outline_file.write_text(
        json.dumps({"nodes": [{"id": "root", "children": ["z"]}, {"id": "z", "content": "Only"}]})
    )
    stats = import_outline(conn, outline_file)
    assert stats.records_imported == 1
    ids = [r[0] for r in conn.execute("SELECT id FROM records").fetchall()]
    assert ids == ["z"]


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        import_outline(_db(), tmp_path / "missing.json")


def test_invalid_outline_leaves_existing_records(outline_file: Path) -> None:
    conn = _db()
    import_outline(conn, outline_file)
    outline_file.write_text(json.dumps({"nodes": [{"id": "x"}]}))
    with pytest.raises(ValueError, match="root"):
        import_outline(conn, outline_file)
    assert conn.execute("SELECT COUNT(*) FROM records").fetchone()[0] == 7
