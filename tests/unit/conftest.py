"""Shared test fixtures."""

import json
import sqlite3
from pathlib import Path
from typing import Any

import pytest

from treepager.core.database.schema import create_schema
from treepager.core.importer.json_reader import parse_outline
from treepager.core.importer.loader import import_outline
from treepager.models.node import Record

OUTLINE: dict[str, Any] = {
    "nodes": [
        {"id": "root", "content": "Outline", "children": ["a", "b", "c"]},
        {
            "id": "a",
            "content": "Python projects",
            "note": "side work",
            "children": ["a1", "a2"],
        },
        {"id": "a1", "content": "FastAPI service", "checked": True, "priority": 2},
        {"id": "a2", "content": "Typer command line", "checked": False, "priority": 1},
        {"id": "b", "content": "Groceries", "children": ["b1"]},
        {
            "id": "b1",
            "content": "Python cake recipe",
            "note": "not a real snake",
            "children": ["b1a"],
        },
        {"id": "b1a", "content": "flour", "priority": 3},
        {"id": "c", "content": "Reading list"},
    ],
}


@pytest.fixture
def outline_file(tmp_path: Path) -> Path:
    path = tmp_path / "outline.json"
    path.write_text(json.dumps(OUTLINE))
    return path


@pytest.fixture
def outline_records() -> list[Record]:
    """Records of OUTLINE in flattened order with synthesized paths."""
    records, _mode = parse_outline(OUTLINE)
    return records


@pytest.fixture
def populated_db(outline_file: Path) -> sqlite3.Connection:
    """Return an in-memory DB with OUTLINE imported."""
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    import_outline(conn, outline_file)
    return conn
