"""Tests for MCP tool core functions."""

import sqlite3

import pytest

from treepager.config import LoaderConfig
from treepager.core.workers.executor import BackgroundExecutor
from treepager.mcp.server import (
    tree_breadcrumbs,
    tree_children,
    tree_set_filters,
    tree_status,
    tree_subtree,
    tree_window,
)
from treepager.session import TreeSession
from treepager.sources.sqlite import SqliteDataSource


async def _open(conn: sqlite3.Connection) -> TreeSession:
    session = TreeSession(
        SqliteDataSource(conn),
        loader_config=LoaderConfig(chunk_size=3, debounce_delay=0.0),
        executor=BackgroundExecutor(enabled=False),
    )
    await session.open()
    return session


@pytest.mark.asyncio
async def test_tree_window_markdown_pages(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = await tree_window(session, start=0, size=3)
    await session.close()

    assert result["total"] == 7
    assert result["has_more"] is True
    assert result["next_start"] == 3
    assert result["content"] == (
        "- Python projects\n    - [x] FastAPI service\n    - [ ] Typer command line\n"
    )


@pytest.mark.asyncio
async def test_tree_window_json_reaches_the_end(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = await tree_window(session, start=5, size=10, output_format="json")
    await session.close()

    assert result["end"] == 7
    assert result["has_more"] is False
    assert "next_start" not in result
    assert [(i["index"], i["id"]) for i in result["items"]] == [(5, "b1a"), (6, "c")]


@pytest.mark.asyncio
async def test_tree_window_clamps_size(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = await tree_window(session, start=-4, size=0, output_format="json")
    await session.close()
    assert (result["start"], result["end"]) == (0, 1)


@pytest.mark.asyncio
async def test_tree_set_filters_search_keeps_ancestors(
    populated_db: sqlite3.Connection,
) -> None:
    session = await _open(populated_db)
    result = await tree_set_filters(session, search="python")
    window = await tree_window(session, output_format="json")
    await session.close()

    assert result["total"] == 2
    assert result["filters"]["matching_count"] == 2
    assert result["filters"]["expansion_tier"] == "sort_range"
    assert "warning" not in result
    assert [i["id"] for i in window["items"]] == ["a", "b1"]


@pytest.mark.asyncio
async def test_tree_set_filters_short_search_warns(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = await tree_set_filters(session, search="py")
    await session.close()

    assert result["total"] == 7
    assert result["warning"] == "Enter 4 more characters to search"
    assert result["filters"]["has_search_filter"] is False


@pytest.mark.asyncio
async def test_tree_set_filters_parent_and_clear(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    scoped = await tree_set_filters(session, parent_id="a")
    cleared = await tree_set_filters(session, clear=True)
    await session.close()

    assert scoped["total"] == 2
    assert scoped["filters"]["has_parent_filter"] is True
    assert cleared["total"] == 7
    assert cleared["filters"]["expansion_tier"] == "none"


def test_tree_breadcrumbs_for_nested_node(populated_db: sqlite3.Connection) -> None:
    result = tree_breadcrumbs(populated_db, node_id="b1a")
    assert result["node"] == {"id": "b1a", "label": "flour", "path": "2.1.1."}
    assert [c["node_id"] for c in result["breadcrumbs"]] == ["b", "b1"]
    assert result["trail"] == "Groceries > Python cake recipe"


def test_tree_breadcrumbs_unknown_node(populated_db: sqlite3.Connection) -> None:
    result = tree_breadcrumbs(populated_db, node_id="nope")
    assert result == {"error": "Node 'nope' not found."}


def test_tree_children_lists_top_level_and_nested(populated_db: sqlite3.Connection) -> None:
    top = tree_children(populated_db)
    assert [c["id"] for c in top["children"]] == ["a", "b", "c"]
    assert top["children"][0]["child_count"] == 2

    nested = tree_children(populated_db, parent_id="a", limit=1)
    assert nested["count"] == 1
    assert nested["children"][0]["label"] == "FastAPI service"

    assert "error" in tree_children(populated_db, parent_id="missing")


@pytest.mark.asyncio
async def test_tree_subtree_json_and_markdown(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    nested = await tree_subtree(session, node_id="b", output_format="json")
    shallow = await tree_subtree(session, max_depth=1)
    await session.close()

    assert [n["id"] for n in nested["children"]] == ["b1"]
    assert [n["id"] for n in nested["children"][0]["children"]] == ["b1a"]
    assert "- Groceries\n    - ... (1 more child, id=b)\n" in shallow["content"]
    assert "    - ... (2 more children, id=a)\n" in shallow["content"]


@pytest.mark.asyncio
async def test_tree_status_reports_metrics(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = tree_status(session)
    await session.close()

    assert result["total"] == 7
    assert result["loaded"] == 7
    assert result["metrics"]["total_chunks"] == 3
    assert result["metrics"]["failed_loads"] == 0
    assert result["filters"]["user_filter_count"] == 0


@pytest.mark.asyncio
async def test_tree_set_filters_subtree_paths(populated_db: sqlite3.Connection) -> None:
    session = await _open(populated_db)
    result = await tree_set_filters(session, subtree_paths=["2."])
    window = await tree_window(session, output_format="json")
    await session.close()

    assert result["total"] == 3
    assert result["filters"]["has_subtree_filter"] is True
    assert [i["id"] for i in window["items"]] == ["b", "b1", "b1a"]
