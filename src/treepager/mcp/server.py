"""MCP server exposing windowed, filtered browsing of the record store."""

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from treepager.config import DATABASE_FILENAME, resolve_data_directory
from treepager.core.database.schema import migrate_schema
from treepager.core.tree.markdown import render_tree_as_markdown, render_window_as_markdown
from treepager.core.tree.navigation import get_breadcrumbs, get_children, get_record
from treepager.errors import DataSourceError
from treepager.session import TreeSession
from treepager.sources.sqlite import SqliteDataSource

MAX_WINDOW_SIZE = 200


# --- Core functions (testable without MCP context) ---


async def tree_window(
    session: TreeSession,
    *,
    start: int = 0,
    size: int = 50,
    output_format: str = "markdown",
    include_notes: bool = False,
) -> dict[str, Any]:
    """Load and return rows ``[start, start + size)`` of the current view.

    Args:
        start: First flattened index.
        size: Number of rows (1-200).
        output_format: "markdown" or "json".
        include_notes: Include node notes in markdown output.
    """
    size = max(1, min(size, MAX_WINDOW_SIZE))
    start = max(0, start)
    try:
        items = await session.load_window(start, start + size)
    except DataSourceError as e:
        return {"error": str(e)}

    end = min(start + size, session.total_items)
    output: dict[str, Any] = {
        "total": session.total_items,
        "start": start,
        "end": end,
        "has_more": end < session.total_items,
    }
    if output["has_more"]:
        output["next_start"] = end
    if output_format == "json":
        output["items"] = [
            {"index": i, **items[i].to_dict()} if i in items else {"index": i, "pending": True}
            for i in range(start, end)
        ]
    else:
        output["content"] = render_window_as_markdown(
            items, start, end, include_notes=include_notes
        )
    return output


async def tree_set_filters(
    session: TreeSession,
    *,
    search: str | None = None,
    filters: dict[str, Any] | None = None,
    parent_id: str | None = None,
    subtree_paths: list[str] | None = None,
    clear: bool = False,
) -> dict[str, Any]:
    """Replace the active filter intents and restart the view.

    Args:
        search: Free-text search (ignored below the minimum length).
        filters: Attribute to value user filters.
        parent_id: Only show direct children of this node.
        subtree_paths: Only show these paths and everything below them.
        clear: Drop every filter before applying the others.
    """
    orchestrator = session.orchestrator
    if clear:
        orchestrator.clear_all()
    orchestrator.set_parent_filter(parent_id)
    orchestrator.set_subtree_filter(subtree_paths)
    search_applied = orchestrator.set_search_filter(search) if search else False
    if not search:
        orchestrator.clear_search_filter()
    orchestrator.set_user_filters(filters or {})

    try:
        total = await session.apply_filters()
    except DataSourceError as e:
        return {"error": str(e)}

    output: dict[str, Any] = {"total": total, "filters": orchestrator.debug_info()}
    if search and not search_applied:
        output["warning"] = orchestrator.search_policy.requirement_message(len(search.strip()))
    return output


def tree_breadcrumbs(conn: sqlite3.Connection, *, node_id: str) -> dict[str, Any]:
    """Return the ancestor chain of a node, root first."""
    record = get_record(conn, node_id)
    if record is None:
        return {"error": f"Node '{node_id}' not found."}
    crumbs = get_breadcrumbs(conn, path=record.path)
    return {
        "node": {"id": record.id, "label": record.label, "path": record.path},
        "breadcrumbs": [asdict(c) for c in crumbs],
        "trail": " > ".join(c.label[:40] for c in crumbs),
    }


def tree_children(
    conn: sqlite3.Connection,
    *,
    parent_id: str | None = None,
    limit: int = 50,
) -> dict[str, Any]:
    """List direct children of a node straight from the store, ignoring filters."""
    if parent_id is not None and get_record(conn, parent_id) is None:
        return {"error": f"Node '{parent_id}' not found."}
    children = get_children(conn, parent_id=parent_id, limit=max(1, limit))
    return {
        "parent_id": parent_id,
        "count": len(children),
        "children": [
            {"id": c.id, "label": c.label, "path": c.path, "child_count": c.child_count}
            for c in children
        ],
    }


async def tree_subtree(
    session: TreeSession,
    *,
    node_id: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Assemble the loaded records below node_id into a nested tree."""
    tree = await session.build_subtree(node_id, max_depth=max_depth)
    if output_format == "json":
        return {"node_id": node_id, "children": tree}
    return {"node_id": node_id, "content": render_tree_as_markdown(tree)}


def tree_status(session: TreeSession) -> dict[str, Any]:
    """Loader metrics and the active filter state."""
    return {
        "total": session.total_items,
        "loaded": session.loader.loaded_count,
        "metrics": asdict(session.metrics),
        "filters": session.orchestrator.debug_info(),
    }


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    conn: sqlite3.Connection
    session: TreeSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the database and the session on startup, close on shutdown."""
    data_dir = resolve_data_directory()
    data_dir.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(data_dir / DATABASE_FILENAME))
    migrate_schema(conn)
    session = TreeSession(SqliteDataSource(conn))
    try:
        total = await session.open()
        logger.info("Serving {} records from {}", total, data_dir)
        yield ServerContext(conn=conn, session=session)
    finally:
        await session.close()
        conn.close()


mcp_server = FastMCP(
    "treepager",
    instructions="""\
The record store is a large tree browsed one window at a time.

1. Use tree_set_filters_tool to search or filter; matches come back together
   with their ancestors so they stay connected to the roots.
2. Use tree_window_tool to page through the resulting flattened tree; follow
   next_start while has_more is true.
3. Use tree_breadcrumbs_tool to see where a node sits.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def tree_window_tool(
    ctx: Context,
    start: int = 0,
    size: int = 50,
    output_format: str = "markdown",
    include_notes: bool = False,
) -> dict[str, Any]:
    """Return a window of rows from the current (filtered) tree view.

    Args:
        start: First flattened index.
        size: Number of rows (1-200).
        output_format: "markdown" or "json".
        include_notes: Include node notes in markdown output.
    """
    server = _ctx(ctx)
    async with server.lock:
        return await tree_window(
            server.session,
            start=start,
            size=size,
            output_format=output_format,
            include_notes=include_notes,
        )


@mcp_server.tool()
async def tree_set_filters_tool(
    ctx: Context,
    search: str | None = None,
    filters: dict[str, Any] | None = None,
    parent_id: str | None = None,
    subtree_paths: list[str] | None = None,
    clear: bool = False,
) -> dict[str, Any]:
    """Set search text, attribute filters or a parent scope for the view.

    Args:
        search: Free-text search (minimum length applies).
        filters: Attribute to value filters; text values match as substrings.
        parent_id: Only show direct children of this node.
        subtree_paths: Only show these paths (e.g. "2.") and their descendants.
        clear: Drop existing filters first.
    """
    server = _ctx(ctx)
    async with server.lock:
        return await tree_set_filters(
            server.session,
            search=search,
            filters=filters,
            parent_id=parent_id,
            subtree_paths=subtree_paths,
            clear=clear,
        )


@mcp_server.tool()
async def tree_breadcrumbs_tool(ctx: Context, node_id: str) -> dict[str, Any]:
    """Return the ancestor chain of a node.

    Args:
        node_id: Node ID.
    """
    return tree_breadcrumbs(_ctx(ctx).conn, node_id=node_id)


@mcp_server.tool()
async def tree_children_tool(
    ctx: Context,
    parent_id: str | None = None,
    limit: int = 50,
) -> dict[str, Any]:
    """List direct children of a node, unaffected by active filters.

    Args:
        parent_id: Node ID (None for top-level nodes).
        limit: Max children returned.
    """
    return tree_children(_ctx(ctx).conn, parent_id=parent_id, limit=limit)


@mcp_server.tool()
async def tree_subtree_tool(
    ctx: Context,
    node_id: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Nest the currently loaded rows below a node.

    Args:
        node_id: Node ID (None for the loaded roots).
        max_depth: Max depth levels.
        output_format: "markdown" or "json".
    """
    server = _ctx(ctx)
    async with server.lock:
        return await tree_subtree(
            server.session, node_id=node_id, max_depth=max_depth, output_format=output_format
        )


@mcp_server.tool()
async def tree_status_tool(ctx: Context) -> dict[str, Any]:
    """Report loader metrics and active filters."""
    return tree_status(_ctx(ctx).session)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from treepager.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
