"""CLI for treepager (import, browse windows, search, MCP server)."""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from treepager.config import DATABASE_FILENAME, LoaderConfig, resolve_data_directory
from treepager.core.database.schema import migrate_schema
from treepager.core.importer.loader import import_outline
from treepager.core.tree.markdown import render_window_as_markdown
from treepager.core.tree.navigation import get_breadcrumbs, get_record
from treepager.core.workers.executor import BackgroundExecutor
from treepager.errors import DataSourceError
from treepager.logging_config import configure_logging
from treepager.session import TreeSession
from treepager.sources.sqlite import SqliteDataSource

app = typer.Typer(help="treepager: page through large outlines a window at a time.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _db_path(data_dir: Path | None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME


def _open_db(data_dir: Path | None) -> sqlite3.Connection:
    """Open the record database, raising if it doesn't exist."""
    db_path = _db_path(data_dir)
    if not db_path.exists():
        logger.error("Record database not found: {}. Run 'import' first.", db_path)
        raise typer.Exit(1)
    conn = sqlite3.connect(str(db_path))
    migrate_schema(conn)
    return conn


def parse_filter_value(raw: str) -> Any:
    """Interpret a --filter value as bool, number or text."""
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _parse_filters(filters: list[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for item in filters:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            typer.echo(f"Invalid filter {item!r}, expected attribute=value.")
            raise typer.Exit(1)
        values[name.strip()] = parse_filter_value(raw.strip())
    return values


@app.command(name="import")
def import_cmd(
    outline: Path = typer.Argument(..., help="Outline JSON file"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Record database directory"),
    ] = None,
    force: bool = typer.Option(False, "--force", "-f", help="Re-import even if unchanged"),
) -> None:
    """Import an outline JSON file into the record database."""
    if not outline.exists():
        logger.error("Outline file not found: {}", outline)
        raise typer.Exit(1)

    db_path = _db_path(data_dir)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        migrate_schema(conn)
        try:
            stats = import_outline(conn, outline, force=force)
        except ValueError as e:
            typer.echo(f"Cannot import {outline.name}: {e}")
            raise typer.Exit(1) from e
        if stats.skipped:
            typer.echo("Outline unchanged, nothing imported.")
        else:
            typer.echo(f"Imported {stats.records_imported} records ({stats.path_mode} paths)")
    finally:
        conn.close()


async def _load_window(
    conn: sqlite3.Connection,
    *,
    start: int,
    size: int,
    search: str | None,
    filters: dict[str, Any],
    parent: str | None,
    chunk_size: int,
) -> tuple[dict[int, Any], int, dict[str, Any]]:
    session = TreeSession(
        SqliteDataSource(conn),
        loader_config=LoaderConfig(chunk_size=chunk_size, debounce_delay=0.0),
        executor=BackgroundExecutor(enabled=False),
    )
    try:
        if parent:
            session.orchestrator.set_parent_filter(parent)
        if search:
            if not session.orchestrator.set_search_filter(search):
                msg = session.orchestrator.search_policy.requirement_message(len(search.strip()))
                typer.echo(msg or "Search query too short.")
        if filters:
            session.orchestrator.set_user_filters(filters)
        total = await session.apply_filters()
        items = await session.load_window(start, min(start + size, total))
        return items, total, session.orchestrator.debug_info()
    finally:
        await session.close()


@app.command()
def window(
    start: int = typer.Option(0, "--start", "-s", help="First flattened index"),
    size: int = typer.Option(20, "--size", "-n", help="Number of rows"),
    search: Annotated[
        str | None,
        typer.Option("--search", "-q", help="Free-text search"),
    ] = None,
    filters: Annotated[
        list[str] | None,
        typer.Option("--filter", "-F", help="attribute=value user filter (repeatable)"),
    ] = None,
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="Only direct children of this node id"),
    ] = None,
    chunk_size: int = typer.Option(100, "--chunk-size", help="Records per fetch"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Record database directory"),
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show a window of the (filtered) flattened tree."""
    conn = _open_db(data_dir)
    try:
        try:
            items, total, info = asyncio.run(
                _load_window(
                    conn,
                    start=start,
                    size=size,
                    search=search,
                    filters=_parse_filters(filters or []),
                    parent=parent,
                    chunk_size=chunk_size,
                )
            )
        except DataSourceError as e:
            typer.echo(f"Loading failed: {e}")
            raise typer.Exit(1) from e

        end = min(start + size, total)
        if output_json:
            data = {
                "total": total,
                "start": start,
                "end": end,
                "expansion_tier": info["expansion_tier"],
                "items": [
                    {"index": i, **items[i].to_dict()} if i in items else {"index": i, "pending": True}
                    for i in range(start, end)
                ],
            }
            typer.echo(json.dumps(data, indent=2))
        else:
            typer.echo(f"Showing {start}-{end} of {total}:\n")
            typer.echo(render_window_as_markdown(items, start, end))
    finally:
        conn.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max rows"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Record database directory"),
    ] = None,
) -> None:
    """Show search matches together with their ancestors."""
    conn = _open_db(data_dir)
    try:
        try:
            items, total, info = asyncio.run(
                _load_window(
                    conn,
                    start=0,
                    size=limit,
                    search=query,
                    filters={},
                    parent=None,
                    chunk_size=max(limit, 1),
                )
            )
        except DataSourceError as e:
            typer.echo(f"Search failed: {e}")
            raise typer.Exit(1) from e

        typer.echo(f"Found {info['matching_count']} matches ({total} rows with ancestors):\n")
        for index in sorted(items):
            record = items[index]
            indent = "  " * (record.depth or 0)
            typer.echo(f"  {indent}{record.label[:80]}  [id={record.id} path={record.path}]")
    finally:
        conn.close()


@app.command()
def breadcrumbs(
    node_id: str = typer.Argument(..., help="Node ID"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Record database directory"),
    ] = None,
) -> None:
    """Print the ancestor chain of a node."""
    conn = _open_db(data_dir)
    try:
        record = get_record(conn, node_id)
        if record is None:
            typer.echo(f"Node '{node_id}' not found.")
            raise typer.Exit(1)
        crumbs = get_breadcrumbs(conn, path=record.path)
        trail = [c.label[:40] for c in crumbs] + [record.label[:40]]
        typer.echo(" > ".join(trail))
    finally:
        conn.close()


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from treepager.mcp.server import run_mcp_server

    run_mcp_server()
