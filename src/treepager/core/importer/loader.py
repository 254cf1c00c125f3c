"""Import outline JSON files into the SQLite record store."""

import hashlib
import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from treepager.core.database.schema import set_metadata
from treepager.core.hierarchy.synthesis import PathMode
from treepager.core.importer.json_reader import parse_outline
from treepager.models.node import Record


@dataclass(frozen=True)
class ImportStats:
    """Summary of an import operation."""

    records_imported: int
    skipped: bool
    path_mode: PathMode | None = None


def _file_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _should_reimport(conn: sqlite3.Connection, source: str, source_hash: str) -> bool:
    row = conn.execute(
        "SELECT source_hash FROM sync_state WHERE source = ?",
        (source,),
    ).fetchone()
    if row is None:
        return True
    return row[0] != source_hash


def insert_records(conn: sqlite3.Connection, records: list[Record]) -> None:
    conn.executemany(
        """INSERT OR REPLACE INTO records
           (id, parent_id, label, note, path, sort_order, depth, child_count, attributes)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (
                r.id, r.parent_id, r.label, r.note, r.path, r.sort_order,
                r.depth, r.child_count, json.dumps(r.attributes, sort_keys=True),
            )
            for r in records
        ],
    )


def import_outline(
    conn: sqlite3.Connection,
    outline_path: Path,
    *,
    force: bool = False,
) -> ImportStats:
    """Replace the stored records with the outline in outline_path.

    Args:
        conn: SQLite connection (schema must already exist).
        outline_path: JSON file with a ``nodes`` list.
        force: Re-import even if the file hasn't changed.

    Returns:
        ImportStats with the number of records written.
    """
    if not outline_path.exists():
        msg = f"Outline file not found: {outline_path}"
        raise FileNotFoundError(msg)

    source = str(outline_path.resolve())
    source_hash = _file_hash(outline_path)
    if not force and not _should_reimport(conn, source, source_hash):
        logger.info("Outline unchanged, skipping import: {}", outline_path.name)
        return ImportStats(records_imported=0, skipped=True)

    records, mode = parse_outline(json.loads(outline_path.read_text()))

    try:
        conn.execute("DELETE FROM records")
        insert_records(conn, records)
        conn.execute("DELETE FROM sync_state")
        conn.execute(
            """INSERT INTO sync_state (source, last_import_at, source_hash)
               VALUES (?, ?, ?)""",
            (source, int(time.time() * 1000), source_hash),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    set_metadata(conn, "path_mode", str(mode))

    logger.info("Imported {} records from {} ({} paths)", len(records), outline_path.name, mode)
    return ImportStats(records_imported=len(records), skipped=False, path_mode=mode)
