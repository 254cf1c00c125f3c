"""Data source backed by the local SQLite record store."""

import json
import sqlite3

from treepager.cancellation import CancellationToken
from treepager.core.database.schema import INDEXED_COLUMNS
from treepager.core.filters.predicate import (
    PATH_SORT_FUNCTION,
    Predicate,
    column_expression,
    sql_functions,
)
from treepager.errors import DataSourceError
from treepager.models.node import FetchWindow, Record, SortSpec

_RECORD_COLUMNS = "id, parent_id, label, note, path, sort_order, depth, child_count, attributes"


def register_functions(conn: sqlite3.Connection) -> None:
    """Install the SQL functions compiled predicates rely on."""
    for name, (num_args, func) in sql_functions().items():
        conn.create_function(name, num_args, func, deterministic=True)


def row_to_record(row: tuple) -> Record:
    return Record(
        id=row[0],
        parent_id=row[1],
        label=row[2],
        note=row[3],
        path=row[4],
        sort_order=row[5],
        depth=row[6],
        child_count=row[7],
        attributes=json.loads(row[8]) if row[8] else {},
    )


def _order_by(sort: SortSpec) -> str:
    column = column_expression(sort.attribute)
    if sort.attribute == "path":
        column = f"{PATH_SORT_FUNCTION}({column})"
    direction = "DESC" if sort.descending else "ASC"
    return f"{column} {direction}, id {direction}"


class SqliteDataSource:
    """Answers fetch and count requests with SQL over the ``records`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        register_functions(conn)

    @property
    def indexed_attributes(self) -> frozenset[str]:
        return INDEXED_COLUMNS

    async def fetch(
        self,
        predicate: Predicate,
        window: FetchWindow,
        sort: SortSpec,
        *,
        token: CancellationToken | None = None,
    ) -> list[Record]:
        if token is not None:
            token.raise_if_cancelled()
        where, params = predicate.to_sql()
        query = (
            f"SELECT {_RECORD_COLUMNS} FROM records WHERE {where} "
            f"ORDER BY {_order_by(sort)} LIMIT ? OFFSET ?"
        )
        try:
            rows = self.conn.execute(query, [*params, window.limit, window.offset]).fetchall()
        except sqlite3.Error as e:
            msg = f"Fetch of [{window.offset}, {window.offset + window.limit}) failed: {e}"
            raise DataSourceError(msg) from e
        return [row_to_record(r) for r in rows]

    async def count(self, predicate: Predicate) -> int:
        where, params = predicate.to_sql()
        try:
            row = self.conn.execute(f"SELECT COUNT(*) FROM records WHERE {where}", params).fetchone()
        except sqlite3.Error as e:
            msg = f"Count failed: {e}"
            raise DataSourceError(msg) from e
        return int(row[0])
