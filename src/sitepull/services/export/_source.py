"""
Tabular data sources for the export engine.

The engine only sees the ``TableSource`` protocol: a list of tables, a size
estimate per table, and two ways of reading a page of rows.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, NamedTuple, Protocol, runtime_checkable

from sitepull.exceptions import SourceReadError
from sitepull.logging import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]


class TableStats(NamedTuple):
    rows: int
    bytes: int


@runtime_checkable
class TableSource(Protocol):
    """Read-only access to a relational database, one table at a time."""

    dialect: str

    def list_tables(self) -> list[str]:
        """Return every table name in a stable order."""
        ...

    def table_stats(self, table: str) -> TableStats:
        """Estimate row count and on-disk size. Need not be exact."""
        ...

    def primary_key(self, table: str) -> str | None:
        """Return the primary key column if it is a single column, else None."""
        ...

    def create_statement(self, table: str) -> str:
        """Return the statement that recreates the table structure."""
        ...

    def fetch_offset(self, table: str, offset: int, limit: int) -> list[Row]:
        """Read ``limit`` rows starting after ``offset`` rows."""
        ...

    def fetch_after(
        self, table: str, key: str, last_key: Any, limit: int
    ) -> list[Row]:
        """Read ``limit`` rows with ``key > last_key`` in key order (all rows if last_key is None)."""
        ...


def quote_identifier(name: str, quote: str = "`") -> str:
    """Quote a table or column name, doubling embedded quote characters."""
    return quote + name.replace(quote, quote * 2) + quote


class SQLiteSource:
    """
    TableSource backed by a SQLite database file.

    A single connection is shared between threads and guarded by a lock so the
    source can sit behind a threaded HTTP server.

    Example:
        >>> source = SQLiteSource("site.db")
        >>> source.list_tables()
        ['comments', 'posts', 'users']
    """

    dialect = "sqlite"

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, table: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise SourceReadError(table, cause=e) from e

    def list_tables(self) -> list[str]:
        rows = self._query(
            "sqlite_master",
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name",
        )
        return [r["name"] for r in rows]

    def table_stats(self, table: str) -> TableStats:
        q = quote_identifier(table, '"')
        count = self._query(table, f"SELECT COUNT(*) AS n FROM {q}")[0]["n"]
        size = 0
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT SUM(pgsize) AS size FROM dbstat WHERE name = ?", (table,)
                ).fetchone()
                size = int(row["size"] or 0)
            except sqlite3.OperationalError:
                # dbstat is a compile-time option
                logger.debug(f"dbstat unavailable, no size estimate for {table}")
        return TableStats(rows=int(count), bytes=size)

    def primary_key(self, table: str) -> str | None:
        q = quote_identifier(table, '"')
        columns = self._query(table, f"PRAGMA table_info({q})")
        keys = [c for c in columns if c["pk"]]
        if len(keys) != 1:
            return None
        key = keys[0]
        # SQLite allows NULL in non-rowid primary keys; keyset would skip those rows
        if str(key["type"]).upper() == "INTEGER" or key["notnull"]:
            return key["name"]
        return None

    def create_statement(self, table: str) -> str:
        rows = self._query(
            table,
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        if not rows or not rows[0]["sql"]:
            raise SourceReadError(table)
        return rows[0]["sql"]

    def fetch_offset(self, table: str, offset: int, limit: int) -> list[Row]:
        q = quote_identifier(table, '"')
        rows = self._query(
            table, f"SELECT * FROM {q} LIMIT ? OFFSET ?", (limit, offset)
        )
        return [dict(r) for r in rows]

    def fetch_after(
        self, table: str, key: str, last_key: Any, limit: int
    ) -> list[Row]:
        q = quote_identifier(table, '"')
        k = quote_identifier(key, '"')
        if last_key is None:
            sql = f"SELECT * FROM {q} ORDER BY {k} LIMIT ?"
            params: tuple = (limit,)
        else:
            sql = f"SELECT * FROM {q} WHERE {k} > ? ORDER BY {k} LIMIT ?"
            params = (last_key, limit)
        return [dict(r) for r in self._query(table, sql, params)]
