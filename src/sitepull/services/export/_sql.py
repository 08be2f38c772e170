"""
SQL dump formatting.

Produces the text of the dump: a header, per-table structure and closing
statements, INSERT rows and a footer. MySQL output matches what mysqldump-style
importers expect; SQLite output wraps the dump in a single transaction.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from sitepull.services.export._source import quote_identifier

_MYSQL_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
}


def escape_value(value: Any, dialect: str = "mysql") -> str:
    """Render one Python value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and not math.isfinite(value):
        # SQL has no literal for inf or nan
        return "NULL"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "X'" + bytes(value).hex().upper() + "'"
    text = str(value)
    if dialect == "mysql":
        escaped = "".join(_MYSQL_ESCAPES.get(ch, ch) for ch in text)
    else:
        escaped = text.replace("'", "''")
    return f"'{escaped}'"


class SqlWriter:
    """Builds dump fragments for one dialect."""

    def __init__(self, dialect: str = "mysql") -> None:
        if dialect not in ("mysql", "sqlite"):
            raise ValueError(f"Unsupported SQL dialect: {dialect}")
        self.dialect = dialect
        self._quote = "`" if dialect == "mysql" else '"'

    def ident(self, name: str) -> str:
        return quote_identifier(name, self._quote)

    def header(self, now: datetime | None = None) -> str:
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")
        lines = [
            "-- sitepull database export",
            f"-- Generated: {stamp} UTC",
            "",
        ]
        if self.dialect == "mysql":
            lines += [
                "SET SQL_MODE = 'NO_AUTO_VALUE_ON_ZERO';",
                "SET time_zone = '+00:00';",
                "SET foreign_key_checks = 0;",
                "",
                "/*!40101 SET @OLD_CHARACTER_SET_CLIENT=@@CHARACTER_SET_CLIENT */;",
                "/*!40101 SET @OLD_CHARACTER_SET_RESULTS=@@CHARACTER_SET_RESULTS */;",
                "/*!40101 SET @OLD_COLLATION_CONNECTION=@@COLLATION_CONNECTION */;",
                "/*!40101 SET NAMES utf8mb4 */;",
            ]
        else:
            lines += [
                "PRAGMA foreign_keys = OFF;",
                "BEGIN TRANSACTION;",
            ]
        return "\n".join(lines) + "\n\n"

    def table_open(self, table: str, create_sql: str) -> str:
        t = self.ident(table)
        out = f"\n-- Table: {table}\nDROP TABLE IF EXISTS {t};\n{create_sql.rstrip(';')};\n\n"
        if self.dialect == "mysql":
            out += f"LOCK TABLES {t} WRITE;\n/*!40000 ALTER TABLE {t} DISABLE KEYS */;\n\n"
        return out

    def insert(self, table: str, columns: Sequence[str], values: Iterable[Any]) -> str:
        cols = ", ".join(self.ident(c) for c in columns)
        vals = ", ".join(escape_value(v, self.dialect) for v in values)
        return f"INSERT INTO {self.ident(table)} ({cols}) VALUES ({vals});\n"

    def table_close(self, table: str) -> str:
        if self.dialect == "mysql":
            t = self.ident(table)
            return f"\n/*!40000 ALTER TABLE {t} ENABLE KEYS */;\nUNLOCK TABLES;\n\n"
        return "\n"

    def footer(self) -> str:
        if self.dialect == "mysql":
            return (
                "\n-- Export completed\n"
                "/*!40101 SET CHARACTER_SET_CLIENT=@OLD_CHARACTER_SET_CLIENT */;\n"
                "/*!40101 SET CHARACTER_SET_RESULTS=@OLD_CHARACTER_SET_RESULTS */;\n"
                "/*!40101 SET COLLATION_CONNECTION=@OLD_COLLATION_CONNECTION */;\n"
            )
        return "\n-- Export completed\nCOMMIT;\nPRAGMA foreign_keys = ON;\n"
