"""Tests for the SQLite table source and a full SQLite export."""

import sqlite3

import pytest

from sitepull.exceptions import SourceReadError
from sitepull.services.export import ExportEngine, SQLiteSource, TableSource


class TestSQLiteSource:
    """Tests for SQLiteSource."""

    def test_is_table_source(self, sqlite_source):
        assert isinstance(sqlite_source, TableSource)
        assert sqlite_source.dialect == "sqlite"

    def test_list_tables_sorted(self, sqlite_source):
        assert sqlite_source.list_tables() == ["options", "posts"]

    def test_table_stats(self, sqlite_source):
        stats = sqlite_source.table_stats("posts")
        assert stats.rows == 30
        assert stats.bytes >= 0

    def test_primary_key(self, sqlite_source):
        assert sqlite_source.primary_key("posts") == "id"
        assert sqlite_source.primary_key("options") is None

    def test_create_statement(self, sqlite_source):
        assert sqlite_source.create_statement("posts").startswith("CREATE TABLE posts")

    def test_fetch_offset(self, sqlite_source):
        rows = sqlite_source.fetch_offset("posts", 10, 5)
        assert len(rows) == 5
        assert set(rows[0]) == {"id", "title", "body"}

    def test_fetch_after(self, sqlite_source):
        rows = sqlite_source.fetch_after("posts", "id", 25, 100)
        assert [r["id"] for r in rows] == [26, 27, 28, 29, 30]
        first = sqlite_source.fetch_after("posts", "id", None, 2)
        assert [r["id"] for r in first] == [1, 2]

    def test_missing_table(self, sqlite_source):
        with pytest.raises(SourceReadError) as exc_info:
            sqlite_source.fetch_offset("nope", 0, 10)
        assert exc_info.value.table == "nope"


class TestSQLiteExport:
    """Export a SQLite database and load the dump into a fresh one."""

    def test_dump_restores(self, sqlite_source, tmp_path):
        engine = ExportEngine(sqlite_source)
        start = engine.init(100)
        parts = [start.preamble]
        cursor = start.cursor
        while not cursor.is_complete:
            chunk = engine.next(cursor)
            parts.append(chunk.data.decode("utf-8"))
            cursor = chunk.cursor
        dump = "".join(parts)

        restored = sqlite3.connect(tmp_path / "restored.db")
        try:
            restored.executescript(dump)
            posts = restored.execute("SELECT COUNT(*), MIN(id), MAX(id) FROM posts").fetchone()
            assert posts == (30, 1, 30)
            title = restored.execute("SELECT title, body FROM posts WHERE id = 3").fetchone()
            assert title == ("Post 3's title", b"\x00\xff")
            options = dict(restored.execute("SELECT name, value FROM options").fetchall())
            assert options == {"siteurl": "http://example.com", "blogname": None}
        finally:
            restored.close()


@pytest.fixture
def nullable_key_source(tmp_path):
    """Provide a SQLite table whose TEXT primary key holds NULLs."""
    path = tmp_path / "nullable.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE meta (k TEXT PRIMARY KEY, v TEXT)")
    conn.execute("CREATE TABLE strict_meta (k TEXT PRIMARY KEY NOT NULL, v TEXT)")
    conn.executemany(
        "INSERT INTO meta (k, v) VALUES (?, ?)",
        [("a", "1"), (None, "2"), ("b", "3"), (None, "4")],
    )
    conn.commit()
    conn.close()
    source = SQLiteSource(path)
    yield source
    source.close()


class TestNullablePrimaryKey:
    """Keyset pagination needs a key column that can never be NULL."""

    def test_nullable_text_key_is_not_used(self, nullable_key_source):
        assert nullable_key_source.primary_key("meta") is None

    def test_not_null_text_key_is_used(self, nullable_key_source):
        assert nullable_key_source.primary_key("strict_meta") == "k"

    def test_large_table_exports_every_row(self, nullable_key_source, tmp_path, monkeypatch):
        monkeypatch.setattr("sitepull.services.export._engine.KEYSET_THRESHOLD_ROWS", 0)
        engine = ExportEngine(nullable_key_source)
        start = engine.init(2)
        assert start.cursor.per_table_info["meta"].use_keyset is False

        parts = [start.preamble]
        cursor = start.cursor
        while not cursor.is_complete:
            chunk = engine.next(cursor)
            parts.append(chunk.data.decode("utf-8"))
            cursor = chunk.cursor

        restored = sqlite3.connect(tmp_path / "restored.db")
        try:
            restored.executescript("".join(parts))
            values = sorted(v for (v,) in restored.execute("SELECT v FROM meta"))
            assert values == ["1", "2", "3", "4"]
        finally:
            restored.close()
