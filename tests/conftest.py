"""
Pytest configuration and fixtures for sitepull tests.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import httpx
import pytest

from sitepull.config import reset_settings
from sitepull.server import create_app
from sitepull.services.export import SQLiteSource, TableStats
from sitepull.storage import MemoryStore

ACCESS_KEY = "test-key-0123456789"
SITE_URL = "http://testserver"


class FakeSource:
    """
    In-memory TableSource with generated rows.

    Row ``i`` of every table is ``{"id": i + 1, "name": "row-<i+1>"}``, so
    primary keys are dense and start at 1.
    """

    dialect = "mysql"

    def __init__(
        self,
        tables: dict[str, int],
        no_primary_key: frozenset[str] = frozenset(),
        bytes_per_row: int = 100,
    ) -> None:
        self.tables = dict(tables)
        self.no_primary_key = no_primary_key
        self.bytes_per_row = bytes_per_row
        self.fail_tables: set[str] = set()
        self.offset_calls: list[tuple[str, int, int]] = []
        self.keyset_calls: list[tuple[str, object, int]] = []

    @staticmethod
    def row(i: int) -> dict:
        return {"id": i + 1, "name": f"row-{i + 1}"}

    def _check(self, table: str) -> None:
        from sitepull.exceptions import SourceReadError

        if table in self.fail_tables:
            raise SourceReadError(table)

    def list_tables(self) -> list[str]:
        return list(self.tables)

    def table_stats(self, table: str) -> TableStats:
        n = self.tables[table]
        return TableStats(rows=n, bytes=n * self.bytes_per_row)

    def primary_key(self, table: str) -> str | None:
        return None if table in self.no_primary_key else "id"

    def create_statement(self, table: str) -> str:
        return f"CREATE TABLE `{table}` (`id` int NOT NULL, `name` text, PRIMARY KEY (`id`))"

    def fetch_offset(self, table: str, offset: int, limit: int) -> list[dict]:
        self._check(table)
        self.offset_calls.append((table, offset, limit))
        end = min(offset + limit, self.tables[table])
        return [self.row(i) for i in range(offset, end)]

    def fetch_after(self, table: str, key: str, last_key, limit: int) -> list[dict]:
        self._check(table)
        self.keyset_calls.append((table, last_key, limit))
        start = 0 if last_key is None else int(last_key)
        end = min(start + limit, self.tables[table])
        return [self.row(i) for i in range(start, end)]


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from SITEPULL_* variables and cached settings."""
    for name in ("KEY", "CONCURRENCY", "TIMEOUT", "MAX_RETRIES", "LOG_LEVEL"):
        monkeypatch.delenv(f"SITEPULL_{name}", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def access_key() -> str:
    """Provide the endpoint access key."""
    return ACCESS_KEY


@pytest.fixture
def site_url() -> str:
    """Provide the site URL the bridge transport answers for."""
    return SITE_URL


@pytest.fixture
def fake_source_cls():
    """Provide the FakeSource class."""
    return FakeSource


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """Provide a small site tree."""
    root = tmp_path / "site"
    (root / "wp-content" / "uploads" / "2024").mkdir(parents=True)
    (root / "wp-includes").mkdir()
    (root / ".git").mkdir()
    (root / "index.php").write_text("<?php echo 'hello';\n")
    (root / "wp-config.php").write_text("<?php define('DB_NAME', 'site');\n")
    (root / "wp-includes" / "version.php").write_text("<?php $wp_version = '6.5';\n")
    (root / "wp-content" / "uploads" / "2024" / "photo.jpg").write_bytes(bytes(range(256)) * 40)
    (root / "wp-content" / "uploads" / "big.bin").write_bytes(b"\x01" * 5000)
    (root / ".git" / "config").write_text("[core]\n")
    return root


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """Provide a SQLite database with a keyed table and a keyless table."""
    path = tmp_path / "site.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE posts (id INTEGER PRIMARY KEY, title TEXT, body BLOB)")
    conn.execute("CREATE TABLE options (name TEXT, value TEXT)")
    conn.executemany(
        "INSERT INTO posts (id, title, body) VALUES (?, ?, ?)",
        [(i, f"Post {i}'s title", b"\x00\xff") for i in range(1, 31)],
    )
    conn.executemany(
        "INSERT INTO options (name, value) VALUES (?, ?)",
        [("siteurl", "http://example.com"), ("blogname", None)],
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_source(sqlite_db: Path):
    """Provide an open SQLiteSource."""
    source = SQLiteSource(sqlite_db)
    yield source
    source.close()


@pytest.fixture
def server_app(site_root: Path, sqlite_source: SQLiteSource, tmp_path: Path):
    """Provide the Flask endpoint over the site tree and database."""
    return create_app(
        site_root,
        sqlite_source,
        ACCESS_KEY,
        store=MemoryStore(),
        work_dir=tmp_path / "work",
    )


@pytest.fixture
def server_client(server_app):
    """Provide a Flask test client."""
    return server_app.test_client()


def flask_transport(app) -> httpx.MockTransport:
    """httpx transport that hands every request to the Flask test client."""
    client = app.test_client()

    def handler(request: httpx.Request) -> httpx.Response:
        headers = [
            (k, v)
            for k, v in request.headers.items()
            if k.lower() not in ("host", "content-length")
        ]
        response = client.open(
            request.url.path,
            method=request.method,
            query_string=request.url.query,
            headers=headers,
            data=request.content,
        )
        try:
            body = response.get_data()
            out_headers = [
                (k, v)
                for k, v in response.headers.items()
                if k.lower() not in ("content-length", "transfer-encoding")
            ]
        finally:
            response.close()
        return httpx.Response(response.status_code, headers=out_headers, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def bridge_transport(server_app) -> httpx.MockTransport:
    """Provide an httpx transport backed by the Flask endpoint."""
    return flask_transport(server_app)
