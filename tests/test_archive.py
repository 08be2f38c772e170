"""
Tests for archive packaging.
"""

from __future__ import annotations

import os
import zipfile
from datetime import datetime, timezone

import pytest

from sitepull.archive import (
    ARCHIVES_DIR,
    DATABASE_FILE,
    FILES_DIR,
    WORKSPACE_PREFIX,
    ArchiveBuilder,
    archive_host,
)

FIXED_NOW = datetime(2024, 5, 17, 9, 30, 5, tzinfo=timezone.utc)


@pytest.fixture
def builder(tmp_path):
    return ArchiveBuilder(tmp_path / "out", "example.com", now=lambda: FIXED_NOW)


def fill(builder: ArchiveBuilder) -> None:
    (builder.files_dir / "b").mkdir()
    (builder.files_dir / "b" / "z.txt").write_text("z")
    (builder.files_dir / "a.txt").write_text("a")
    builder.database_path.write_text("-- dump\n")


class TestArchiveHost:
    """Tests for archive_host."""

    @pytest.mark.parametrize(
        "url,host",
        [
            ("https://example.com/blog", "example.com"),
            ("http://Example.COM:8080", "example.com"),
            ("example.org", "example.org"),
            ("http://[::1]:8080/", "__1"),
        ],
    )
    def test_host(self, url, host):
        assert archive_host(url) == host


class TestArchiveBuilder:
    """Tests for ArchiveBuilder."""

    def test_workspace_layout(self, builder, tmp_path):
        workspace = builder.create_workspace()
        assert workspace.parent == tmp_path / "out"
        assert workspace.name.startswith(WORKSPACE_PREFIX)
        assert builder.files_dir == workspace / FILES_DIR
        assert builder.files_dir.is_dir()
        assert builder.database_path == workspace / DATABASE_FILE

    def test_paths_require_workspace(self, builder):
        with pytest.raises(RuntimeError):
            _ = builder.files_dir

    def test_build(self, builder, tmp_path):
        builder.create_workspace()
        fill(builder)
        path = builder.build()

        assert path == tmp_path / "out" / ARCHIVES_DIR / "example.com-20240517-093005.zip"
        with zipfile.ZipFile(path) as zf:
            assert zf.namelist() == ["database.sql", "files/a.txt", "files/b/z.txt"]
            assert zf.read("files/b/z.txt") == b"z"
            assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in zf.infolist())
        assert not path.with_name(path.name + ".partial").exists()

    def test_old_mtime_clamped(self, builder):
        builder.create_workspace()
        old = builder.files_dir / "old.txt"
        old.write_text("x")
        os.utime(old, (0, 0))
        path = builder.build()
        with zipfile.ZipFile(path) as zf:
            assert zf.getinfo("files/old.txt").date_time == (1980, 1, 1, 0, 0, 0)

    def test_cleanup_keeps_archive(self, builder):
        workspace = builder.create_workspace()
        fill(builder)
        path = builder.build()
        builder.cleanup()
        assert not workspace.exists()
        assert path.exists()

    def test_cleanup_removes_archive(self, builder):
        workspace = builder.create_workspace()
        fill(builder)
        path = builder.build()
        builder.cleanup(remove_archive=True)
        assert not workspace.exists()
        assert not path.exists()
        assert builder.archive_path is None

    def test_cleanup_is_idempotent(self, builder):
        builder.create_workspace()
        builder.cleanup()
        builder.cleanup(remove_archive=True)
