"""
Backup archive packaging.

The download runs inside a transient workspace in the output directory:

    <output>/.sitepull-<random>/files/...        retrieved tree
    <output>/.sitepull-<random>/database.sql     database dump

``build()`` zips the workspace into ``<output>/archives/<host>-<timestamp>.zip``
with entries sorted by path, so the same tree always yields the same member
order.
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from urllib.parse import urlsplit

from sitepull.exceptions import StorageError
from sitepull.logging import get_logger

logger = get_logger(__name__)

FILES_DIR = "files"
DATABASE_FILE = "database.sql"
ARCHIVES_DIR = "archives"
WORKSPACE_PREFIX = ".sitepull-"

# Earliest timestamp a ZIP entry can carry
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def archive_host(url: str) -> str:
    """Filesystem-safe host label for archive names."""
    host = urlsplit(url if "://" in url else f"http://{url}").hostname or "site"
    return re.sub(r"[^A-Za-z0-9.-]", "_", host)


class ArchiveBuilder:
    """
    Owns the workspace and the output archive of one download run.

    Example:
        >>> builder = ArchiveBuilder(Path("./backups"), "example.com")
        >>> workspace = builder.create_workspace()
        >>> ...  # fill builder.files_dir and builder.database_path
        >>> path = builder.build()
        >>> builder.cleanup()
    """

    def __init__(
        self,
        output_dir: Path,
        host: str,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.output_dir = Path(output_dir)
        self.host = host
        self._now = now
        self.workspace: Path | None = None
        self.archive_path: Path | None = None

    @property
    def files_dir(self) -> Path:
        return self._require_workspace() / FILES_DIR

    @property
    def database_path(self) -> Path:
        return self._require_workspace() / DATABASE_FILE

    def _require_workspace(self) -> Path:
        if self.workspace is None:
            raise RuntimeError("Workspace not created")
        return self.workspace

    def create_workspace(self) -> Path:
        """Create the transient workspace inside the output directory."""
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self.workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.output_dir))
            (self.workspace / FILES_DIR).mkdir()
        except OSError as e:
            raise StorageError(str(self.output_dir), cause=e) from e
        logger.debug(f"Workspace: {self.workspace}")
        return self.workspace

    def build(self) -> Path:
        """
        Zip the workspace into the archives directory.

        The archive is written under a temporary name and renamed when
        complete.

        Returns:
            Path of the finished archive.
        """
        workspace = self._require_workspace()
        stamp = self._now().strftime("%Y%m%d-%H%M%S")
        archives = self.output_dir / ARCHIVES_DIR
        target = archives / f"{self.host}-{stamp}.zip"
        partial = target.with_name(target.name + ".partial")
        self.archive_path = partial

        try:
            archives.mkdir(parents=True, exist_ok=True)
            members = sorted(
                (p.relative_to(workspace).as_posix(), p)
                for p in workspace.rglob("*")
                if p.is_file()
            )
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for name, path in members:
                    info = zipfile.ZipInfo(name, date_time=_zip_time(path))
                    info.compress_type = zipfile.ZIP_DEFLATED
                    info.external_attr = 0o644 << 16
                    with open(path, "rb") as src, zf.open(info, "w") as dst:
                        shutil.copyfileobj(src, dst, 1024 * 1024)
            os.replace(partial, target)
        except OSError as e:
            raise StorageError(str(target), cause=e) from e

        self.archive_path = target
        logger.info(f"Archive written: {target} ({len(members)} entries)")
        return target

    def cleanup(self, remove_archive: bool = False) -> None:
        """Remove the workspace, and the archive (finished or partial) when asked."""
        if self.workspace is not None:
            shutil.rmtree(self.workspace, ignore_errors=True)
            self.workspace = None
        if remove_archive and self.archive_path is not None:
            try:
                self.archive_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {self.archive_path}: {e}")
            self.archive_path = None


def _zip_time(path: Path) -> tuple[int, int, int, int, int, int]:
    stamp = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).timetuple()[:6]
    return max(stamp, _ZIP_EPOCH)
