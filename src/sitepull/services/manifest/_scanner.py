"""
Source tree scanning and path validation.
"""

from __future__ import annotations

import os
from pathlib import Path

from sitepull.exceptions import FileMissingError, PathTraversalError
from sitepull.logging import get_logger
from sitepull.services.manifest._config import IGNORED_DIRS
from sitepull.services.manifest._models import FileEntry

logger = get_logger(__name__)


def scan_file_list(root: str | Path) -> list[FileEntry]:
    """
    List every readable regular file under ``root``.

    VCS directories are skipped. Paths are relative, ``/``-separated and the
    result is sorted by path.
    """
    root_path = Path(root).resolve()
    entries: list[FileEntry] = []

    def _on_error(error: OSError) -> None:
        logger.warning(f"Skipping unreadable directory: {error}")

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_on_error):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in filenames:
            full = Path(dirpath) / name
            if full.is_symlink() or not os.access(full, os.R_OK):
                continue
            try:
                st = full.stat()
            except OSError:
                continue
            relative = full.relative_to(root_path).as_posix()
            entries.append(FileEntry(path=relative, size=st.st_size, mtime=int(st.st_mtime)))

    entries.sort(key=lambda e: e.path)
    return entries


def normalize_relative(path: str) -> str:
    """Normalize a client-supplied relative path (``\\`` to ``/``, no leading slash)."""
    return path.replace("\\", "/").lstrip("/")


def resolve_within(root: str | Path, relative: str) -> Path:
    """
    Resolve ``relative`` under ``root`` and ensure it stays inside.

    Raises:
        PathTraversalError: Empty path or the resolved path escapes the root.
        FileMissingError: Resolved path is not an existing regular file.
    """
    cleaned = normalize_relative(relative or "")
    if not cleaned:
        raise PathTraversalError(relative or "")

    root_path = Path(root).resolve()
    target = (root_path / cleaned).resolve()
    if target != root_path and root_path not in target.parents:
        raise PathTraversalError(relative)
    if not target.is_file():
        raise FileMissingError(relative)
    return target
