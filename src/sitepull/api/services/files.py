"""
Files service for the sitepull API.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Callable

from sitepull.api import config as api_config

if TYPE_CHECKING:
    from sitepull.api.client import SiteAPI


class FilesService:
    """Single-file and batch retrieval."""

    def __init__(self, api: SiteAPI) -> None:
        self._api = api

    async def fetch(
        self,
        path: str,
        dest: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """Stream one remote file to ``dest``. Returns bytes written."""
        return await self._api.stream_to_file(
            api_config.FILE_FETCH, {"path": path}, dest, on_progress
        )

    async def fetch_batch(
        self,
        paths: list[str],
        dest: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """Stream a ZIP holding ``paths`` to ``dest``. Returns bytes written."""
        return await self._api.stream_to_file(
            api_config.FILE_BATCH, {"paths": list(paths)}, dest, on_progress
        )
