"""
Manifest service for the sitepull API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from sitepull.api import config as api_config
from sitepull.exceptions import SitepullError, TransportError
from sitepull.logging import get_logger
from sitepull.services.manifest import FileEntry, ManifestPage
from sitepull.services.manifest._config import DEFAULT_PAGE_LIMIT

if TYPE_CHECKING:
    from sitepull.api.client import SiteAPI

logger = get_logger(__name__)


class ManifestJobInfo(BaseModel):
    job_id: str
    total_files: int = 0
    total_bytes: int = 0
    created_at: int = 0


class ManifestJobsService:
    """
    High-level manifest job service.

    Example:
        >>> job = await api.manifest.init_job()
        >>> try:
        ...     entries = await api.manifest.collect_entries(job.job_id)
        ... finally:
        ...     await api.manifest.finish(job.job_id)
    """

    def __init__(self, api: SiteAPI) -> None:
        self._api = api

    async def init_job(self) -> ManifestJobInfo:
        """Ask the server to scan its tree into a new job."""
        body = await self._api.post_action(api_config.MANIFEST_JOB_INIT)
        try:
            return ManifestJobInfo.model_validate(body)
        except ValidationError as e:
            raise TransportError("Invalid response from manifest job initialization", cause=e) from e

    async def page(
        self, job_id: str, offset: int = 0, limit: int = DEFAULT_PAGE_LIMIT
    ) -> ManifestPage:
        body = await self._api.post_action(
            api_config.MANIFEST_JOB_PAGE, job_id=job_id, offset=offset, limit=limit
        )
        try:
            return ManifestPage.model_validate(body)
        except ValidationError as e:
            raise TransportError("Invalid manifest page", cause=e) from e

    async def collect_entries(
        self, job_id: str, limit: int = DEFAULT_PAGE_LIMIT
    ) -> list[FileEntry]:
        """Page through a job and return the full file list in manifest order."""
        entries: list[FileEntry] = []
        offset = 0
        while True:
            page = await self.page(job_id, offset, limit)
            entries.extend(page.files)
            offset += len(page.files)
            if not page.files or offset >= page.total_files:
                break
        if len(entries) != page.total_files:
            raise TransportError(
                f"Manifest job {job_id} returned {len(entries)} of {page.total_files} files"
            )
        return entries

    async def finish(self, job_id: str | None) -> bool:
        """Delete the job on the server. Failures are logged, not raised."""
        if not job_id:
            return False
        try:
            await self._api.post_action(api_config.MANIFEST_JOB_FINISH, job_id=job_id)
            return True
        except SitepullError as e:
            logger.warning(f"Failed to finish manifest job {job_id}: {e}")
            return False
