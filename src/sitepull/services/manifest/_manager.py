"""
Manifest job lifecycle on the server side.
"""

from __future__ import annotations

import secrets
from pathlib import Path

from sitepull.exceptions import InvalidArgumentError
from sitepull.logging import get_logger
from sitepull.services.manifest._config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from sitepull.services.manifest._models import ManifestJob, ManifestPage
from sitepull.services.manifest._scanner import scan_file_list
from sitepull.services.manifest._store import JobStore

logger = get_logger(__name__)


class ManifestManager:
    """Scans the source root once per job and serves the list page by page."""

    def __init__(self, root: str | Path, jobs: JobStore) -> None:
        self._root = Path(root)
        self._jobs = jobs

    @property
    def root(self) -> Path:
        return self._root

    def create_job(self) -> ManifestJob:
        """Scan the tree and store the result as a new job."""
        files = scan_file_list(self._root)
        job_id = secrets.token_hex(10)
        job = self._jobs.save(job_id, files)
        logger.info(f"Manifest job {job_id}: {job.total_files} files, {job.total_bytes} bytes")
        return job

    def get_slice(
        self, job_id: str, offset: int = 0, limit: int = DEFAULT_PAGE_LIMIT
    ) -> ManifestPage:
        """Return ``limit`` entries starting at ``offset``."""
        if not job_id:
            raise InvalidArgumentError("job_id is required")
        if offset < 0 or limit < 1:
            raise InvalidArgumentError("offset must be >= 0 and limit >= 1")
        limit = min(limit, MAX_PAGE_LIMIT)

        job = self._jobs.load(job_id)
        return ManifestPage(
            job_id=job_id,
            offset=offset,
            limit=limit,
            total_files=job.total_files,
            total_bytes=job.total_bytes,
            files=job.files[offset : offset + limit],
        )

    def finish_job(self, job_id: str) -> None:
        if not job_id:
            raise InvalidArgumentError("Manifest job ID is required.")
        self._jobs.delete(job_id)
