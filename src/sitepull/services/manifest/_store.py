"""
Chunked persistence of manifest jobs.

A file list can hold hundreds of thousands of entries, more than a single
stored value should carry. ``JobStore`` writes a metadata record plus
``chunk_count`` chunks of at most ``chunk_files`` entries, all under the same
TTL, and only ever returns a complete list.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from sitepull.exceptions import JobNotFoundError
from sitepull.logging import get_logger
from sitepull.services.manifest._config import JOB_CHUNK_FILES, JOB_TTL
from sitepull.services.manifest._models import FileEntry, ManifestJob
from sitepull.storage import KeyValueStore

logger = get_logger(__name__)

META_PREFIX = "sitepull_job_meta_"
CHUNK_PREFIX = "sitepull_job_chunk_"


class JobStore:
    """
    TTL-bounded store of manifest jobs addressed by job id.

    Example:
        >>> jobs = JobStore(MemoryStore())
        >>> jobs.save("abc", entries)
        >>> jobs.load("abc").files == entries
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: float = JOB_TTL,
        chunk_files: int = JOB_CHUNK_FILES,
    ) -> None:
        if chunk_files < 1:
            raise ValueError("chunk_files must be at least 1")
        self._store = store
        self._ttl = ttl
        self._chunk_files = chunk_files

    @staticmethod
    def _chunk_key(job_id: str, index: int) -> str:
        return f"{CHUNK_PREFIX}{job_id}_{index}"

    def save(self, job_id: str, entries: Sequence[FileEntry]) -> ManifestJob:
        """Persist ``entries`` under ``job_id``. Returns the job metadata."""
        chunks = [
            entries[i : i + self._chunk_files]
            for i in range(0, len(entries), self._chunk_files)
        ]
        for index, chunk in enumerate(chunks):
            self._store.set(
                self._chunk_key(job_id, index),
                [e.model_dump() for e in chunk],
                self._ttl,
            )

        # Metadata last: a job is only visible once all of its chunks exist
        meta = ManifestJob(
            job_id=job_id,
            created_at=int(time.time()),
            total_files=len(entries),
            total_bytes=sum(e.size for e in entries),
            chunk_count=len(chunks),
        )
        self._store.set(
            META_PREFIX + job_id,
            meta.model_dump(exclude={"files"}),
            self._ttl,
        )
        return meta

    def load(self, job_id: str) -> ManifestJob:
        """
        Reassemble a job.

        Raises:
            JobNotFoundError: Metadata or any chunk is missing or expired.
        """
        raw_meta = self._store.get(META_PREFIX + job_id)
        if not isinstance(raw_meta, dict):
            raise JobNotFoundError(job_id)

        job = ManifestJob.model_validate(raw_meta)
        files: list[FileEntry] = []
        for index in range(job.chunk_count):
            chunk = self._store.get(self._chunk_key(job_id, index))
            if not isinstance(chunk, list):
                logger.warning(f"Manifest job {job_id} missing chunk {index}")
                raise JobNotFoundError(job_id)
            files.extend(FileEntry.model_validate(item) for item in chunk)

        if len(files) != job.total_files:
            raise JobNotFoundError(job_id)
        job.files = files
        return job

    def delete(self, job_id: str) -> None:
        """Remove every chunk and the metadata record."""
        raw_meta = self._store.get(META_PREFIX + job_id)
        if isinstance(raw_meta, dict):
            for index in range(int(raw_meta.get("chunk_count", 0))):
                self._store.delete(self._chunk_key(job_id, index))
        self._store.delete(META_PREFIX + job_id)
