"""
Database export service for the sitepull API.

Provides the client side of both export protocols: server-tracked jobs and the
raw cursor stream.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import gzip
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from pydantic import ValidationError

from sitepull.api import config as api_config
from sitepull.exceptions import SitepullError, StorageError, TransportError
from sitepull.logging import get_logger
from sitepull.services.export import DatabaseJobProgress

if TYPE_CHECKING:
    from sitepull.api.client import SiteAPI

logger = get_logger(__name__)


class DatabaseJobsService:
    """
    High-level database export service.

    Example:
        >>> async with SiteAPI(url, key) as api:
        ...     job = await api.database.init_job()
        ...     while not (await api.database.process_chunk(job.job_id)).done:
        ...         pass
        ...     await api.database.download(job.job_id, Path("database.sql"))
        ...     await api.database.finish(job.job_id)
    """

    def __init__(self, api: SiteAPI) -> None:
        self._api = api

    @staticmethod
    def _parse(body: dict[str, Any], what: str) -> DatabaseJobProgress:
        try:
            return DatabaseJobProgress.model_validate(body)
        except ValidationError as e:
            raise TransportError(f"Invalid response from database job {what}", cause=e) from e

    async def init_job(self, chunk_size: int | None = None) -> DatabaseJobProgress:
        """Start a database export job."""
        body = await self._api.post_action(api_config.DB_JOB_INIT, chunk_size=chunk_size)
        return self._parse(body, "initialization")

    async def process_chunk(
        self, job_id: str, time_budget: float | None = None
    ) -> DatabaseJobProgress:
        """
        Run one export step on the server.

        Args:
            job_id: Job identifier.
            time_budget: Seconds the server may spend (server default if None).
        """
        body = await self._api.post_action(
            api_config.DB_JOB_PROCESS, job_id=job_id, time_budget=time_budget
        )
        return self._parse(body, "processing")

    async def download(
        self,
        job_id: str,
        dest: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """Download the finished dump to ``dest``. Returns bytes written."""
        return await self._api.stream_to_file(
            api_config.DB_JOB_DOWNLOAD, {"job_id": job_id}, dest, on_progress
        )

    async def finish(self, job_id: str) -> bool:
        """Clean up the job on the server. Failures are logged, not raised."""
        try:
            await self._api.post_action(api_config.DB_JOB_FINISH, job_id=job_id)
            return True
        except SitepullError as e:
            logger.warning(f"Failed to finish database job {job_id}: {e}")
            return False

    async def run_job(
        self,
        poll_interval: float = 0.1,
        time_budget: float | None = None,
        on_progress: Callable[[DatabaseJobProgress], None] | None = None,
    ) -> DatabaseJobProgress:
        """
        Create a job and drive it to completion.

        Steps are strictly sequential; the next request is only sent after the
        previous response arrived. The job is finished on the server if any
        step fails.
        """
        progress = await self.init_job()
        try:
            return await self.wait_until_done(progress, poll_interval, time_budget, on_progress)
        except BaseException:
            await self.finish(progress.job_id)
            raise

    async def wait_until_done(
        self,
        progress: DatabaseJobProgress,
        poll_interval: float = 0.1,
        time_budget: float | None = None,
        on_progress: Callable[[DatabaseJobProgress], None] | None = None,
    ) -> DatabaseJobProgress:
        """Drive an existing job until the server reports it done."""
        if on_progress:
            on_progress(progress)
        while not progress.done:
            await asyncio.sleep(poll_interval)
            progress = await self.process_chunk(progress.job_id, time_budget)
            logger.debug(
                f"DB: tables {progress.completed_tables}/{progress.total_tables}, "
                f"{progress.bytes_written} bytes"
            )
            if on_progress:
                on_progress(progress)
        return progress

    async def stream_export(
        self,
        dest: Path,
        chunk_size: int | None = None,
        time_budget: float | None = None,
        compression: str = "gzip",
    ) -> int:
        """
        Export through the raw cursor protocol, appending each slice to ``dest``.

        The client carries the cursor; the server keeps no state. The partial
        dump is removed on any failure.

        Returns:
            Bytes written (uncompressed).

        Raises:
            TransportError: A slice is corrupt, or an incomplete reply has no cursor.
        """
        start = await self._api.post_action(api_config.DB_STREAM_INIT, chunk_size=chunk_size)
        cursor = start.get("cursor")
        if not cursor:
            raise TransportError("Invalid response from stream initialization")

        written = 0
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "wb") as f:
                header = _decode_slice(start.get("sql_header", ""), "none")
                f.write(header)
                written += len(header)

                complete = bool(start.get("metadata", {}).get("total_tables", 0) == 0)
                while not complete:
                    body = await self._api.post_action(
                        api_config.DB_STREAM_CHUNK,
                        cursor=cursor,
                        time_budget=time_budget,
                        compression=compression,
                    )
                    complete = bool(body.get("is_complete"))
                    next_cursor = body.get("cursor")
                    # Resending the old cursor would append the same slice twice
                    if not complete and not next_cursor:
                        raise TransportError("Invalid response from stream chunk")
                    data = _decode_slice(body.get("sql_chunk", ""), compression)
                    f.write(data)
                    written += len(data)
                    cursor = next_cursor or cursor
        except OSError as e:
            dest.unlink(missing_ok=True)
            raise StorageError(str(dest), cause=e) from e
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
        return written


def _decode_slice(encoded: str, compression: str) -> bytes:
    try:
        data = base64.b64decode(encoded)
        return gzip.decompress(data) if compression == "gzip" and data else data
    except (binascii.Error, OSError, EOFError) as e:
        raise TransportError(f"Corrupt export slice: {e}", cause=e) from e
