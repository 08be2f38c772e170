"""
Download orchestration.

Drives one backup run through a fixed sequence of states:

    INIT -> DB_EXPORT -> DB_DOWNLOAD -> MANIFEST_INIT -> PARTITION
         -> RETRIEVE -> PACKAGE -> DONE

``FAILED`` is absorbing and reachable from every non-terminal state. The
database export is driven strictly sequentially; file retrieval runs in the
concurrent engine. No archive is produced when any unit failed.
"""

from __future__ import annotations

import asyncio
import shutil
from enum import Enum
from pathlib import Path

import httpx
from pydantic import BaseModel, Field

from sitepull.api import SiteAPI
from sitepull.archive import ArchiveBuilder, archive_host
from sitepull.config import get_settings
from sitepull.exceptions import (
    ConnectionTimeoutError,
    ExitCode,
    InvalidArgumentError,
    ProtocolError,
    SitepullError,
    exit_code_for,
)
from sitepull.logging import get_logger
from sitepull.services.download import ProgressAggregator, RetrievalEngine, TransferResult
from sitepull.services.download._config import (
    BATCH_BYTE_CAP,
    BATCH_COUNT_CAP,
    DB_DOWNLOAD_TIMEOUT,
    DB_POLL_INTERVAL,
    LARGE_FILE_THRESHOLD,
    MAX_CONCURRENCY,
)
from sitepull.services.manifest import partition

logger = get_logger(__name__)


class OrchestratorState(str, Enum):
    INIT = "init"
    DB_EXPORT = "db_export"
    DB_DOWNLOAD = "db_download"
    MANIFEST_INIT = "manifest_init"
    PARTITION = "partition"
    RETRIEVE = "retrieve"
    PACKAGE = "package"
    DONE = "done"
    FAILED = "failed"


_NEXT_STATE = {
    OrchestratorState.INIT: OrchestratorState.DB_EXPORT,
    OrchestratorState.DB_EXPORT: OrchestratorState.DB_DOWNLOAD,
    OrchestratorState.DB_DOWNLOAD: OrchestratorState.MANIFEST_INIT,
    OrchestratorState.MANIFEST_INIT: OrchestratorState.PARTITION,
    OrchestratorState.PARTITION: OrchestratorState.RETRIEVE,
    OrchestratorState.RETRIEVE: OrchestratorState.PACKAGE,
    OrchestratorState.PACKAGE: OrchestratorState.DONE,
}

TERMINAL_STATES = frozenset({OrchestratorState.DONE, OrchestratorState.FAILED})


class RetrievalFailedError(SitepullError):
    """One or more transfer units failed; the run produces no archive."""

    def __init__(self, result: TransferResult) -> None:
        self.result = result
        super().__init__(f"files failed: {result.files_failed}")


class DownloadReport(BaseModel):
    """Outcome of one orchestrator run."""

    state: OrchestratorState
    exit_code: int
    history: list[OrchestratorState] = Field(default_factory=list)
    archive_path: Path | None = None
    transfer: TransferResult = Field(default_factory=TransferResult)
    db_bytes: int = 0
    files_total: int = 0
    bytes_total: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is OrchestratorState.DONE

    def summary(self) -> str:
        if self.ok:
            return (
                f"Archive: {self.archive_path}\n"
                f"Database: {self.db_bytes:,} bytes\n{self.transfer.summary()}"
            )
        if self.transfer.files_failed:
            return f"files failed: {self.transfer.files_failed}"
        if self.exit_code == ExitCode.INTERNAL:
            return f"internal error: {self.error}"
        return f"error: {self.error}"


class DownloadOrchestrator:
    """
    State machine for one backup run.

    Example:
        >>> async with SiteAPI(url, key) as api:
        ...     orchestrator = DownloadOrchestrator(api, Path("./backups"), "example.com")
        ...     report = await orchestrator.run()
    """

    def __init__(
        self,
        api: SiteAPI,
        output_dir: Path,
        host: str,
        concurrency: int | None = None,
        max_retries: int | None = None,
        progress: ProgressAggregator | None = None,
        poll_interval: float = DB_POLL_INTERVAL,
        large_threshold: int = LARGE_FILE_THRESHOLD,
        batch_byte_cap: int = BATCH_BYTE_CAP,
        batch_count_cap: int = BATCH_COUNT_CAP,
        retry_backoff: float | None = None,
    ) -> None:
        settings = get_settings()
        self._api = api
        self._builder = ArchiveBuilder(output_dir, host)
        self._concurrency = concurrency or settings.concurrency
        self._max_retries = max_retries or settings.max_retries
        self._retry_backoff = retry_backoff
        self._poll_interval = poll_interval
        self._large_threshold = large_threshold
        self._batch_byte_cap = batch_byte_cap
        self._batch_count_cap = batch_count_cap
        self.progress = progress or ProgressAggregator()

        self.state = OrchestratorState.INIT
        self.history: list[OrchestratorState] = [OrchestratorState.INIT]
        self._transfer = TransferResult()
        self._db_bytes = 0

    def _advance(self, expected_next: OrchestratorState) -> None:
        if _NEXT_STATE.get(self.state) is not expected_next:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {expected_next.value}")
        self._enter(expected_next)

    def _enter(self, state: OrchestratorState) -> None:
        logger.info(f"State: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def run(self) -> DownloadReport:
        """Run every step; never raises for expected failures."""
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Orchestrator already finished ({self.state.value})")
        try:
            archive = await self._run_steps()
        except Exception as e:
            return self._fail(e)
        except BaseException:
            # Cancelled or interrupted: discard partial output, then propagate
            logger.warning(f"Run interrupted during {self.state.value}")
            self._enter(OrchestratorState.FAILED)
            self._builder.cleanup(remove_archive=True)
            raise

        self._builder.cleanup()
        return self._report(ExitCode.SUCCESS, archive_path=archive)

    async def _run_steps(self) -> Path:
        builder = self._builder
        builder.create_workspace()

        self._advance(OrchestratorState.DB_EXPORT)
        database = self._api.database
        job = await database.init_job()
        # The server job is finished however export or download end
        try:
            job = await database.wait_until_done(
                job,
                poll_interval=self._poll_interval,
                on_progress=lambda p: self.progress.set_database(p.bytes_written),
            )
            if not job.done:
                raise ProtocolError(f"Database job {job.job_id} stopped before completion")

            self._advance(OrchestratorState.DB_DOWNLOAD)
            try:
                self._db_bytes = await asyncio.wait_for(
                    database.download(job.job_id, builder.database_path),
                    timeout=DB_DOWNLOAD_TIMEOUT,
                )
            except asyncio.TimeoutError as e:
                raise ConnectionTimeoutError(DB_DOWNLOAD_TIMEOUT, cause=e) from e
        finally:
            await database.finish(job.job_id)
        self.progress.set_database(self._db_bytes, done=True)

        self._advance(OrchestratorState.MANIFEST_INIT)
        manifest = await self._api.manifest.init_job()
        try:
            entries = await self._api.manifest.collect_entries(manifest.job_id)
        finally:
            await self._api.manifest.finish(manifest.job_id)

        self._advance(OrchestratorState.PARTITION)
        parts = partition(
            entries, self._large_threshold, self._batch_byte_cap, self._batch_count_cap
        )
        self.progress.init_counters(parts.total_files, parts.total_bytes)
        logger.info(
            f"{parts.total_files} files ({parts.total_bytes:,} bytes): "
            f"{len(parts.large)} large, {len(parts.batches)} batches"
        )

        self._advance(OrchestratorState.RETRIEVE)
        engine_options = {}
        if self._retry_backoff is not None:
            engine_options["backoff_base"] = self._retry_backoff
        engine = RetrievalEngine(
            self._api.files,
            builder.workspace / ".batches",
            concurrency=self._concurrency,
            max_retries=self._max_retries,
            progress=self.progress,
            **engine_options,
        )
        self._transfer = await engine.retrieve(parts.units(), builder.files_dir)
        if self._transfer.files_failed:
            raise RetrievalFailedError(self._transfer)

        self._advance(OrchestratorState.PACKAGE)
        shutil.rmtree(builder.workspace / ".batches", ignore_errors=True)
        return builder.build()

    def _fail(self, error: Exception) -> DownloadReport:
        failed_in = self.state
        self._enter(OrchestratorState.FAILED)
        if isinstance(error, RetrievalFailedError):
            code = ExitCode.HTTP
            logger.error(f"Retrieval failed: {error}")
        elif isinstance(error, SitepullError):
            code = exit_code_for(error)
            logger.error(f"Failed during {failed_in.value}: {error}")
        else:
            code = ExitCode.INTERNAL
            logger.exception(f"Internal error during {failed_in.value}: {error}")
        self._builder.cleanup(remove_archive=True)
        return self._report(code, error=str(error))

    def _report(self, code: ExitCode, **fields: object) -> DownloadReport:
        snapshot = self.progress.snapshot()
        return DownloadReport(
            state=self.state,
            exit_code=int(code),
            history=list(self.history),
            transfer=self._transfer,
            db_bytes=self._db_bytes,
            files_total=snapshot.files_total,
            bytes_total=snapshot.bytes_total,
            **fields,
        )


def _validate_arguments(url: str, key: str, output_dir: Path | str, concurrency: int) -> None:
    if not url:
        raise InvalidArgumentError("url is required")
    scheme = httpx.URL(url).scheme if "://" in url else ""
    if scheme not in ("http", "https"):
        raise InvalidArgumentError(f"url must start with http:// or https://: {url}")
    if not key:
        raise InvalidArgumentError("key is required")
    if not str(output_dir):
        raise InvalidArgumentError("output directory is required")
    if not 1 <= concurrency <= MAX_CONCURRENCY:
        raise InvalidArgumentError(
            f"concurrency must be between 1 and {MAX_CONCURRENCY}, got {concurrency}"
        )


async def download_async(
    url: str,
    key: str,
    output_dir: Path | str,
    concurrency: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    progress: ProgressAggregator | None = None,
    **options: object,
) -> DownloadReport:
    """Validate arguments, then run the orchestrator against ``url``."""
    settings = get_settings()
    concurrency = concurrency or settings.concurrency
    try:
        _validate_arguments(url, key, output_dir, concurrency)
        api = SiteAPI(url, key, timeout=settings.timeout, transport=transport)
    except InvalidArgumentError as e:
        logger.error(str(e))
        return DownloadReport(
            state=OrchestratorState.FAILED,
            exit_code=int(ExitCode.BAD_ARGUMENTS),
            history=[OrchestratorState.INIT, OrchestratorState.FAILED],
            error=str(e),
        )

    async with api:
        orchestrator = DownloadOrchestrator(
            api,
            Path(output_dir),
            archive_host(url),
            concurrency=concurrency,
            progress=progress,
            **options,
        )
        return await orchestrator.run()


def run_download(
    url: str,
    key: str,
    output_dir: Path | str,
    concurrency: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    progress: ProgressAggregator | None = None,
    **options: object,
) -> DownloadReport:
    """Synchronous wrapper around ``download_async``."""
    return asyncio.run(
        download_async(url, key, output_dir, concurrency, transport, progress, **options)
    )


def handle_download(
    url: str,
    key: str,
    output_dir: Path | str,
    concurrency: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    progress: ProgressAggregator | None = None,
) -> int:
    """
    Run a full backup and return the process exit code.

    Exit codes: 0 success, 2 bad arguments, 3 network/HTTP failure (including
    failed files), 4 internal error.
    """
    report = run_download(url, key, output_dir, concurrency, transport, progress)
    return report.exit_code
