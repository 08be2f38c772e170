"""
Server-tracked database export jobs.

A job wraps one export session: the dump is appended to a file in the work
directory and the cursor is kept in the key/value store between requests.
"""

from __future__ import annotations

import secrets
import time
from pathlib import Path
from typing import Callable

from pydantic import BaseModel

from sitepull.exceptions import InvalidArgumentError, JobNotFoundError, StorageError
from sitepull.logging import get_logger
from sitepull.services.export._config import DB_JOB_TTL, DEFAULT_TIME_BUDGET
from sitepull.services.export._engine import ExportEngine
from sitepull.storage import KeyValueStore

logger = get_logger(__name__)

KEY_PREFIX = "sitepull_db_"


class DatabaseJobState(BaseModel):
    """Persisted state of one export job."""

    job_id: str
    cursor: str
    total_tables: int
    total_rows: int
    bytes_written: int = 0
    completed_tables: int = 0
    done: bool = False


class DatabaseJobProgress(BaseModel):
    """Response of ``init_job`` and ``process``."""

    job_id: str
    total_tables: int
    total_rows: int
    completed_tables: int
    bytes_written: int
    done: bool


def new_job_id() -> str:
    return secrets.token_hex(10)


class DatabaseJobManager:
    """
    Runs export jobs one pagination step per request.

    Example:
        >>> jobs = DatabaseJobManager(engine, MemoryStore(), Path("/tmp/work"))
        >>> job = jobs.init_job()
        >>> while not jobs.process(job.job_id).done:
        ...     pass
        >>> path = jobs.dump_path(job.job_id)
        >>> jobs.finish(job.job_id)
    """

    def __init__(
        self,
        engine: ExportEngine,
        store: KeyValueStore,
        work_dir: str | Path,
        ttl: float = DB_JOB_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._store = store
        self._work_dir = Path(work_dir)
        self._ttl = ttl
        self._clock = clock

    def _file(self, job_id: str) -> Path:
        return self._work_dir / f"{job_id}.sql"

    def _load(self, job_id: str) -> DatabaseJobState:
        if not job_id:
            raise InvalidArgumentError("job_id is required")
        raw = self._store.get(KEY_PREFIX + job_id)
        if raw is None:
            raise JobNotFoundError(job_id)
        return DatabaseJobState.model_validate(raw)

    def _save(self, state: DatabaseJobState) -> None:
        self._store.set(KEY_PREFIX + state.job_id, state.model_dump(), self._ttl)

    @staticmethod
    def _progress(state: DatabaseJobState) -> DatabaseJobProgress:
        return DatabaseJobProgress(
            job_id=state.job_id,
            total_tables=state.total_tables,
            total_rows=state.total_rows,
            completed_tables=state.completed_tables,
            bytes_written=state.bytes_written,
            done=state.done,
        )

    def purge_stale_dumps(self) -> int:
        """
        Delete dumps not modified within the job TTL.

        Their store records have expired, so no request can reach them again.
        Returns the number of files removed.
        """
        if not self._work_dir.is_dir():
            return 0
        cutoff = self._clock() - self._ttl
        removed = 0
        for path in self._work_dir.glob("*.sql"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not remove stale dump {path.name}: {e}")
        if removed:
            logger.info(f"Removed {removed} stale export dumps")
        return removed

    def init_job(self, chunk_size: int | None = None) -> DatabaseJobProgress:
        """Start an export and write the dump preamble."""
        self.purge_stale_dumps()
        start = self._engine.init(chunk_size)
        job_id = new_job_id()
        path = self._file(job_id)
        data = start.preamble.encode("utf-8")
        try:
            self._work_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(str(path), cause=e) from e

        state = DatabaseJobState(
            job_id=job_id,
            cursor=start.token,
            total_tables=start.metadata.total_tables,
            total_rows=start.metadata.total_rows,
            bytes_written=len(data),
            done=start.cursor.is_complete,
        )
        self._save(state)
        logger.info(
            f"DB job {job_id}: {state.total_tables} tables, ~{state.total_rows} rows"
        )
        return self._progress(state)

    def process(
        self, job_id: str, time_budget: float | None = None
    ) -> DatabaseJobProgress:
        """
        Run one pagination step and append its slice to the dump.

        The dump is truncated back to the last recorded size before appending,
        so retrying a step whose response was lost never duplicates rows.
        """
        state = self._load(job_id)
        if state.done:
            return self._progress(state)

        chunk = self._engine.next(
            state.cursor,
            time_budget=time_budget if time_budget is not None else DEFAULT_TIME_BUDGET,
        )
        path = self._file(job_id)
        try:
            with open(path, "r+b") as f:
                f.seek(state.bytes_written)
                f.truncate()
                f.write(chunk.data)
        except FileNotFoundError as e:
            raise JobNotFoundError(job_id, "Export file missing for job") from e
        except OSError as e:
            raise StorageError(str(path), cause=e) from e

        state.cursor = chunk.token
        state.bytes_written += len(chunk.data)
        state.completed_tables = chunk.progress.tables_completed
        state.done = chunk.is_complete
        self._save(state)

        logger.debug(
            f"DB job {job_id}: table {chunk.progress.current_table} "
            f"+{chunk.progress.rows_in_chunk} rows, chunk={chunk.performance.chunk_size_used}"
        )
        return self._progress(state)

    def dump_path(self, job_id: str) -> Path:
        """Return the finished dump file for download."""
        state = self._load(job_id)
        if not state.done:
            raise InvalidArgumentError(f"Export job {job_id} is not finished")
        path = self._file(job_id)
        if not path.is_file():
            raise JobNotFoundError(job_id, "Export file missing for job")
        return path

    def finish(self, job_id: str) -> None:
        """Delete the dump and the job state."""
        if not job_id:
            raise InvalidArgumentError("job_id is required")
        self._file(job_id).unlink(missing_ok=True)
        self._store.delete(KEY_PREFIX + job_id)
