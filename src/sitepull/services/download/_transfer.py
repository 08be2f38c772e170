"""
Transfer logic for the download service.

One ``UnitTransfer.run`` call moves one transfer unit (a large file or a batch
of small files) from the server into the destination tree, retrying transport
failures with exponential backoff.
"""

from __future__ import annotations

import asyncio
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Awaitable, Callable

from sitepull.exceptions import (
    PathTraversalError,
    SitepullError,
    StorageError,
    TransportError,
)
from sitepull.logging import get_logger
from sitepull.services.download._config import MAX_RETRIES, RETRY_BACKOFF_BASE
from sitepull.services.download._models import TransferResult
from sitepull.services.manifest import FileEntry, TransferUnit

if TYPE_CHECKING:
    from sitepull.api.services import FilesService

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def local_destination(root: Path, relative: str) -> Path:
    """
    Map a manifest path to a path under ``root``.

    Raises:
        PathTraversalError: Absolute paths, ``..`` segments or empty paths.
    """
    posix = PurePosixPath(relative.replace("\\", "/"))
    if not relative or posix.is_absolute() or ".." in posix.parts:
        raise PathTraversalError(relative)
    parts = [p for p in posix.parts if p not in ("", ".")]
    if not parts:
        raise PathTraversalError(relative)
    return root.joinpath(*parts)


class UnitTransfer:
    """Per-unit transfer strategies with retry."""

    def __init__(
        self,
        files: FilesService,
        destination_root: Path,
        work_dir: Path,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = RETRY_BACKOFF_BASE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._files = files
        self._root = destination_root
        self._work_dir = work_dir
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._sleep = sleep

    async def run(
        self,
        unit: TransferUnit,
        on_progress: Callable[[int], None] | None = None,
    ) -> TransferResult:
        """
        Transfer ``unit``; never raises for unit-level failures.

        TransportError is retried up to ``max_retries`` attempts. Validation and
        storage errors fail the unit at once.
        """
        reported = 0

        def report(count: int) -> None:
            # Bytes re-received on a retry are not reported twice
            nonlocal reported, attempt_bytes
            attempt_bytes += count
            if attempt_bytes > reported:
                delta = attempt_bytes - reported
                reported = attempt_bytes
                if on_progress:
                    on_progress(delta)

        retries = 0
        for attempt in range(self._max_retries):
            attempt_bytes = 0
            try:
                if unit.kind == "file":
                    result = await self._transfer_file(unit.files[0], report)
                else:
                    result = await self._transfer_batch(unit, report)
                return result.model_copy(update={"retries_count": retries})
            except TransportError as e:
                if attempt + 1 >= self._max_retries:
                    logger.warning(
                        f"{unit.label} failed after {self._max_retries} attempts: {e}"
                    )
                    return self._failed(unit, retries)
                retries += 1
                delay = (2**attempt) * self._backoff_base
                logger.warning(f"{unit.label}: {e}; retrying in {delay:.1f}s")
                await self._sleep(delay)
            except SitepullError as e:
                logger.warning(f"{unit.label} failed: {e}")
                return self._failed(unit, retries)
        return self._failed(unit, retries)

    @staticmethod
    def _failed(unit: TransferUnit, retries: int) -> TransferResult:
        return TransferResult(
            files_failed=len(unit.files),
            units_failed=1,
            retries_count=retries,
            failed_paths=frozenset(f.path for f in unit.files),
        )

    async def _transfer_file(
        self, entry: FileEntry, report: Callable[[int], None]
    ) -> TransferResult:
        dest = local_destination(self._root, entry.path)
        written = await self._files.fetch(entry.path, dest, report)
        logger.debug(f"Fetched {entry.path} ({written} bytes)")
        return TransferResult(files_succeeded=1, bytes_transferred=written)

    async def _transfer_batch(
        self, unit: TransferUnit, report: Callable[[int], None]
    ) -> TransferResult:
        targets = {entry.path: local_destination(self._root, entry.path) for entry in unit.files}
        archive = self._work_dir / f"batch-{unit.index}.zip"
        try:
            await self._files.fetch_batch(list(targets), archive)
            result = await asyncio.to_thread(_extract_batch, archive, targets, report)
        finally:
            archive.unlink(missing_ok=True)
        logger.debug(
            f"{unit.label}: {result.files_succeeded} extracted, {result.files_failed} missing"
        )
        return result


def _extract_batch(
    archive: Path,
    targets: dict[str, Path],
    report: Callable[[int], None],
) -> TransferResult:
    """Extract the expected members of a batch ZIP. Absent members count as failed."""
    succeeded = 0
    written = 0
    failed: set[str] = set()
    try:
        with zipfile.ZipFile(archive) as zf:
            members = set(zf.namelist())
            for path, dest in targets.items():
                if path not in members:
                    failed.add(path)
                    continue
                try:
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(path) as src, open(dest, "wb") as out:
                        shutil.copyfileobj(src, out)
                except OSError as e:
                    raise StorageError(str(dest), cause=e) from e
                size = dest.stat().st_size
                succeeded += 1
                written += size
                report(size)
    except zipfile.BadZipFile as e:
        raise TransportError(f"Corrupt batch archive: {e}", cause=e) from e
    return TransferResult(
        files_succeeded=succeeded,
        files_failed=len(failed),
        bytes_transferred=written,
        units_failed=1 if failed else 0,
        failed_paths=frozenset(failed),
    )
