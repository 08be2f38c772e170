"""
Asynchronous retrieval engine.

A bounded pool of workers pulls transfer units from a shared queue. Each
worker sends its unit result to a single collector, which folds the results
into the run total and the progress aggregator. A failed unit never cancels
the others; the pool always drains.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from sitepull.exceptions import InvalidArgumentError
from sitepull.logging import get_logger
from sitepull.services.download._config import (
    DEFAULT_CONCURRENCY,
    MAX_CONCURRENCY,
    MAX_RETRIES,
    RETRY_BACKOFF_BASE,
)
from sitepull.services.download._models import TransferResult
from sitepull.services.download._progress import ProgressAggregator
from sitepull.services.download._transfer import Sleep, UnitTransfer
from sitepull.services.manifest import TransferUnit

if TYPE_CHECKING:
    from sitepull.api.services import FilesService

logger = get_logger(__name__)


class RetrievalEngine:
    """
    Concurrent retrieval of transfer units.

    Example:
        >>> engine = RetrievalEngine(api.files, work_dir, concurrency=4)
        >>> result = await engine.retrieve(partition.units(), Path("./files"))
        >>> print(result.summary())
    """

    def __init__(
        self,
        files: FilesService,
        work_dir: Path,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_retries: int = MAX_RETRIES,
        progress: ProgressAggregator | None = None,
        backoff_base: float = RETRY_BACKOFF_BASE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not 1 <= concurrency <= MAX_CONCURRENCY:
            raise InvalidArgumentError(
                f"concurrency must be between 1 and {MAX_CONCURRENCY}, got {concurrency}"
            )
        self._files = files
        self._work_dir = work_dir
        self._concurrency = concurrency
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._sleep = sleep
        self.progress = progress or ProgressAggregator()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def retrieve(
        self,
        units: Sequence[TransferUnit],
        destination_root: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> TransferResult:
        """
        Retrieve every unit into ``destination_root``.

        Args:
            units: Large-file and batch units, in any mix.
            destination_root: Local root the manifest paths are written under.
            on_progress: Called with each byte increment, and at least once per
                completed unit, from any worker. Use it for accumulation only.

        Returns:
            Folded result of all units.
        """
        if not units:
            return TransferResult()

        destination_root.mkdir(parents=True, exist_ok=True)
        self._work_dir.mkdir(parents=True, exist_ok=True)
        transfer = UnitTransfer(
            self._files,
            destination_root,
            self._work_dir,
            max_retries=self._max_retries,
            backoff_base=self._backoff_base,
            sleep=self._sleep,
        )

        queue: asyncio.Queue[TransferUnit] = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)
        results: asyncio.Queue[TransferResult] = asyncio.Queue()

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    unit = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                reported = False

                def bytes_arrived(count: int) -> None:
                    nonlocal reported
                    reported = True
                    self.progress.add_bytes(count)
                    if on_progress:
                        on_progress(count)

                logger.debug(f"Worker {worker_id}: {unit.label}")
                try:
                    result = await transfer.run(unit, bytes_arrived)
                except Exception as e:
                    logger.warning(f"{unit.label} failed unexpectedly: {e}")
                    result = TransferResult(
                        files_failed=len(unit.files),
                        units_failed=1,
                        failed_paths=frozenset(f.path for f in unit.files),
                    )
                if not reported and on_progress:
                    on_progress(0)
                await results.put(result)

        async def collector() -> TransferResult:
            total = TransferResult()
            for _ in range(len(units)):
                result = await results.get()
                self.progress.record(result)
                total = total + result
            return total

        pool_size = min(self._concurrency, len(units))
        logger.info(f"Retrieving {len(units)} units with {pool_size} workers")
        total, *_ = await asyncio.gather(
            collector(), *(worker(i) for i in range(pool_size))
        )

        if total.files_failed:
            logger.warning(f"{total.files_failed} files failed in {total.units_failed} units")
        return total
