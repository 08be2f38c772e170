"""
Models for the download service.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import reduce

from pydantic import BaseModel, ConfigDict


class TransferResult(BaseModel):
    """
    Outcome of one or more transfer units.

    Combining results is commutative and associative, so unit results from
    concurrent workers fold into the same total in any completion order.
    """

    model_config = ConfigDict(frozen=True)

    files_succeeded: int = 0
    files_failed: int = 0
    bytes_transferred: int = 0
    units_failed: int = 0
    retries_count: int = 0
    failed_paths: frozenset[str] = frozenset()

    def __add__(self, other: TransferResult) -> TransferResult:
        return TransferResult(
            files_succeeded=self.files_succeeded + other.files_succeeded,
            files_failed=self.files_failed + other.files_failed,
            bytes_transferred=self.bytes_transferred + other.bytes_transferred,
            units_failed=self.units_failed + other.units_failed,
            retries_count=self.retries_count + other.retries_count,
            failed_paths=self.failed_paths | other.failed_paths,
        )

    @classmethod
    def combine(cls, results: Iterable[TransferResult]) -> TransferResult:
        return reduce(lambda a, b: a + b, results, cls())

    @property
    def ok(self) -> bool:
        return self.files_failed == 0

    def summary(self) -> str:
        """Human-readable summary."""
        size_mb = self.bytes_transferred / 1024 / 1024
        lines = [f"Files: {self.files_succeeded} ok, {self.files_failed} failed"]
        lines.append(f"Transferred: {size_mb:.1f} MB ({self.bytes_transferred:,} bytes)")
        if self.retries_count > 0:
            lines.append(f"Retries: {self.retries_count}")
        return "\n".join(lines)


class ProgressSnapshot(BaseModel):
    """Point-in-time copy of the progress counters."""

    model_config = ConfigDict(frozen=True)

    db_bytes: int = 0
    db_done: bool = False
    files_total: int = 0
    bytes_total: int = 0
    files_completed: int = 0
    files_failed: int = 0
    bytes_transferred: int = 0

    @property
    def files_finished(self) -> int:
        return self.files_completed + self.files_failed
