"""
Thread-safe progress counters.
"""

from __future__ import annotations

import threading
from typing import Callable

from sitepull.services.download._models import ProgressSnapshot, TransferResult

Listener = Callable[[ProgressSnapshot], None]


class ProgressAggregator:
    """
    Running totals for a download.

    Every mutation happens under one lock; readers get an immutable snapshot,
    possibly slightly stale but never torn. Listeners are called after each
    mutation, outside the lock, from whichever thread mutated.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ProgressSnapshot()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _update(self, **changes: int | bool) -> ProgressSnapshot:
        with self._lock:
            self._state = self._state.model_copy(update=changes)
            snapshot = self._state
        for listener in self._listeners:
            listener(snapshot)
        return snapshot

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._state

    def set_database(self, bytes_written: int, done: bool = False) -> None:
        self._update(db_bytes=bytes_written, db_done=done)

    def init_counters(self, files_total: int, bytes_total: int) -> None:
        self._update(files_total=files_total, bytes_total=bytes_total)

    def add_bytes(self, count: int) -> None:
        """Accumulate transferred bytes (callable from any worker)."""
        if count <= 0:
            return
        with self._lock:
            self._state = self._state.model_copy(
                update={"bytes_transferred": self._state.bytes_transferred + count}
            )
            snapshot = self._state
        for listener in self._listeners:
            listener(snapshot)

    def record(self, result: TransferResult) -> None:
        """Add a finished unit's file counts."""
        with self._lock:
            self._state = self._state.model_copy(
                update={
                    "files_completed": self._state.files_completed + result.files_succeeded,
                    "files_failed": self._state.files_failed + result.files_failed,
                }
            )
            snapshot = self._state
        for listener in self._listeners:
            listener(snapshot)
