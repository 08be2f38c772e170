"""
TTL-bounded key/value storage.

Server-side job state is kept here between stateless requests. Values are
JSON-serializable; every key expires after its TTL.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

from sitepull.exceptions import StorageError
from sitepull.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal transient store, shaped like hosting-platform caches."""

    def get(self, key: str) -> Any | None:
        """Return the value or None if missing or expired."""
        ...

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value for ``ttl`` seconds."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        ...


class MemoryStore:
    """In-process store. Safe to share between threads."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        # Round-trip through JSON so callers never share mutable state
        snapshot = json.loads(json.dumps(value))
        with self._lock:
            self._data[key] = (self._clock() + ttl, snapshot)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._data.values() if expires_at > now)


class FileStore:
    """
    Durable store keeping one JSON file per key.

    Writes go through a temporary file and ``os.replace`` so readers never see
    a partially written value. Expiry uses wall-clock time so it survives
    process restarts.
    """

    def __init__(self, directory: str | Path, clock: Callable[[], float] = time.time) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._dir / f"{digest}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable store record for {key}: {e}")
            return None
        if record.get("expires_at", 0) <= self._clock():
            self.delete(key)
            return None
        return record.get("value")

    def set(self, key: str, value: Any, ttl: float) -> None:
        path = self._path(key)
        record = {"key": key, "expires_at": self._clock() + ttl, "value": value}
        try:
            fd, tmp = tempfile.mkstemp(dir=self._dir, suffix=".tmp")
        except OSError as e:
            raise StorageError(str(path), cause=e) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f)
            os.replace(tmp, path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise StorageError(str(path), cause=e) from e
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def purge_expired(self) -> int:
        """Delete expired records. Returns the number removed."""
        removed = 0
        now = self._clock()
        for path in self._dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    expires_at = json.load(f).get("expires_at", 0)
            except (OSError, ValueError):
                continue
            if expires_at <= now:
                path.unlink(missing_ok=True)
                removed += 1
        return removed


__all__ = ["KeyValueStore", "MemoryStore", "FileStore"]
