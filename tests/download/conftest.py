"""
Pytest fixtures for download service tests.
"""

from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path

import pytest

from sitepull.exceptions import TransportError
from sitepull.services.manifest import FileEntry, TransferUnit


def content_for(path: str, size: int) -> bytes:
    seed = path.encode("utf-8") or b"x"
    return (seed * (size // len(seed) + 1))[:size]


class FakeFiles:
    """
    Stand-in for FilesService serving generated content.

    Paths in ``failing`` raise TransportError on every request; paths in
    ``flaky`` fail that many times before succeeding. Paths in ``missing``
    are left out of batch archives.
    """

    def __init__(self, sizes: dict[str, int]) -> None:
        self.sizes = dict(sizes)
        self.failing: set[str] = set()
        self.flaky: dict[str, int] = {}
        self.missing: set[str] = set()
        self.requests: list[tuple[str, tuple[str, ...]]] = []
        self.active = 0
        self.max_active = 0
        self.delay = 0.0

    async def _enter(self, paths: tuple[str, ...], kind: str) -> None:
        self.requests.append((kind, paths))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        for path in paths:
            if path in self.failing:
                raise TransportError(f"simulated failure for {path}")
            if self.flaky.get(path, 0) > 0:
                self.flaky[path] -= 1
                raise TransportError(f"simulated flaky failure for {path}")

    async def fetch(self, path: str, dest: Path, on_progress=None) -> int:
        await self._enter((path,), "file")
        data = content_for(path, self.sizes[path])
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "wb") as f:
            for i in range(0, len(data), 1024):
                piece = data[i : i + 1024]
                f.write(piece)
                if on_progress:
                    on_progress(len(piece))
        return len(data)

    async def fetch_batch(self, paths: list[str], dest: Path, on_progress=None) -> int:
        await self._enter(tuple(paths), "batch")
        dest.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_STORED) as zf:
            for path in paths:
                if path not in self.missing:
                    zf.writestr(path, content_for(path, self.sizes[path]))
        return dest.stat().st_size


def make_units(count: int, files_per_batch: int = 2, size: int = 3000) -> tuple[list[TransferUnit], dict[str, int]]:
    """``count`` batch units of ``files_per_batch`` files each."""
    units = []
    sizes = {}
    for u in range(count):
        files = []
        for f in range(files_per_batch):
            path = f"unit{u}/file{f}.dat"
            sizes[path] = size
            files.append(FileEntry(path=path, size=size))
        units.append(TransferUnit(kind="batch", index=u, files=tuple(files)))
    return units, sizes


@pytest.fixture
def fake_files_cls():
    """Provide the FakeFiles class."""
    return FakeFiles


@pytest.fixture
def units_factory():
    """Provide make_units."""
    return make_units


@pytest.fixture
def no_sleep():
    """Sleep replacement recording requested delays."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
