"""Tests for the concurrent retrieval engine."""

import threading

import pytest

from sitepull.exceptions import InvalidArgumentError
from sitepull.services.download import ProgressAggregator, RetrievalEngine, TransferResult
from sitepull.services.manifest import FileEntry, TransferUnit


def engine_for(files, tmp_path, no_sleep, **kwargs):
    return RetrievalEngine(files, tmp_path / "work", sleep=no_sleep, **kwargs)


class TestRetrievalEngine:
    """Tests for RetrievalEngine.retrieve."""

    @pytest.mark.asyncio
    async def test_all_units_succeed(self, fake_files_cls, units_factory, tmp_path, no_sleep):
        units, sizes = units_factory(5)
        files = fake_files_cls(sizes)
        engine = engine_for(files, tmp_path, no_sleep, concurrency=2)
        dest = tmp_path / "out"

        result = await engine.retrieve(units, dest)

        assert result.files_succeeded == 10
        assert result.files_failed == 0
        assert result.bytes_transferred == 10 * 3000
        for path in sizes:
            assert (dest / path).stat().st_size == 3000
        assert list((tmp_path / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_one_failing_unit_is_isolated(
        self, fake_files_cls, units_factory, tmp_path, no_sleep
    ):
        """10 units, concurrency 3, unit #4 always fails."""
        units, sizes = units_factory(10)
        files = fake_files_cls(sizes)
        files.failing.add("unit4/file0.dat")
        progress = ProgressAggregator()
        engine = engine_for(files, tmp_path, no_sleep, concurrency=3, progress=progress)

        result = await engine.retrieve(units, tmp_path / "out")

        assert result.files_failed >= 1
        assert result.units_failed == 1
        assert result.files_succeeded == 18
        assert result.failed_paths == {"unit4/file0.dat", "unit4/file1.dat"}
        # Other units were all transferred
        for u in range(10):
            if u != 4:
                assert (tmp_path / "out" / f"unit{u}" / "file0.dat").exists()
        # Failing unit was attempted max_retries times
        attempts = [r for r in files.requests if r[1][0] == "unit4/file0.dat"]
        assert len(attempts) == 3
        snap = progress.snapshot()
        assert snap.files_completed == 18
        assert snap.files_failed == 2

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, fake_files_cls, units_factory, tmp_path, no_sleep):
        units, sizes = units_factory(12)
        files = fake_files_cls(sizes)
        files.delay = 0.01
        engine = engine_for(files, tmp_path, no_sleep, concurrency=3)
        await engine.retrieve(units, tmp_path / "out")
        assert files.max_active == 3

    @pytest.mark.asyncio
    async def test_fewer_units_than_workers(self, fake_files_cls, units_factory, tmp_path, no_sleep):
        units, sizes = units_factory(2)
        files = fake_files_cls(sizes)
        engine = engine_for(files, tmp_path, no_sleep, concurrency=8)
        result = await engine.retrieve(units, tmp_path / "out")
        assert result.files_succeeded == 4

    @pytest.mark.asyncio
    async def test_empty_units(self, fake_files_cls, tmp_path, no_sleep):
        engine = engine_for(fake_files_cls({}), tmp_path, no_sleep)
        assert await engine.retrieve([], tmp_path / "out") == TransferResult()

    @pytest.mark.asyncio
    async def test_mixed_large_and_batch(self, fake_files_cls, tmp_path, no_sleep):
        large = FileEntry(path="media/video.mp4", size=50_000)
        small = [FileEntry(path=f"page{i}.html", size=100) for i in range(3)]
        units = [
            TransferUnit(kind="file", index=0, files=(large,)),
            TransferUnit(kind="batch", index=0, files=tuple(small)),
        ]
        files = fake_files_cls({large.path: large.size, **{s.path: s.size for s in small}})
        engine = engine_for(files, tmp_path, no_sleep)
        result = await engine.retrieve(units, tmp_path / "out")
        assert result.files_succeeded == 4
        assert result.bytes_transferred == 50_300
        assert (tmp_path / "out" / "media" / "video.mp4").stat().st_size == 50_000

    @pytest.mark.asyncio
    async def test_on_progress_accumulates_bytes(
        self, fake_files_cls, units_factory, tmp_path, no_sleep
    ):
        units, sizes = units_factory(4)
        files = fake_files_cls(sizes)
        lock = threading.Lock()
        calls = []

        def on_progress(count):
            with lock:
                calls.append(count)

        engine = engine_for(files, tmp_path, no_sleep, concurrency=2)
        result = await engine.retrieve(units, tmp_path / "out", on_progress=on_progress)
        assert sum(calls) == result.bytes_transferred
        assert len(calls) >= len(units)
        assert engine.progress.snapshot().bytes_transferred == result.bytes_transferred

    @pytest.mark.asyncio
    async def test_on_progress_called_for_failed_unit(
        self, fake_files_cls, units_factory, tmp_path, no_sleep
    ):
        units, sizes = units_factory(1)
        files = fake_files_cls(sizes)
        files.failing.add("unit0/file0.dat")
        calls = []
        engine = engine_for(files, tmp_path, no_sleep)
        await engine.retrieve(units, tmp_path / "out", on_progress=calls.append)
        assert calls == [0]

    @pytest.mark.parametrize("concurrency", [0, 65])
    def test_invalid_concurrency(self, fake_files_cls, tmp_path, concurrency):
        with pytest.raises(InvalidArgumentError):
            RetrievalEngine(fake_files_cls({}), tmp_path, concurrency=concurrency)
