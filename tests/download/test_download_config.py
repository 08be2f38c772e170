"""Tests for download config."""

from sitepull.services.download._config import (
    BATCH_BYTE_CAP,
    BATCH_COUNT_CAP,
    DB_DOWNLOAD_TIMEOUT,
    DB_POLL_INTERVAL,
    DEFAULT_CONCURRENCY,
    LARGE_FILE_THRESHOLD,
    MAX_RETRIES,
)


class TestDownloadConfig:
    """Tests for download configuration constants."""

    def test_large_file_threshold(self):
        assert LARGE_FILE_THRESHOLD == 8 * 1024 * 1024  # 8MB

    def test_batch_caps(self):
        assert BATCH_BYTE_CAP == 8 * 1024 * 1024
        assert BATCH_COUNT_CAP == 2000

    def test_concurrency(self):
        assert DEFAULT_CONCURRENCY == 4

    def test_retries(self):
        assert MAX_RETRIES == 3

    def test_db_timing(self):
        assert DB_POLL_INTERVAL == 0.1
        assert DB_DOWNLOAD_TIMEOUT == 600  # 10 minutes
