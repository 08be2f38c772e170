"""
Configuration constants for the download service.
"""

# Files larger than this get their own transfer
LARGE_FILE_THRESHOLD = 8 * 1024 * 1024  # 8MB

# Batch caps for small files
BATCH_BYTE_CAP = 8 * 1024 * 1024  # 8MB
BATCH_COUNT_CAP = 2000

# Parallel transfers
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 64

# Attempts per unit before it counts as failed
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 0.5  # seconds, doubled per attempt

# Pause between database export steps
DB_POLL_INTERVAL = 0.1  # seconds

# Timeout for the database dump download
DB_DOWNLOAD_TIMEOUT = 600  # 10 minutes
