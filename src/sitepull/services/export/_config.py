"""
Configuration constants for the database export engine.
"""

# Cursor format version
STREAM_VERSION = "1.0"

# Rows per pagination step
DEFAULT_CHUNK_ROWS = 1000
MIN_CHUNK_ROWS = 100
MAX_CHUNK_ROWS = 5000

# Tables above either threshold page by primary key instead of offset
KEYSET_THRESHOLD_ROWS = 100_000
KEYSET_THRESHOLD_BYTES = 100 * 1024 * 1024  # 100MB

# Seconds of work allowed per pagination step
DEFAULT_TIME_BUDGET = 5.0

# Adaptive chunk sizing
SPEED_UP_BELOW_SECONDS = 1.0
SLOW_DOWN_ABOVE_SECONDS = 3.0
GROWTH_FACTOR = 1.5
SHRINK_FACTOR = 0.75

# gzip level for compressed slices
GZIP_LEVEL = 6

# Lifetime of server-side export job state
DB_JOB_TTL = 60 * 60  # 1 hour
