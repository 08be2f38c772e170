"""
Configuration constants for manifest jobs.
"""

# Manifest jobs expire if abandoned
JOB_TTL = 15 * 60  # 15 minutes

# Files per stored chunk (keeps each stored value small)
JOB_CHUNK_FILES = 2000

# Files per manifest page request
DEFAULT_PAGE_LIMIT = 5000
MAX_PAGE_LIMIT = 10000

# Directories never included in a manifest
IGNORED_DIRS = frozenset({".git", ".svn", ".hg"})
