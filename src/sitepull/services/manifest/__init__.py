"""
File manifest service for sitepull.

Scans the source tree into a manifest job kept in chunked, TTL-bounded
storage, and partitions manifests into transfer units.
"""

from sitepull.services.manifest._manager import ManifestManager
from sitepull.services.manifest._models import (
    FileEntry,
    ManifestJob,
    ManifestPage,
    Partition,
    TransferUnit,
)
from sitepull.services.manifest._partition import partition
from sitepull.services.manifest._scanner import resolve_within, scan_file_list
from sitepull.services.manifest._store import JobStore

__all__ = [
    "FileEntry",
    "ManifestJob",
    "ManifestPage",
    "Partition",
    "TransferUnit",
    "partition",
    "scan_file_list",
    "resolve_within",
    "JobStore",
    "ManifestManager",
]
