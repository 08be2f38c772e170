"""
sitepull API services.

High-level wrappers around the endpoint actions.
"""

from __future__ import annotations

from sitepull.api.services.database import DatabaseJobsService
from sitepull.api.services.files import FilesService
from sitepull.api.services.manifest import ManifestJobInfo, ManifestJobsService

__all__ = [
    "DatabaseJobsService",
    "FilesService",
    "ManifestJobInfo",
    "ManifestJobsService",
]
