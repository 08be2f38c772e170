"""
sitepull API client.

Usage:
    >>> from sitepull.api import SiteAPI
    >>>
    >>> async with SiteAPI("https://example.com", key="k3y") as api:
    ...     job = await api.database.init_job()
    ...     manifest = await api.manifest.init_job()
"""

from __future__ import annotations

from sitepull.api.client import SiteAPI
from sitepull.api.config import ENDPOINT_PATH, KEY_HEADER, KEY_PARAM, build_endpoint_url
from sitepull.api.services import (
    DatabaseJobsService,
    FilesService,
    ManifestJobInfo,
    ManifestJobsService,
)

__all__ = [
    "SiteAPI",
    "ENDPOINT_PATH",
    "KEY_HEADER",
    "KEY_PARAM",
    "build_endpoint_url",
    "DatabaseJobsService",
    "FilesService",
    "ManifestJobInfo",
    "ManifestJobsService",
]
