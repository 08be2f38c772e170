"""
sitepull: website backup over a single HTTP endpoint.

Server side, a Flask endpoint exports the site's database in resumable,
time-bounded slices and serves its file tree. Client side, the orchestrator
drives the export, retrieves the files concurrently and packages everything
into one archive.

Quick Start:
    >>> from sitepull import handle_download
    >>> exit_code = handle_download("https://example.com", "k3y", "./backups")

Serving:
    >>> from sitepull.server import create_app
    >>> from sitepull.services.export import SQLiteSource
    >>> app = create_app("/var/www/site", SQLiteSource("site.db"), access_key="k3y")
"""

from sitepull.api import SiteAPI
from sitepull.config import SitepullSettings, configure, get_settings
from sitepull.exceptions import (
    ExitCode,
    InvalidCursorError,
    JobNotFoundError,
    ProtocolError,
    SitepullError,
    StorageError,
    TransportError,
    ValidationError,
)
from sitepull.orchestrator import (
    DownloadOrchestrator,
    DownloadReport,
    OrchestratorState,
    handle_download,
    run_download,
)

__version__ = "0.3.0"

__all__ = [
    "__version__",
    # Client
    "SiteAPI",
    "DownloadOrchestrator",
    "DownloadReport",
    "OrchestratorState",
    "handle_download",
    "run_download",
    # Config
    "SitepullSettings",
    "configure",
    "get_settings",
    # Errors
    "ExitCode",
    "SitepullError",
    "ProtocolError",
    "InvalidCursorError",
    "JobNotFoundError",
    "TransportError",
    "ValidationError",
    "StorageError",
]
