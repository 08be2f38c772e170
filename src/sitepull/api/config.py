"""
sitepull endpoint configuration.

Names shared by the server and the client: endpoint path, key header and
action names.
"""

from __future__ import annotations

from urllib.parse import urlsplit

ENDPOINT_PATH = "sitepull"

KEY_HEADER = "X-Sitepull-Key"
KEY_PARAM = "sitepull_key"

# Actions understood by the endpoint
DB_JOB_INIT = "db_job_init"
DB_JOB_PROCESS = "db_job_process"
DB_JOB_DOWNLOAD = "db_job_download"
DB_JOB_FINISH = "db_job_finish"
DB_STREAM_INIT = "db_stream_init"
DB_STREAM_CHUNK = "db_stream_chunk"
MANIFEST_JOB_INIT = "manifest_job_init"
MANIFEST_JOB_PAGE = "manifest_job_page"
MANIFEST_JOB_FINISH = "manifest_job_finish"
FILE_FETCH = "file_fetch"
FILE_BATCH = "file_batch"


def build_endpoint_url(site_url: str) -> str:
    """
    Get the endpoint URL for a site.

    Args:
        site_url: Site base URL, or the endpoint URL itself.

    Returns:
        URL of the action endpoint.

    Example:
        >>> build_endpoint_url("https://example.com/blog/")
        'https://example.com/blog/sitepull'
        >>> build_endpoint_url("https://example.com/sitepull")
        'https://example.com/sitepull'
    """
    url = site_url.strip().rstrip("/")
    if urlsplit(url).path.rstrip("/").endswith("/" + ENDPOINT_PATH):
        return url
    return f"{url}/{ENDPOINT_PATH}"


__all__ = [
    "ENDPOINT_PATH",
    "KEY_HEADER",
    "KEY_PARAM",
    "build_endpoint_url",
]
