"""
sitepull API client.

Async HTTP client for the export endpoint. Translates transport failures and
error bodies into the sitepull exception hierarchy.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import httpx

from sitepull.api.config import KEY_HEADER, build_endpoint_url
from sitepull.exceptions import (
    PROTOCOL_ERROR_CODES,
    ConnectionTimeoutError,
    EmptyResponseError,
    HTTPStatusError,
    InvalidArgumentError,
    InvalidCursorError,
    JobNotFoundError,
    StorageError,
    TransportError,
)
from sitepull.logging import get_logger

if TYPE_CHECKING:
    from sitepull.api.services.database import DatabaseJobsService
    from sitepull.api.services.files import FilesService
    from sitepull.api.services.manifest import ManifestJobsService

logger = get_logger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024


class SiteAPI:
    """
    Client for one site's export endpoint.

    Example:
        >>> async with SiteAPI("https://example.com", key="k3y") as api:
        ...     job = await api.database.init_job()
        ...     manifest = await api.manifest.init_job()
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            url: Site URL (or the endpoint URL itself).
            key: Access key sent with every request.
            timeout: Per-request timeout in seconds.
            transport: Custom httpx transport (tests use ``httpx.MockTransport``).

        Raises:
            InvalidArgumentError: Missing URL or key.
        """
        if not url:
            raise InvalidArgumentError("url is required")
        if not key:
            raise InvalidArgumentError("key is required")

        self._endpoint = build_endpoint_url(url)
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            headers={KEY_HEADER: key},
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

        self._database: DatabaseJobsService | None = None
        self._manifest: ManifestJobsService | None = None
        self._files: FilesService | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def database(self) -> DatabaseJobsService:
        """Access database export jobs."""
        if self._database is None:
            from sitepull.api.services.database import DatabaseJobsService

            self._database = DatabaseJobsService(self)
        return self._database

    @property
    def manifest(self) -> ManifestJobsService:
        """Access manifest jobs."""
        if self._manifest is None:
            from sitepull.api.services.manifest import ManifestJobsService

            self._manifest = ManifestJobsService(self)
        return self._manifest

    @property
    def files(self) -> FilesService:
        """Access file retrieval."""
        if self._files is None:
            from sitepull.api.services.files import FilesService

            self._files = FilesService(self)
        return self._files

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def post_action(self, action: str, **params: Any) -> dict[str, Any]:
        """
        Call an action and decode its JSON response.

        Raises:
            InvalidCursorError / JobNotFoundError: Protocol errors from the server.
            HTTPStatusError: Any other non-2xx status.
            ConnectionTimeoutError / TransportError: Network failure.
        """
        data = self._form(action, params)
        try:
            response = await self._client.post(self._endpoint, data=data)
        except httpx.TimeoutException as e:
            raise ConnectionTimeoutError(self._timeout, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{action} failed: {e}", cause=e) from e

        if response.status_code >= 400:
            self._raise_for_status(response, response.content, params)

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {action}", cause=e) from e
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected response from {action}")
        return body

    async def stream_to_file(
        self,
        action: str,
        params: dict[str, Any],
        dest: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """
        Stream an action's response body into ``dest``.

        The partial file is removed on any failure. An empty body is an error.

        Args:
            action: Action name.
            params: Action parameters.
            dest: Destination file; parent directories are created.
            on_progress: Called with each received byte count.

        Returns:
            Bytes written.
        """
        data = self._form(action, params)
        written = 0
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            async with self._client.stream("POST", self._endpoint, data=data) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    self._raise_for_status(response, body, params)
                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes(STREAM_CHUNK_SIZE):
                        f.write(chunk)
                        written += len(chunk)
                        if on_progress:
                            on_progress(len(chunk))
        except httpx.TimeoutException as e:
            dest.unlink(missing_ok=True)
            raise ConnectionTimeoutError(self._timeout, cause=e) from e
        except httpx.HTTPError as e:
            dest.unlink(missing_ok=True)
            raise TransportError(f"{action} failed: {e}", cause=e) from e
        except OSError as e:
            dest.unlink(missing_ok=True)
            raise StorageError(str(dest), cause=e) from e
        except BaseException:
            dest.unlink(missing_ok=True)
            raise

        if written == 0:
            dest.unlink(missing_ok=True)
            raise EmptyResponseError(f"{self._endpoint}?action={action}")
        return written

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _form(action: str, params: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {"action": action}
        for name, value in params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "1" if value else "0"
            data[name] = value
        return data

    def _raise_for_status(
        self, response: httpx.Response, body: bytes, params: dict[str, Any]
    ) -> None:
        error_code: str | None = None
        message: str | None = None
        try:
            decoded = json.loads(body)
            if isinstance(decoded, dict):
                error_code = decoded.get("error")
                message = decoded.get("message")
        except ValueError:
            pass

        error_cls = PROTOCOL_ERROR_CODES.get(error_code or "")
        if error_cls is JobNotFoundError:
            raise JobNotFoundError(str(params.get("job_id", "")), message)
        if error_cls is InvalidCursorError:
            raise InvalidCursorError(message or "Invalid cursor")
        raise HTTPStatusError(response.status_code, self._endpoint, error_code, message)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> SiteAPI:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<SiteAPI endpoint={self._endpoint!r}>"


__all__ = ["SiteAPI"]
