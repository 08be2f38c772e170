"""
Exceptions for sitepull.

Every error carries an ``error_code`` and an HTTP ``status`` so the server can
render it as a JSON error body and the client can map it back to a class.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes reported by ``handle_download``."""

    SUCCESS = 0
    BAD_ARGUMENTS = 2
    HTTP = 3
    INTERNAL = 4


class SitepullError(Exception):
    """Base exception for all sitepull errors."""

    error_code = "internal_error"
    status = 500

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self._original_cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Protocol Errors (recoverable by restarting the job)
# =============================================================================


class ProtocolError(SitepullError):
    """Export protocol state is unusable."""

    error_code = "protocol_error"
    status = 400


class InvalidCursorError(ProtocolError):
    """Cursor token could not be decoded or is structurally inconsistent."""

    error_code = "invalid_cursor"
    status = 400

    def __init__(self, message: str = "Invalid cursor", cause: Exception | None = None) -> None:
        super().__init__(message, cause)


class JobNotFoundError(ProtocolError):
    """Job id is unknown, expired, or only partially stored."""

    error_code = "job_not_found"
    status = 404

    def __init__(self, job_id: str, message: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message or f"Job not found or expired: {job_id}")


# =============================================================================
# Transport Errors (retried per unit)
# =============================================================================


class TransportError(SitepullError):
    """Connection, timeout or non-2xx failure talking to the endpoint."""

    error_code = "transport_error"
    status = 502


class HTTPStatusError(TransportError):
    """Endpoint answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        url: str,
        error_code: str | None = None,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.remote_error = error_code
        text = f"HTTP {status_code} from {url}"
        if error_code:
            text += f" ({error_code})"
        if message:
            text += f": {message}"
        super().__init__(text)


class ConnectionTimeoutError(TransportError):
    """Request did not complete within the configured timeout."""

    def __init__(self, timeout_seconds: float, cause: Exception | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timed out after {timeout_seconds}s", cause)


class EmptyResponseError(TransportError):
    """Endpoint returned an empty body where content was required."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Empty response from {url}")


# =============================================================================
# Validation Errors (fatal, never retried)
# =============================================================================


class ValidationError(SitepullError):
    """Caller supplied something that can never succeed."""

    error_code = "invalid_request"
    status = 400


class InvalidArgumentError(ValidationError):
    """Missing or malformed argument."""

    error_code = "invalid_argument"


class PathTraversalError(ValidationError):
    """Path resolves outside of its root."""

    error_code = "invalid_path"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Invalid file path: {path}")


class AccessDeniedError(SitepullError):
    """Access key missing or wrong."""

    error_code = "forbidden"
    status = 403

    def __init__(self, message: str = "Invalid access key.") -> None:
        super().__init__(message)


class FileMissingError(SitepullError):
    """Requested file does not exist under the source root."""

    error_code = "file_not_found"
    status = 404

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Requested file not found: {path}")


# =============================================================================
# Storage / Source Errors
# =============================================================================


class StorageError(SitepullError):
    """Local disk write failed."""

    error_code = "storage_error"

    def __init__(self, path: str, cause: Exception | None = None) -> None:
        self.path = path
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to write {path}{detail}", cause)


class SourceReadError(SitepullError):
    """Data source failed while reading one table."""

    error_code = "source_error"

    def __init__(self, table: str, cause: Exception | None = None) -> None:
        self.table = table
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to read table {table}{detail}", cause)


# Server error codes that map back to a typed client exception.
PROTOCOL_ERROR_CODES: dict[str, type[ProtocolError]] = {
    InvalidCursorError.error_code: InvalidCursorError,
    JobNotFoundError.error_code: JobNotFoundError,
}


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an exception to the process exit code."""
    if isinstance(error, ValidationError):
        return ExitCode.BAD_ARGUMENTS
    if isinstance(error, (TransportError, ProtocolError, AccessDeniedError)):
        return ExitCode.HTTP
    return ExitCode.INTERNAL


__all__ = [
    "ExitCode",
    "SitepullError",
    "ProtocolError",
    "InvalidCursorError",
    "JobNotFoundError",
    "TransportError",
    "HTTPStatusError",
    "ConnectionTimeoutError",
    "EmptyResponseError",
    "ValidationError",
    "InvalidArgumentError",
    "PathTraversalError",
    "AccessDeniedError",
    "FileMissingError",
    "StorageError",
    "SourceReadError",
    "PROTOCOL_ERROR_CODES",
    "exit_code_for",
]
