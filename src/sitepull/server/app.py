"""
sitepull export endpoint.

A single action endpoint in the style of shared-hosting "ajax" handlers: each
request names an ``action`` and carries the access key. Every request is
independent; job state lives in the key/value store and the work directory.
"""

from __future__ import annotations

import base64
import tempfile
import zipfile
from pathlib import Path
from typing import Callable

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from sitepull.api import config as api
from sitepull.exceptions import (
    FileMissingError,
    InvalidArgumentError,
    SitepullError,
)
from sitepull.logging import get_logger
from sitepull.server._auth import require_access_key
from sitepull.services.export import DatabaseJobManager, ExportEngine, TableSource
from sitepull.services.manifest import JobStore, ManifestManager, resolve_within
from sitepull.services.manifest._scanner import normalize_relative
from sitepull.storage import FileStore, KeyValueStore

logger = get_logger(__name__)

sitepull_bp = Blueprint("sitepull", __name__)

Handler = Callable[["SiteExporter"], object]
ACTIONS: dict[str, Handler] = {}


class SiteExporter:
    """Services behind the endpoint for one source root and database."""

    def __init__(
        self,
        root: str | Path,
        source: TableSource,
        store: KeyValueStore,
        work_dir: str | Path,
    ) -> None:
        self.root = Path(root)
        self.engine = ExportEngine(source)
        self.db_jobs = DatabaseJobManager(self.engine, store, Path(work_dir) / "db")
        self.manifests = ManifestManager(self.root, JobStore(store))


def action(name: str) -> Callable[[Handler], Handler]:
    """Register a handler for an action name."""

    def decorator(func: Handler) -> Handler:
        ACTIONS[name] = func
        return func

    return decorator


def _exporter() -> SiteExporter:
    return current_app.extensions["sitepull"]


def _param(name: str) -> str:
    return (request.values.get(name) or "").strip()


def _int_param(name: str, default: int | None = None) -> int | None:
    raw = _param(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be an integer") from e


def _float_param(name: str) -> float | None:
    raw = _param(name)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be a number") from e
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be positive")
    return value


@sitepull_bp.route(f"/{api.ENDPOINT_PATH}", methods=["GET", "POST"])
@require_access_key
def endpoint():
    """Dispatch to the handler named by ``action``."""
    name = _param("action")
    handler = ACTIONS.get(name)
    if handler is None:
        raise InvalidArgumentError(f"Unknown action: {name or '(none)'}")
    return handler(_exporter())


# =============================================================================
# Database export jobs
# =============================================================================


@action(api.DB_JOB_INIT)
def db_job_init(exporter: SiteExporter):
    progress = exporter.db_jobs.init_job(_int_param("chunk_size"))
    return jsonify(progress.model_dump())


@action(api.DB_JOB_PROCESS)
def db_job_process(exporter: SiteExporter):
    progress = exporter.db_jobs.process(_param("job_id"), _float_param("time_budget"))
    return jsonify(progress.model_dump())


@action(api.DB_JOB_DOWNLOAD)
def db_job_download(exporter: SiteExporter):
    path = exporter.db_jobs.dump_path(_param("job_id"))
    return send_file(
        path,
        mimetype="application/sql",
        as_attachment=True,
        download_name="database.sql",
        conditional=False,
        max_age=0,
    )


@action(api.DB_JOB_FINISH)
def db_job_finish(exporter: SiteExporter):
    exporter.db_jobs.finish(_param("job_id"))
    return jsonify({"ok": True})


# =============================================================================
# Raw cursor protocol
# =============================================================================


@action(api.DB_STREAM_INIT)
def db_stream_init(exporter: SiteExporter):
    start = exporter.engine.init(_int_param("chunk_size"))
    return jsonify(
        {
            "cursor": start.token,
            "sql_header": base64.b64encode(start.preamble.encode("utf-8")).decode("ascii"),
            "metadata": start.metadata.model_dump(),
        }
    )


@action(api.DB_STREAM_CHUNK)
def db_stream_chunk(exporter: SiteExporter):
    chunk = exporter.engine.next(
        _param("cursor"),
        time_budget=_float_param("time_budget") or 5.0,
        compression=_param("compression") or "none",
    )
    return jsonify(
        {
            "sql_chunk": base64.b64encode(chunk.data).decode("ascii"),
            "cursor": chunk.token,
            "is_complete": chunk.is_complete,
            "progress": chunk.progress.model_dump(),
            "performance": chunk.performance.model_dump(),
        }
    )


# =============================================================================
# Manifest jobs
# =============================================================================


@action(api.MANIFEST_JOB_INIT)
def manifest_job_init(exporter: SiteExporter):
    job = exporter.manifests.create_job()
    return jsonify(
        {
            "job_id": job.job_id,
            "total_files": job.total_files,
            "total_bytes": job.total_bytes,
            "created_at": job.created_at,
        }
    )


@action(api.MANIFEST_JOB_PAGE)
def manifest_job_page(exporter: SiteExporter):
    page = exporter.manifests.get_slice(
        _param("job_id"),
        offset=_int_param("offset", 0),
        limit=_int_param("limit", 5000),
    )
    return jsonify(page.model_dump())


@action(api.MANIFEST_JOB_FINISH)
def manifest_job_finish(exporter: SiteExporter):
    exporter.manifests.finish_job(_param("job_id"))
    return jsonify({"ok": True})


# =============================================================================
# Files
# =============================================================================


@action(api.FILE_FETCH)
def file_fetch(exporter: SiteExporter):
    path = resolve_within(exporter.root, _param("path"))
    return send_file(
        path,
        mimetype="application/octet-stream",
        as_attachment=True,
        download_name=path.name,
        conditional=False,
        max_age=0,
    )


@action(api.FILE_BATCH)
def file_batch(exporter: SiteExporter):
    """Stream a stored ZIP of the requested files; missing files are left out."""
    paths = [p for p in request.values.getlist("paths") if p.strip()]
    if not paths:
        raise InvalidArgumentError("paths is required")

    # Validate everything before writing anything
    resolved: list[tuple[Path, str]] = []
    for raw in paths:
        try:
            resolved.append((resolve_within(exporter.root, raw), normalize_relative(raw)))
        except FileMissingError:
            logger.warning(f"Batch skips missing file: {raw}")

    spool = tempfile.TemporaryFile()
    with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_STORED, allowZip64=True) as zf:
        for path, arcname in resolved:
            try:
                zf.write(path, arcname=arcname)
            except OSError as e:
                logger.warning(f"Batch skips unreadable file {arcname}: {e}")
    spool.seek(0)
    return send_file(
        spool,
        mimetype="application/zip",
        as_attachment=True,
        download_name="batch.zip",
        max_age=0,
    )


# =============================================================================
# Errors and factory
# =============================================================================


def _error_response(error: Exception):
    if isinstance(error, HTTPException):
        return error
    if not isinstance(error, SitepullError):
        logger.exception("Unhandled error in sitepull endpoint")
        error = SitepullError("Internal server error")
    elif error.status >= 500:
        logger.error(f"{error.error_code}: {error.message}")
    return jsonify({"error": error.error_code, "message": error.message}), error.status


def create_app(
    root: str | Path,
    source: TableSource,
    access_key: str,
    store: KeyValueStore | None = None,
    work_dir: str | Path | None = None,
) -> Flask:
    """
    Build the endpoint application.

    Args:
        root: Directory tree served by the manifest and file actions.
        source: Database to export.
        access_key: Shared secret every request must carry.
        store: Job state store (defaults to a FileStore in the work dir).
        work_dir: Directory for dumps and store files.

    Returns:
        Flask app exposing ``/sitepull``.
    """
    if not access_key:
        raise InvalidArgumentError("access_key is required")

    work = Path(work_dir) if work_dir else Path(tempfile.gettempdir()) / "sitepull"
    work.mkdir(parents=True, exist_ok=True)
    if store is None:
        store = FileStore(work / "store")

    app = Flask(__name__)
    app.config["SITEPULL_KEY"] = access_key
    app.extensions["sitepull"] = SiteExporter(root, source, store, work)
    app.register_blueprint(sitepull_bp)
    app.register_error_handler(Exception, _error_response)
    return app
