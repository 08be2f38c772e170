"""
Access key authentication for the export endpoint.
"""

from __future__ import annotations

import hmac
from functools import wraps

from flask import current_app, request

from sitepull.api.config import KEY_HEADER, KEY_PARAM
from sitepull.exceptions import AccessDeniedError


def request_key() -> str:
    """Key from the header, falling back to the request parameter."""
    key = request.headers.get(KEY_HEADER, "").strip()
    if key:
        return key
    return (request.values.get(KEY_PARAM) or "").strip()


def require_access_key(f):
    """
    Decorator rejecting requests without the configured access key.

    Usage:
        @bp.route("/sitepull", methods=["GET", "POST"])
        @require_access_key
        def endpoint():
            ...
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("SITEPULL_KEY") or ""
        provided = request_key()
        if not expected or not provided or not hmac.compare_digest(
            expected.encode("utf-8"), provided.encode("utf-8")
        ):
            raise AccessDeniedError()
        return f(*args, **kwargs)

    return decorated_function
