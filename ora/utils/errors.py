"""Standardised API error responses.

Usage
-----
    from ora.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Lifecycle not found")
    return api_error(E.VALIDATION_REQUIRED, "scan_id is required")
    return api_error(E.CONFLICT_VERSION, "Stale summary", details={"version": 4})
"""

from __future__ import annotations

from flask import jsonify

from ora.core.exceptions import (
    ConflictError,
    NotFoundError,
    RecordingError,
    UpstreamError,
    ValidationError,
    VersionConflictError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Speech recognition – HTTP 400
    RECORDING = "ERR_RECORDING"

    # Upstream AI – HTTP 502
    UPSTREAM = "ERR_UPSTREAM"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 400,
    E.UNAUTHENTICATED: 401,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_VERSION: 409,
    E.FORBIDDEN: 403,
    E.RECORDING: 400,
    E.UPSTREAM: 502,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_from_exception(exc: Exception):
    """Map a platform exception to its ``api_error`` response.

    Blueprints call this from a single ``except`` clause so every endpoint
    reports the same status for the same exception type.
    """
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, VersionConflictError):
        return api_error(
            E.CONFLICT_VERSION, str(exc),
            details={"expected_version": exc.expected, "current_version": exc.actual},
        )
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(exc))
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details or None)
    if isinstance(exc, RecordingError):
        return api_error(
            E.RECORDING, str(exc),
            details={"code": exc.code} if exc.code is not None else None,
        )
    if isinstance(exc, UpstreamError):
        return api_error(E.UPSTREAM, str(exc))
    return api_error(E.INTERNAL, "Internal server error")


# Exception types error_from_exception knows how to map.
PLATFORM_ERRORS = (
    NotFoundError,
    ValidationError,
    ConflictError,
    VersionConflictError,
    RecordingError,
    UpstreamError,
)
