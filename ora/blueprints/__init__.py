"""
Ora Scan Platform
Blueprint registry and shared request helpers.

Scoped endpoints read ``slug`` / ``workspace_id`` / ``scan_id`` /
``lifecycle_id`` from the query string or the JSON body (camelCase body keys
are accepted too). Services raise platform exceptions; every blueprint maps
them to JSON errors through ``register_error_handlers``.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from ora.models import db
from ora.utils.errors import PLATFORM_ERRORS, E, api_error, error_from_exception
from ora.utils.helpers import missing_scope, scope_from_request

logger = logging.getLogger(__name__)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_scope(*fields: str):
    """Resolve the request scope.

    Returns:
        (scope, None) or (None, error response) when a field is missing.
    """
    scope = scope_from_request(json_body())
    missing = missing_scope(scope, *fields)
    if missing:
        return None, api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required parameter(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    return scope, None


def scan_args(scope: dict) -> tuple:
    return scope["slug"], scope["workspace_id"], scope["scan_id"]


def lifecycle_args(scope: dict) -> tuple:
    return scope["slug"], scope["workspace_id"], scope["scan_id"], scope["lifecycle_id"]


def register_error_handlers(bp):
    """Map platform and database exceptions raised inside ``bp`` views."""

    def _platform_error(error):
        db.session.rollback()
        return error_from_exception(error)

    for exc_type in PLATFORM_ERRORS:
        bp.register_error_handler(exc_type, _platform_error)

    @bp.errorhandler(SQLAlchemyError)
    def _database_error(error):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
