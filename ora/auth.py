"""
Ora Scan Platform
API key authentication, role checks and the JSON Content-Type guard.

Every ``/api/*`` request except the health checks and CORS pre-flight must
carry an API key (``X-API-Key`` header or ``?api_key=``). Keys map to one of
three roles, ranked viewer < editor < admin; ``require_role`` guards the
endpoints that need more than read access.

Environment:
    API_KEYS          "<key>:<role>,..." e.g. "k1:admin,k2:viewer"; a key
                      without a role (or with an unknown one) is a viewer
    API_AUTH_ENABLED  "false" disables auth (every caller acts as admin);
                      overrides the config value of the same name
    LOGIN_URL         (config) where the browser goes after a 401
"""

import functools
import logging
import os

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

ROLE_RANK = {"viewer": 1, "editor": 2, "admin": 3}

_FALSE_VALUES = ("false", "0", "no", "off")

PUBLIC_PREFIXES = ("/api/health",)


def _parse_api_keys(raw: str | None = None) -> dict[str, str]:
    """``"k1:admin,k2"`` → ``{"k1": "admin", "k2": "viewer"}``."""
    if raw is None:
        raw = os.getenv("API_KEYS", "")
    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, role = entry.rpartition(":")
        if not sep:
            key, role = entry, "viewer"
        role = role.strip().lower()
        if role not in ROLE_RANK:
            logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
            role = "viewer"
        keys[key.strip()] = role
    return keys


def _is_auth_enabled() -> bool:
    value = os.getenv("API_AUTH_ENABLED", "")
    if not value:
        try:
            value = str(current_app.config.get("API_AUTH_ENABLED", "true"))
        except RuntimeError:
            return True
    return value.lower() not in _FALSE_VALUES


def _request_api_key() -> str | None:
    return request.headers.get("X-API-Key", "").strip() or request.args.get("api_key", "").strip() or None


def _unauthenticated(message: str):
    """401 body carrying the login redirect target."""
    return jsonify({
        "error": message,
        "code": "ERR_UNAUTHENTICATED",
        "login_url": current_app.config.get("LOGIN_URL", "/api/auth/login"),
    }), 401


def _authenticate():
    """Resolve the caller's role into ``g.current_user_role``.

    Returns:
        None when the caller may proceed, else an error response.
    """
    if not _is_auth_enabled():
        g.current_user_role = "admin"
        return None

    api_key = _request_api_key()
    if not api_key:
        return _unauthenticated("Authentication required. Provide X-API-Key header.")

    api_keys = _parse_api_keys()
    if not api_keys:
        logger.error("API_AUTH_ENABLED is on but API_KEYS is empty")
        return jsonify({"error": "Server authentication not configured"}), 500

    role = api_keys.get(api_key)
    if role is None:
        logger.warning("Rejected API key %s... on %s %s", api_key[:4], request.method, request.path)
        return _unauthenticated("Invalid API key")

    g.current_user_role = role
    return None


def require_role(minimum_role: str):
    """
    Decorator: the caller's role must rank at least ``minimum_role``.

    Usage:
        @require_role("admin")
        def delete_tenant(): ...
    """
    needed = ROLE_RANK[minimum_role]

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            role = getattr(g, "current_user_role", None)
            if not role:
                return _unauthenticated("Authentication required")
            if ROLE_RANK.get(role, 0) < needed:
                logger.warning("Role '%s' denied '%s' endpoint %s", role, minimum_role, request.path,
                               extra={"tenant_slug": getattr(g, "tenant_slug", None)})
                return jsonify({"error": "Insufficient permissions", "code": "ERR_FORBIDDEN"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


def _check_content_type():
    """State-changing requests with a body must be JSON (HTML forms cannot send it)."""
    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return None
    if not request.content_length or "application/json" in (request.content_type or ""):
        return None
    return jsonify({
        "error": "Content-Type must be application/json for state-changing requests",
    }), 415


def init_auth(app):
    """Install the authentication ``before_request`` hook for ``/api/*``."""

    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/") or request.path.startswith(PUBLIC_PREFIXES):
            return None
        if request.method == "OPTIONS":
            return None
        return _check_content_type() or _authenticate()

    logger.info("Auth middleware installed (enabled=%s)", _is_auth_enabled())
