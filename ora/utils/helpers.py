"""Shared request helpers used by blueprints and services.

scope_from_request:  reads slug/workspace_id/scan_id/lifecycle_id from query or body
missing_scope:       names of required scope fields that are empty
parse_int:           lenient integer coercion (returns None on bad input)
"""
from flask import request

# Body keys accepted for each scope field, snake_case first.
_SCOPE_KEYS = {
    "slug": ("slug", "tenant_slug", "tenantSlug"),
    "workspace_id": ("workspace_id", "workspaceId"),
    "scan_id": ("scan_id", "scanId"),
    "lifecycle_id": ("lifecycle_id", "lifecycleId"),
}


def scope_from_request(data: dict | None = None) -> dict:
    """Collect scope identifiers from the query string and the JSON body.

    Query parameters win over body keys. Missing fields are ``None``.

    Returns:
        {"slug", "workspace_id", "scan_id", "lifecycle_id"}
    """
    if data is None:
        data = request.get_json(silent=True) or {}
    scope = {}
    for field, keys in _SCOPE_KEYS.items():
        value = request.args.get(field)
        if not value:
            for key in keys:
                if data.get(key):
                    value = data[key]
                    break
        scope[field] = str(value) if value else None
    return scope


def missing_scope(scope: dict, *fields: str) -> list[str]:
    """Return the names of required scope fields that are empty."""
    return [f for f in fields if not scope.get(f)]


def parse_int(value, default=None):
    """Coerce to int, returning ``default`` for empty or invalid input."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        try:
            return int(float(value))
        except (ValueError, TypeError):
            return default

