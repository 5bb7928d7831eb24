"""
Tenant Context Middleware — resolves the tenant slug of scoped API requests.

Every ``/api/tenants/by-slug/...`` request names its tenant with ``slug``
(query string) or ``tenant_slug`` / ``tenantSlug`` (JSON body). This hook
looks the tenant up once per request:

  1. Unknown slug       → 404 (same answer as for any missing scope record)
  2. Deactivated tenant → 403
  3. Otherwise sets g.tenant / g.tenant_slug for services and logging

Requests without a slug fall through; the blueprint reports the missing
scope field itself.
"""

import logging

from flask import g, request

from ora.models import db
from ora.models.tenant import Tenant
from ora.utils.errors import E, api_error

logger = logging.getLogger(__name__)

SCOPED_PREFIX = "/api/tenants/by-slug"


def _slug_from_request() -> str | None:
    slug = request.args.get("slug")
    if slug:
        return slug
    if request.method in ("POST", "PUT", "PATCH", "DELETE") and request.is_json:
        data = request.get_json(silent=True) or {}
        return data.get("slug") or data.get("tenant_slug") or data.get("tenantSlug")
    return None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_slug = None

        if not request.path.startswith(SCOPED_PREFIX) or request.method == "OPTIONS":
            return None

        slug = _slug_from_request()
        if not slug:
            return None

        tenant = db.session.execute(
            db.select(Tenant).where(Tenant.slug == slug.lower())
        ).scalar_one_or_none()
        if tenant is None:
            logger.info("Unknown tenant slug", extra={"tenant_slug": slug})
            return api_error(E.NOT_FOUND, "Tenant not found")

        if not tenant.is_active:
            logger.warning("Request for deactivated tenant", extra={"tenant_slug": slug})
            return api_error(E.FORBIDDEN, "Tenant account is deactivated")

        g.tenant = tenant
        g.tenant_slug = tenant.slug
        return None

    logger.info("Tenant context middleware installed")
