"""
Tenant, Workspace & Scan Service.

Business logic for the Tenant → Workspace → Scan hierarchy and the
company details attached to a scan.

Functions:
    - create_tenant / list_tenants / get_tenant / update_tenant / delete_tenant
    - create_workspace / list_workspaces / get_workspace / update_workspace / delete_workspace
    - create_scan:            Create scan + CompanyInfo + one placeholder per required document type
    - list_scans / get_scan / update_scan / delete_scan
    - get_company_details / update_company_details
    - get_strategic_objectives / update_strategic_objectives

Every scoped lookup walks the full chain (slug → workspace → scan) and
raises NotFoundError when any link is missing or belongs elsewhere.
"""

import logging
import re

from sqlalchemy import func, select

from ora.core.exceptions import ConflictError, NotFoundError, ValidationError
from ora.models import db
from ora.models.document import DOCUMENT_DESCRIPTIONS, REQUIRED_DOCUMENT_TYPES, Document
from ora.models.lifecycle import Lifecycle
from ora.models.tenant import (
    DEFAULT_COMPANY_RESEARCH,
    SCAN_STATUSES,
    CompanyInfo,
    Scan,
    Tenant,
    Workspace,
)

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", (value or "").strip().lower()).strip("-")


def _required_name(data: dict, label: str) -> str:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError(f"{label} name is required.", details={"name": "required"})
    return name[:200]


# ── Tenants ───────────────────────────────────────────────────────────────────


def get_tenant(slug: str) -> Tenant:
    tenant = db.session.execute(
        select(Tenant).where(Tenant.slug == (slug or "").lower())
    ).scalar_one_or_none()
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=slug)
    return tenant


def list_tenants() -> list[dict]:
    tenants = db.session.execute(select(Tenant).order_by(Tenant.name)).scalars().all()
    return [t.to_dict() for t in tenants]


def create_tenant(data: dict) -> dict:
    """Create a tenant; the slug defaults to the slugified name.

    Raises:
        ValidationError: name missing or slug empty after normalisation.
        ConflictError: slug already taken.
    """
    name = _required_name(data, "Tenant")
    slug = slugify(data.get("slug") or name)
    if not slug:
        raise ValidationError("Tenant slug is invalid.", details={"slug": "invalid"})
    exists = db.session.execute(select(Tenant.id).where(Tenant.slug == slug)).first()
    if exists:
        raise ConflictError(resource="Tenant", field="slug", value=slug)

    tenant = Tenant(
        name=name,
        slug=slug,
        description=data.get("description") or "",
        region=data.get("region") or "",
    )
    db.session.add(tenant)
    db.session.commit()
    logger.info("Tenant created", extra={"tenant_slug": slug})
    return tenant.to_dict()


def update_tenant(slug: str, data: dict) -> dict:
    tenant = get_tenant(slug)
    if "name" in data:
        tenant.name = _required_name(data, "Tenant")
    for field in ("description", "region"):
        if field in data:
            setattr(tenant, field, data.get(field) or "")
    if "is_active" in data:
        tenant.is_active = bool(data["is_active"])
    db.session.commit()
    return tenant.to_dict()


def delete_tenant(slug: str) -> None:
    tenant = get_tenant(slug)
    db.session.delete(tenant)
    db.session.commit()
    logger.info("Tenant deleted", extra={"tenant_slug": slug})


# ── Workspaces ────────────────────────────────────────────────────────────────


def get_workspace(slug: str, workspace_id: str) -> Workspace:
    tenant = get_tenant(slug)
    workspace = db.session.get(Workspace, workspace_id)
    if workspace is None or workspace.tenant_id != tenant.id:
        raise NotFoundError(resource="Workspace", resource_id=workspace_id, tenant_id=slug)
    return workspace


def list_workspaces(slug: str) -> list[dict]:
    tenant = get_tenant(slug)
    return [w.to_dict() for w in tenant.workspaces]


def create_workspace(slug: str, data: dict) -> dict:
    tenant = get_tenant(slug)
    name = _required_name(data, "Workspace")
    duplicate = db.session.execute(
        select(Workspace.id).where(
            Workspace.tenant_id == tenant.id,
            func.lower(Workspace.name) == name.lower(),
        )
    ).first()
    if duplicate:
        raise ConflictError(resource="Workspace", field="name", value=name)

    workspace = Workspace(tenant_id=tenant.id, name=name, description=data.get("description") or "")
    db.session.add(workspace)
    db.session.commit()
    logger.info("Workspace created", extra={"tenant_slug": slug, "workspace_id": workspace.id})
    return workspace.to_dict()


def update_workspace(slug: str, workspace_id: str, data: dict) -> dict:
    workspace = get_workspace(slug, workspace_id)
    if "name" in data:
        workspace.name = _required_name(data, "Workspace")
    if "description" in data:
        workspace.description = data.get("description") or ""
    db.session.commit()
    return workspace.to_dict()


def delete_workspace(slug: str, workspace_id: str) -> None:
    workspace = get_workspace(slug, workspace_id)
    db.session.delete(workspace)
    db.session.commit()
    logger.info("Workspace deleted", extra={"tenant_slug": slug, "workspace_id": workspace_id})


# ── Scans ─────────────────────────────────────────────────────────────────────


def get_scan(slug: str, workspace_id: str, scan_id: str) -> Scan:
    """Resolve a scan through its full tenant/workspace chain."""
    workspace = get_workspace(slug, workspace_id)
    scan = db.session.get(Scan, scan_id)
    if scan is None or scan.workspace_id != workspace.id:
        raise NotFoundError(resource="Scan", resource_id=scan_id, tenant_id=slug)
    return scan


def get_lifecycle(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str):
    """Resolve a lifecycle through its scan chain."""
    scan = get_scan(slug, workspace_id, scan_id)
    lifecycle = db.session.get(Lifecycle, lifecycle_id)
    if lifecycle is None or lifecycle.scan_id != scan.id:
        raise NotFoundError(resource="Lifecycle", resource_id=lifecycle_id, tenant_id=slug)
    return lifecycle


def list_scans(slug: str, workspace_id: str) -> list[dict]:
    workspace = get_workspace(slug, workspace_id)
    return [s.to_dict() for s in workspace.scans]


def create_scan(slug: str, workspace_id: str, data: dict) -> dict:
    """Create a scan with its CompanyInfo record and placeholder documents.

    Business rule: a scan requires exactly one document per required type;
    each slot starts as a ``placeholder`` row until a file is uploaded.

    Raises:
        ConflictError: a scan with the same name (case-insensitive) exists
            in the workspace.
    """
    workspace = get_workspace(slug, workspace_id)
    name = _required_name(data, "Scan")
    duplicate = db.session.execute(
        select(Scan.id).where(
            Scan.workspace_id == workspace.id,
            func.lower(Scan.name) == name.lower(),
        )
    ).first()
    if duplicate:
        raise ConflictError(resource="Scan", field="name", value=name)

    scan = Scan(
        tenant_id=workspace.tenant_id,
        workspace_id=workspace.id,
        name=name,
        description=data.get("description") or "",
        website=data.get("website") or "",
        country=data.get("country") or "",
        industry=data.get("industry") or "",
    )
    db.session.add(scan)
    db.session.flush()

    db.session.add(CompanyInfo(
        scan_id=scan.id,
        name=data.get("company_name") or name,
        website=scan.website,
        country=scan.country,
        industry=scan.industry,
        description=data.get("company_description") or "",
        research=DEFAULT_COMPANY_RESEARCH,
        strategic_objectives=[],
    ))
    for doc_type in REQUIRED_DOCUMENT_TYPES:
        db.session.add(Document(
            scan_id=scan.id,
            document_type=doc_type,
            description=DOCUMENT_DESCRIPTIONS.get(doc_type, ""),
            status="placeholder",
        ))
    db.session.commit()
    logger.info(
        "Scan created with %d placeholder documents", len(REQUIRED_DOCUMENT_TYPES),
        extra={"tenant_slug": slug, "workspace_id": workspace_id, "scan_id": scan.id},
    )
    return scan.to_dict()


def update_scan(slug: str, workspace_id: str, scan_id: str, data: dict) -> dict:
    scan = get_scan(slug, workspace_id, scan_id)
    if "name" in data:
        scan.name = _required_name(data, "Scan")
    if "status" in data:
        if data["status"] not in SCAN_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(SCAN_STATUSES))}",
                details={"status": data["status"]},
            )
        scan.status = data["status"]
    for field in ("description", "website", "country", "industry"):
        if field in data:
            setattr(scan, field, data.get(field) or "")
    db.session.commit()
    return scan.to_dict()


def delete_scan(slug: str, workspace_id: str, scan_id: str) -> None:
    scan = get_scan(slug, workspace_id, scan_id)
    db.session.delete(scan)
    db.session.commit()
    logger.info("Scan deleted", extra={"tenant_slug": slug, "scan_id": scan_id})


# ── Company details & strategic objectives ────────────────────────────────────


def _company(scan: Scan) -> CompanyInfo:
    if scan.company_info is None:
        scan.company_info = CompanyInfo(
            scan_id=scan.id, name=scan.name, research=DEFAULT_COMPANY_RESEARCH,
            strategic_objectives=[],
        )
        db.session.flush()
    return scan.company_info


def get_company_details(slug: str, workspace_id: str, scan_id: str) -> dict:
    scan = get_scan(slug, workspace_id, scan_id)
    return _company(scan).to_dict()


def update_company_details(slug: str, workspace_id: str, scan_id: str, data: dict) -> dict:
    scan = get_scan(slug, workspace_id, scan_id)
    company = _company(scan)
    for field in ("name", "website", "country", "industry", "description", "research"):
        if field in data:
            setattr(company, field, data.get(field) or "")
    db.session.commit()
    return company.to_dict()


def _clean_objective(raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("Each strategic objective must be an object.",
                              details={"index": index})
    name = (raw.get("name") or "").strip()
    if not name:
        raise ValidationError("Strategic objective name is required.",
                              details={"index": index, "name": "required"})
    objective = {"name": name[:200], "description": raw.get("description") or ""}
    if raw.get("status"):
        objective["status"] = raw["status"]
    if raw.get("weight") is not None:
        objective["weight"] = raw["weight"]
    return objective


def get_strategic_objectives(slug: str, workspace_id: str, scan_id: str) -> list[dict]:
    scan = get_scan(slug, workspace_id, scan_id)
    return list(_company(scan).strategic_objectives or [])


def update_strategic_objectives(slug: str, workspace_id: str, scan_id: str,
                                objectives: list) -> list[dict]:
    """Replace the scan's strategic objectives (full list, order kept)."""
    if not isinstance(objectives, list):
        raise ValidationError("strategic_objectives must be a list.")
    scan = get_scan(slug, workspace_id, scan_id)
    cleaned = [_clean_objective(o, i) for i, o in enumerate(objectives)]
    _company(scan).strategic_objectives = cleaned
    db.session.commit()
    logger.info("Strategic objectives updated (%d)", len(cleaned),
                extra={"tenant_slug": slug, "scan_id": scan_id})
    return cleaned
