"""
Ora Scan Platform
Tenancy domain models — Tenant → Workspace → Scan hierarchy.

Models:
    - Tenant: customer account, addressed by its URL slug
    - Workspace: grouping of scans inside a tenant
    - Scan: one business-process analysis walking the scan workflow
    - CompanyInfo: company details + strategic objectives of a scan (1:1)
    - ScenarioPlanning: persisted focus selection of a scan (1:1)
"""

from datetime import datetime, timezone

from ora.models import db, new_id


# ── Constants ────────────────────────────────────────────────────────────────

SCAN_STATUSES = {"draft", "in_progress", "completed", "archived"}

DEFAULT_COMPANY_RESEARCH = "Ora has done no company research yet."


def _iso(value):
    return value.isoformat() if value else None


class Tenant(db.Model):
    """Customer account. Every request addresses a tenant by its slug."""

    __tablename__ = "tenants"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, default="")
    region = db.Column(db.String(50), default="")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    workspaces = db.relationship(
        "Workspace", backref="tenant", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Workspace.created_at",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description or "",
            "region": self.region or "",
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Tenant {self.slug}>"


class Workspace(db.Model):
    """A folder of scans owned by one tenant. Name is unique per tenant."""

    __tablename__ = "workspaces"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_workspace_tenant_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    scans = db.relationship(
        "Scan", backref="workspace", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Scan.created_at",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description or "",
            "scan_count": self.scans.count(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Scan(db.Model):
    """
    One analysis run inside a workspace.

    Chain: Tenant → Workspace → Scan → {Lifecycle, Document}
    Creating a scan also seeds its CompanyInfo and placeholder documents
    (see tenant_service.create_scan).
    """

    __tablename__ = "scans"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(30), default="draft",
        comment="draft | in_progress | completed | archived",
    )
    website = db.Column(db.String(500), default="")
    country = db.Column(db.String(100), default="")
    industry = db.Column(db.String(200), default="")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships
    lifecycles = db.relationship(
        "Lifecycle", backref="scan", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    documents = db.relationship(
        "Document", backref="scan", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    company_info = db.relationship(
        "CompanyInfo", backref="scan", uselist=False,
        cascade="all, delete-orphan",
    )
    scenario_planning = db.relationship(
        "ScenarioPlanning", backref="scan", uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "description": self.description or "",
            "status": self.status,
            "website": self.website or "",
            "country": self.country or "",
            "industry": self.industry or "",
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class CompanyInfo(db.Model):
    """Company details researched for a scan, including strategic objectives.

    ``strategic_objectives`` holds ``[{name, description, status?, weight?}]``.
    Each objective maps to a ``so_<snake_name>`` score key on pain points.
    """

    __tablename__ = "company_info"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    name = db.Column(db.String(200), default="")
    website = db.Column(db.String(500), default="")
    country = db.Column(db.String(100), default="")
    industry = db.Column(db.String(200), default="")
    description = db.Column(db.Text, default="")
    research = db.Column(db.Text, default=DEFAULT_COMPANY_RESEARCH)
    strategic_objectives = db.Column(db.JSON, default=list)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "scan_id": self.scan_id,
            "name": self.name or "",
            "website": self.website or "",
            "country": self.country or "",
            "industry": self.industry or "",
            "description": self.description or "",
            "research": self.research or "",
            "strategic_objectives": list(self.strategic_objectives or []),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ScenarioPlanning(db.Model):
    """Focus process groups picked on the scenario-planning step."""

    __tablename__ = "scenario_planning"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    focus = db.Column(db.JSON, default=list, comment="[{lifecycle_id, process_group}]")
    notes = db.Column(db.Text, default="")

    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "scan_id": self.scan_id,
            "focus": list(self.focus or []),
            "notes": self.notes or "",
            "updated_at": _iso(self.updated_at),
        }
