"""
Ora Scan Platform
Lifecycle model — top-level business process grouping of a scan.

``processes`` is a JSON tree:
    {"process_categories": [
        {"name", "description", "score",
         "process_groups": [{"name", "description", "score", "processes": []}]}
    ]}
"""

from datetime import datetime, timezone

from ora.models import db, new_id


def empty_process_tree() -> dict:
    return {"process_categories": []}


class Lifecycle(db.Model):
    """
    Business lifecycle of a scan (e.g. "Order to Cash").

    ``position`` orders lifecycles within a scan and must stay unique and
    dense; lifecycle_service repairs gaps on read.
    """

    __tablename__ = "lifecycles"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    position = db.Column(db.Integer, nullable=True)
    processes = db.Column(db.JSON, default=empty_process_tree)
    stakeholders = db.Column(db.JSON, default=list)
    cost_to_serve = db.Column(db.Integer, default=0)
    industry_benchmark = db.Column(db.Integer, default=0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    pain_point_summary = db.relationship(
        "PainPointSummary", backref="lifecycle", uselist=False,
        cascade="all, delete-orphan",
    )
    transcription = db.relationship(
        "Transcription", backref="lifecycle", uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def process_categories(self) -> list:
        return (self.processes or {}).get("process_categories") or []

    def group_names(self) -> set[str]:
        """Names of every process group in the tree."""
        return {
            g.get("name")
            for c in self.process_categories
            for g in (c.get("process_groups") or [])
            if g.get("name")
        }

    def to_dict(self):
        return {
            "id": self.id,
            "scan_id": self.scan_id,
            "name": self.name,
            "description": self.description or "",
            "position": self.position,
            "processes": self.processes or empty_process_tree(),
            "stakeholders": list(self.stakeholders or []),
            "cost_to_serve": self.cost_to_serve or 0,
            "industry_benchmark": self.industry_benchmark or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Lifecycle {self.position}: {self.name}>"
