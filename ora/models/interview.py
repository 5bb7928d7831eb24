"""
Ora Scan Platform
Interview artefacts — one pain-point summary and one transcript per lifecycle.

Models:
    - PainPointSummary: structured pain points + narrative, full-replace on save
    - Transcription: accumulating ``[HH:MM:SS] utterance`` text blob
"""

from datetime import datetime, timezone

from ora.models import db, new_id


class PainPointSummary(db.Model):
    """
    Pain points collected for one lifecycle.

    ``version`` increments on every save and serves as the optimistic
    concurrency token for full-replace writes.
    """

    __tablename__ = "pain_point_summaries"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
    )
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False,
    )
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    lifecycle_id = db.Column(
        db.String(36), db.ForeignKey("lifecycles.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    pain_points = db.Column(db.JSON, default=list)
    overall_summary = db.Column(db.Text, default="")
    version = db.Column(db.Integer, default=1, nullable=False)

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
            "lifecycle_id": self.lifecycle_id,
            "pain_points": list(self.pain_points or []),
            "overallSummary": self.overall_summary or "",
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Transcription(db.Model):
    __tablename__ = "transcriptions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
    )
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False,
    )
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    lifecycle_id = db.Column(
        db.String(36), db.ForeignKey("lifecycles.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    transcription = db.Column(db.Text, default="")
    transcript_name = db.Column(db.String(300), default="")
    journey_ref = db.Column(db.String(200), default="not_specific")

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
            "lifecycle_id": self.lifecycle_id,
            "transcription": self.transcription or "",
            "transcript_name": self.transcript_name or "",
            "journey_ref": self.journey_ref or "not_specific",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
