"""
Ora Scan Platform
Data-room documents. A scan needs exactly one document per required type;
un-uploaded slots are kept as ``placeholder`` rows.
"""

from datetime import datetime, timezone

from ora.models import db, new_id


DOCUMENT_STATUSES = {"placeholder", "uploaded", "processed", "failed"}

# Ordered: drives the order of status narratives.
REQUIRED_DOCUMENT_TYPES = (
    "Annual Report",
    "Organization Chart",
    "Strategy Document",
    "Process Documentation",
    "Financial Statements",
    "IT Landscape",
    "Customer Journey Map",
)

DOCUMENT_DESCRIPTIONS = {
    "Annual Report": "Latest annual report with company performance and outlook",
    "Organization Chart": "Current organizational structure and reporting lines",
    "Strategy Document": "Corporate strategy, goals and strategic initiatives",
    "Process Documentation": "Existing process descriptions, SOPs or process maps",
    "Financial Statements": "Income statement, balance sheet and cost breakdown",
    "IT Landscape": "Overview of applications, systems and integrations",
    "Customer Journey Map": "Customer touchpoints and journey stages",
}


class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    scan_id = db.Column(
        db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    document_type = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default="")
    file_name = db.Column(db.String(300), default="")
    file_url = db.Column(db.String(1000), default="")
    file_size = db.Column(db.Integer, default=0)
    content_type = db.Column(db.String(100), default="")
    status = db.Column(
        db.String(20), default="placeholder", nullable=False,
        comment="placeholder | uploaded | processed | failed",
    )
    summarization_prompt = db.Column(db.Text, default="")
    summarization = db.Column(db.Text, default="")
    content = db.Column(db.Text, default="", comment="extracted text; feeds summaries and the scan chat")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_placeholder(self) -> bool:
        return self.status == "placeholder"

    def to_dict(self):
        return {
            "id": self.id,
            "scan_id": self.scan_id,
            "document_type": self.document_type,
            "description": self.description or "",
            "file_name": self.file_name or "",
            "file_url": self.file_url or "",
            "file_size": self.file_size or 0,
            "content_type": self.content_type or "",
            "status": self.status,
            "summarization_prompt": self.summarization_prompt or "",
            "summarization": self.summarization or "",
            "has_content": bool(self.content),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
