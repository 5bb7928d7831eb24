"""
Document Service — data-room documents and the required-set tracker.

Functions:
    - list_documents:           Documents of a scan (optionally one type)
    - upload_document:          Fill the slot of a document type (status → uploaded,
                                processed once its text is summarized)
    - set_document_status:      uploaded → processed | failed
    - update_summarization_prompt: Set a document's prompt (by id or type), re-summarize
    - update_summary:           Replace a document's summary by hand
    - summarize_document:       Summarize the stored text through the document summarizer
    - delete_document:          Revert a slot to placeholder
    - missing_document_types:   Required types without a non-placeholder document
    - document_status:          Counts + per-type status for the Data Sources page
    - missing_documents_message / welcome_message: assistant narratives

Every mutation publishes ``DocumentChanged`` on the event bus after commit.
"""

import logging

from sqlalchemy import select

from ora.ai import factory
from ora.core.exceptions import NotFoundError, UpstreamError, ValidationError
from ora.events import DocumentChanged, get_event_bus
from ora.models import db
from ora.models.document import (
    DOCUMENT_DESCRIPTIONS,
    DOCUMENT_STATUSES,
    REQUIRED_DOCUMENT_TYPES,
    Document,
)
from ora.services import tenant_service

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    "placeholder": "Needs upload",
    "uploaded": "Processing",
    "processed": "Ready",
    "failed": "Failed",
}


def _publish(action: str, document: Document, scan_id: str) -> None:
    get_event_bus().publish(DocumentChanged(action=action, document=document.to_dict(), scan_id=scan_id))


def _as_dict(doc) -> dict:
    return doc if isinstance(doc, dict) else doc.to_dict()


def _is_placeholder(doc: dict) -> bool:
    return doc.get("status") == "placeholder"


# ── CRUD ─────────────────────────────────────────────────────────────────────


def list_documents(slug: str, workspace_id: str, scan_id: str,
                   document_type: str | None = None) -> list[dict]:
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    stmt = select(Document).where(Document.scan_id == scan.id)
    if document_type:
        stmt = stmt.where(Document.document_type == document_type)
    docs = db.session.execute(stmt.order_by(Document.created_at)).scalars().all()
    return [d.to_dict() for d in docs]


def _slot(scan_id: str, document_type: str) -> Document | None:
    """The scan's document row for a type, preferring an existing placeholder."""
    docs = db.session.execute(
        select(Document).where(Document.scan_id == scan_id, Document.document_type == document_type)
    ).scalars().all()
    for doc in docs:
        if doc.is_placeholder:
            return doc
    return docs[0] if docs else None


def upload_document(slug: str, workspace_id: str, scan_id: str, data: dict) -> dict:
    """Record an uploaded file for a document type.

    The file itself lives in external storage; its metadata and, when the
    client sends it, its extracted ``content`` text are kept. Text is
    summarized right away; a failed summary leaves the document ``uploaded``.
    Uploading replaces whatever previously filled the slot.

    Raises:
        ValidationError: document_type or file_name missing.
    """
    document_type = (data.get("document_type") or "").strip()
    file_name = (data.get("file_name") or "").strip()
    if not document_type or not file_name:
        raise ValidationError(
            "document_type and file_name are required.",
            details={k: "required" for k, v in (("document_type", document_type),
                                                 ("file_name", file_name)) if not v},
        )
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)

    doc = _slot(scan.id, document_type)
    if doc is None:
        doc = Document(
            scan_id=scan.id,
            document_type=document_type,
            description=DOCUMENT_DESCRIPTIONS.get(document_type, ""),
        )
        db.session.add(doc)
    doc.file_name = file_name[:300]
    doc.file_url = data.get("file_url") or ""
    doc.file_size = int(data.get("file_size") or 0)
    doc.content_type = data.get("content_type") or ""
    doc.content = data.get("content") or ""
    doc.summarization = ""
    doc.status = "uploaded"
    db.session.commit()
    if doc.content:
        _summarize(slug, workspace_id, scan_id, doc)

    logger.info("Document uploaded: %s", document_type,
                extra={"tenant_slug": slug, "scan_id": scan_id})
    _publish("added", doc, scan.id)
    return doc.to_dict()


def _get_document(scan_id: str, document_id: str) -> Document:
    doc = db.session.get(Document, document_id)
    if doc is None or doc.scan_id != scan_id:
        raise NotFoundError(resource="Document", resource_id=document_id)
    return doc


def set_document_status(slug: str, workspace_id: str, scan_id: str,
                        document_id: str, status: str, summarization: str | None = None) -> dict:
    if status not in DOCUMENT_STATUSES or status == "placeholder":
        raise ValidationError(
            "status must be one of: failed, processed, uploaded",
            details={"status": status},
        )
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    doc = _get_document(scan.id, document_id)
    if doc.is_placeholder:
        raise ValidationError("Cannot change the status of a document that was never uploaded.")
    doc.status = status
    if summarization is not None:
        doc.summarization = summarization
    db.session.commit()
    _publish("status_changed", doc, scan.id)
    return doc.to_dict()


def _summarize(slug: str, workspace_id: str, scan_id: str, doc: Document, summarizer=None) -> bool:
    """Summarize ``doc.content`` into ``doc.summarization``; status → processed."""
    summarizer = summarizer or factory.get_document_summarizer()
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    result = summarizer.summarize(doc.to_dict(), doc.content or "", company=company)
    if result.get("error"):
        logger.warning("Document summary failed: %s", result["error"],
                       extra={"tenant_slug": slug, "scan_id": scan_id})
        return False
    doc.summarization = result["summary"]
    doc.status = "processed"
    db.session.commit()
    return True


def summarize_document(slug: str, workspace_id: str, scan_id: str, document_id: str,
                       summarizer=None) -> dict:
    """(Re)generate a document's summary from its stored text.

    Raises:
        ValidationError: the document has no stored text.
        UpstreamError: the summarizer failed.
    """
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    doc = _get_document(scan.id, document_id)
    if not doc.content:
        raise ValidationError("Document has no text to summarize.", details={"document_id": document_id})
    if not _summarize(slug, workspace_id, scan_id, doc, summarizer):
        raise UpstreamError("Failed to summarize document")
    _publish("status_changed", doc, scan.id)
    return doc.to_dict()


def update_summary(slug: str, workspace_id: str, scan_id: str, document_id: str, summary: str) -> dict:
    """Replace a document's summary with hand-written text."""
    if not isinstance(summary, str):
        raise ValidationError("summary must be a string.")
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    doc = _get_document(scan.id, document_id)
    doc.summarization = summary
    db.session.commit()
    _publish("status_changed", doc, scan.id)
    return doc.to_dict()


def update_summarization_prompt(slug: str, workspace_id: str, scan_id: str, prompt: str,
                                document_id: str | None = None,
                                document_type: str | None = None) -> dict:
    """Set the summarization prompt of a document, found by id or else by type.

    Every required type has a row (placeholder until uploaded), so a prompt
    set before upload is kept for the future file. A document with stored
    text is re-summarized with the new prompt; a failed summary keeps the
    previous one.

    Raises:
        ValidationError: neither id nor type given.
        NotFoundError: no document matches.
    """
    if not document_id and not document_type:
        raise ValidationError("document_id or document_type is required.")
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    if document_id:
        doc = _get_document(scan.id, document_id)
    else:
        doc = _slot(scan.id, document_type)
        if doc is None:
            raise NotFoundError(resource="Document", resource_id=document_type)
    doc.summarization_prompt = prompt or ""
    db.session.commit()
    if doc.content and not doc.is_placeholder:
        _summarize(slug, workspace_id, scan_id, doc)
        _publish("status_changed", doc, scan.id)
    return doc.to_dict()


def delete_document(slug: str, workspace_id: str, scan_id: str, document_id: str) -> dict:
    """Remove an uploaded file, reverting its slot to a placeholder.

    Business rule: required slots never disappear. Document type and
    summarization prompt survive; file metadata and summary are cleared.
    Deleting a document whose type is not required removes the row.
    """
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    doc = _get_document(scan.id, document_id)
    removed = doc.to_dict()

    if doc.document_type in REQUIRED_DOCUMENT_TYPES:
        doc.file_name = ""
        doc.file_url = ""
        doc.file_size = 0
        doc.content_type = ""
        doc.summarization = ""
        doc.content = ""
        doc.status = "placeholder"
        result = doc
    else:
        db.session.delete(doc)
        result = None
    db.session.commit()

    logger.info("Document removed: %s", removed["document_type"],
                extra={"tenant_slug": slug, "scan_id": scan_id})
    get_event_bus().publish(DocumentChanged(action="removed", document=removed, scan_id=scan.id))
    return result.to_dict() if result is not None else removed


# ── Required-set tracker ─────────────────────────────────────────────────────


def uploaded_documents(documents) -> list[dict]:
    return [d for d in map(_as_dict, documents) if not _is_placeholder(d)]


def missing_document_types(documents, required=REQUIRED_DOCUMENT_TYPES) -> list[str]:
    """Required types with no uploaded (non-placeholder) document.

    Matching is exact type-string equality, in required-list order.
    """
    uploaded_types = {d.get("document_type") for d in uploaded_documents(documents)}
    return [t for t in required if t not in uploaded_types]


def document_status(documents, required=REQUIRED_DOCUMENT_TYPES) -> dict:
    """Counts and per-type status for a scan's documents.

    Placeholders are excluded from ``uploaded_count`` but still reported in
    ``documents_by_type`` so each slot's status can be displayed.
    """
    docs = [_as_dict(d) for d in documents]
    by_type: dict[str, dict] = {}
    for doc in docs:
        current = by_type.get(doc.get("document_type"))
        if current is None or _is_placeholder(current):
            by_type[doc.get("document_type")] = doc

    missing = missing_document_types(docs, required)
    uploaded = uploaded_documents(docs)
    return {
        "uploaded_count": len(uploaded),
        "required_count": len(required),
        "missing_types": missing,
        "all_uploaded": not missing,
        "documents_by_type": {
            t: {
                "status": by_type[t]["status"] if t in by_type else "placeholder",
                "status_label": _STATUS_LABELS.get(
                    by_type[t]["status"] if t in by_type else "placeholder", "Unknown status"),
                "file_name": by_type[t].get("file_name", "") if t in by_type else "",
                "description": DOCUMENT_DESCRIPTIONS.get(t, ""),
            }
            for t in required
        },
    }


def missing_documents_message(documents, required=REQUIRED_DOCUMENT_TYPES) -> str:
    """One-line reminder appended to assistant replies."""
    missing = missing_document_types(documents, required)
    if missing:
        plural = "" if len(missing) == 1 else "s"
        return f"You still need {len(missing)} more document{plural}: {', '.join(missing)}."
    return ("Great! You've uploaded all required documents. You can generate business "
            "lifecycles using the \"Generate Lifecycles\" button on the Data Sources page.")


def _format_size(size: int) -> str:
    if not size:
        return "Unknown size"
    for unit in ("bytes", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "bytes" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def welcome_message(documents, company: dict | None = None, has_lifecycles: bool = False,
                    required=REQUIRED_DOCUMENT_TYPES) -> str:
    """Markdown greeting for the assistant panel of a scan."""
    docs = [_as_dict(d) for d in documents]
    uploaded = uploaded_documents(docs)
    placeholders = [d for d in docs if _is_placeholder(d)]

    lines = ["### Welcome to Ora!", ""]
    if company and company.get("name"):
        intro = f"I'm here to help with your analysis of {company['name']}"
        if company.get("industry"):
            intro += f", a company in the {company['industry']} industry"
        lines += [intro + ".", ""]
    else:
        lines += ["I'm here to help with your business analysis.", ""]

    if uploaded:
        lines += [f"I see you've uploaded {len(uploaded)} of {len(required)} required documents:", ""]
        for doc in uploaded:
            lines.append(
                f"- **{doc['document_type']}**: \"{doc.get('file_name') or 'Unnamed file'}\" "
                f"({doc.get('content_type') or 'Unknown'}, {_format_size(doc.get('file_size') or 0)})"
            )
        lines.append("")
        missing = missing_document_types(docs, required)
        if missing:
            lines += ["You still need to upload:", ""]
            lines += [f"- **{t}:** {DOCUMENT_DESCRIPTIONS.get(t, '')}" for t in missing]
            lines.append("")
        else:
            lines += ["Great! You've uploaded all required documents.", ""]

        if has_lifecycles:
            lines += ["**Business lifecycles have been generated** and are ready for review!", ""]
        elif not missing:
            lines += ["**All documents uploaded!** You can generate business lifecycles by "
                      "clicking the 'Generate Lifecycles' button on the Data Sources page.", ""]
    elif placeholders:
        lines += [
            f"Your scan has been initialized with {len(placeholders)} document placeholders. "
            "To proceed, you'll need to upload the actual files for each required document type:",
            "",
        ]
        for doc in placeholders:
            lines.append(
                f"- **{doc['document_type']}:** {_STATUS_LABELS['placeholder']} - "
                f"{DOCUMENT_DESCRIPTIONS.get(doc['document_type'], '')}"
            )
        lines.append("")
    else:
        lines += ["I notice you haven't uploaded any documents yet for this scan. "
                  "To proceed, you'll need to upload the following required documents:", ""]
        lines += [f"- **{t}:** {DOCUMENT_DESCRIPTIONS.get(t, '')}" for t in required]
        lines.append("")

    lines.append("What would you like to know?")
    return "\n".join(lines)
