"""
Transcription Service — the accumulated interview transcript of a lifecycle.

A transcript is one text blob of ``[HH:MM:SS] utterance`` lines separated
by blank lines. Saving replaces the whole blob; resetting deletes it while
the pain-point summary of the lifecycle is kept.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from ora.core.exceptions import NotFoundError
from ora.models import db
from ora.models.interview import Transcription
from ora.models.lifecycle import Lifecycle
from ora.services import tenant_service

logger = logging.getLogger(__name__)

DEFAULT_JOURNEY_REF = "not_specific"
UNKNOWN_LIFECYCLE = "Unknown Lifecycle"


def format_utterance(text: str, at: datetime | None = None) -> str:
    """``[HH:MM:SS] text`` using local wall-clock time."""
    at = at or datetime.now()
    return f"[{at:%H:%M:%S}] {text.strip()}"


def append_utterance(blob: str, line: str) -> str:
    return f"{blob}\n\n{line}" if blob else line


def _default_name(at: datetime | None = None) -> str:
    at = at or datetime.now(timezone.utc)
    return f"Interview - {at:%Y-%m-%d %H:%M}"


def get_transcription(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> dict:
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    if lifecycle.transcription is None:
        raise NotFoundError(resource="Transcription", resource_id=lifecycle_id, tenant_id=slug)
    return lifecycle.transcription.to_dict()


def save_transcription(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                       text: str, transcript_name: str | None = None,
                       journey_ref: str | None = None) -> dict:
    """Replace the stored transcript. Saving identical text writes nothing."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = lifecycle.transcription
    text = text or ""

    if record is None:
        scan = lifecycle.scan
        record = Transcription(
            tenant_id=scan.tenant_id,
            workspace_id=scan.workspace_id,
            scan_id=scan.id,
            lifecycle_id=lifecycle.id,
            transcript_name=transcript_name or _default_name(),
            journey_ref=journey_ref or DEFAULT_JOURNEY_REF,
        )
        lifecycle.transcription = record
    elif (record.transcription or "") == text and transcript_name is None and journey_ref is None:
        return record.to_dict()
    else:
        if transcript_name is not None:
            record.transcript_name = transcript_name
        if journey_ref is not None:
            record.journey_ref = journey_ref or DEFAULT_JOURNEY_REF

    record.transcription = text
    db.session.commit()
    logger.info("Transcript saved (%d chars)", len(text),
                extra={"tenant_slug": slug, "scan_id": scan_id, "lifecycle_id": lifecycle_id})
    return record.to_dict()


def reset_transcription(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> bool:
    """Delete the stored transcript. Returns False when there was none."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = lifecycle.transcription
    if record is None:
        return False
    db.session.delete(record)
    db.session.commit()
    logger.info("Transcript reset",
                extra={"tenant_slug": slug, "scan_id": scan_id, "lifecycle_id": lifecycle_id})
    return True


def list_transcriptions(slug: str, workspace_id: str, scan_id: str) -> list[dict]:
    """Transcripts of a scan with lifecycle name and fallbacks filled in."""
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    rows = db.session.execute(
        select(Transcription, Lifecycle.name)
        .outerjoin(Lifecycle, Lifecycle.id == Transcription.lifecycle_id)
        .where(Transcription.scan_id == scan.id)
        .order_by(Transcription.created_at)
    ).all()
    result = []
    for record, lifecycle_name in rows:
        item = record.to_dict()
        item["lifecycle_name"] = lifecycle_name or UNKNOWN_LIFECYCLE
        item["transcript_name"] = record.transcript_name or _default_name(record.created_at)
        item["journey_ref"] = record.journey_ref or DEFAULT_JOURNEY_REF
        result.append(item)
    return result
