"""
Pain-Point Service — persistence of a lifecycle's pain-point summary.

The summary is written as a whole: every save replaces the stored
``pain_points`` array and ``overallSummary`` text, never merges them.
``version`` increments on each save; a caller that passes the version it
read gets a ``VersionConflictError`` when someone else saved in between.

Functions:
    - get_summary / save_summary / delete_summary
    - normalize_pain_point / normalize_summary
    - update_pain_point / delete_pain_point:   single-item edits (server side)
    - rename_group_assignments / reassign_group: process-group cascades
    - reconcile_dangling:                        apply DANGLING_ASSIGNMENT_POLICY
"""

import logging
import uuid

from flask import current_app

from ora.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from ora.events import LifecycleDataUpdated, PainPointsUpdated, get_event_bus
from ora.models import db
from ora.models.interview import PainPointSummary
from ora.models.lifecycle import Lifecycle
from ora.scoring import OBJECTIVE_PREFIX, UNASSIGNED, reconcile_assignments
from ora.services import tenant_service
from ora.utils.helpers import parse_int

logger = logging.getLogger(__name__)

MAX_OBJECTIVE_SCORE = 3

# Fields a single-item edit may touch besides so_* objective scores.
_EDITABLE_FIELDS = ("name", "description", "assigned_process_group", "score", "cost_to_serve")


# ── Normalisation ────────────────────────────────────────────────────────────


def normalize_pain_point(raw: dict) -> dict:
    """Coerce one pain point to the stored shape.

    ``so_*`` values become integers clamped to 0..3; a missing id gets a
    uuid4 and a missing group becomes ``Unassigned``.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Each pain point must be an object.")

    pp = {
        "id": str(raw.get("id") or uuid.uuid4()),
        "name": str(raw.get("name") or "").strip(),
        "description": str(raw.get("description") or "").strip(),
        "assigned_process_group": str(raw.get("assigned_process_group") or "").strip() or UNASSIGNED,
    }
    if raw.get("score") is not None:
        pp["score"] = max(0, parse_int(raw["score"], 0))
    if raw.get("cost_to_serve") is not None:
        pp["cost_to_serve"] = parse_int(raw["cost_to_serve"], 0)
    for key, value in raw.items():
        if key.startswith(OBJECTIVE_PREFIX):
            pp[key] = min(MAX_OBJECTIVE_SCORE, max(0, parse_int(value, 0)))
    return pp


def normalize_summary(summary: dict | None) -> dict:
    """Accept the legacy ``painPoints`` key and ``overall_summary`` spelling."""
    summary = summary or {}
    if not isinstance(summary, dict):
        raise ValidationError("summary must be an object.")
    raw_points = summary.get("pain_points")
    if raw_points is None:
        raw_points = summary.get("painPoints") or []
    if not isinstance(raw_points, list):
        raise ValidationError("pain_points must be a list.")
    overall = summary.get("overallSummary")
    if overall is None:
        overall = summary.get("overall_summary") or ""
    return {
        "pain_points": [normalize_pain_point(p) for p in raw_points],
        "overallSummary": str(overall),
    }


# ── Summary CRUD ─────────────────────────────────────────────────────────────


def _record(lifecycle: Lifecycle) -> PainPointSummary | None:
    return lifecycle.pain_point_summary


def get_summary(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> dict:
    """Stored summary of a lifecycle.

    Raises:
        NotFoundError: no summary saved yet for this lifecycle.
    """
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _record(lifecycle)
    if record is None:
        raise NotFoundError(resource="PainPointSummary", resource_id=lifecycle_id, tenant_id=slug)
    data = record.to_dict()
    data["pain_points"] = normalize_summary({"pain_points": data["pain_points"]})["pain_points"]
    return data


def _store(lifecycle: Lifecycle, summary: dict, expected_version: int | None) -> PainPointSummary:
    """Replace the lifecycle's summary in the session (no commit)."""
    record = _record(lifecycle)
    current = record.version if record is not None else 0
    if expected_version is not None and expected_version != current:
        raise VersionConflictError("PainPointSummary", expected=expected_version, actual=current)

    if record is None:
        scan = lifecycle.scan
        record = PainPointSummary(
            tenant_id=scan.tenant_id,
            workspace_id=scan.workspace_id,
            scan_id=scan.id,
            lifecycle_id=lifecycle.id,
            version=0,
        )
        lifecycle.pain_point_summary = record
    record.pain_points = summary["pain_points"]
    record.overall_summary = summary["overallSummary"]
    record.version = current + 1
    return record


def save_summary(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                 summary: dict, expected_version: int | None = None) -> dict:
    """Full replace of a lifecycle's pain-point summary.

    Args:
        summary: ``{"pain_points": [...], "overallSummary": str}``.
        expected_version: version the caller last read; ``None`` means
            last-write-wins.

    Raises:
        VersionConflictError: ``expected_version`` is stale.
        ValidationError: malformed pain points.
    """
    normalized = normalize_summary(summary)
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _store(lifecycle, normalized, expected_version)
    db.session.commit()
    logger.info(
        "Pain-point summary saved (%d pain points, v%d)",
        len(normalized["pain_points"]), record.version,
        extra={"tenant_slug": slug, "scan_id": scan_id, "lifecycle_id": lifecycle_id},
    )
    return record.to_dict()


def delete_summary(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> bool:
    """Remove the summary. Returns False when there was none."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _record(lifecycle)
    if record is None:
        return False
    db.session.delete(record)
    db.session.commit()
    logger.info("Pain-point summary deleted",
                extra={"tenant_slug": slug, "lifecycle_id": lifecycle_id})
    return True


# ── Single-item edits ────────────────────────────────────────────────────────


def _find(pain_points: list[dict], pain_point_id: str) -> int:
    for index, pp in enumerate(pain_points):
        if pp.get("id") == pain_point_id:
            return index
    return -1


def update_pain_point(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                      pain_point_id: str, fields: dict,
                      expected_version: int | None = None) -> dict:
    """Edit one pain point and save the whole array.

    Only known fields and ``so_*`` keys are applied. Publishes
    ``LifecycleDataUpdated``, plus ``PainPointsUpdated`` for each objective
    score changed.
    """
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _record(lifecycle)
    pain_points = list(record.pain_points or []) if record is not None else []
    index = _find(pain_points, pain_point_id)
    if index < 0:
        raise NotFoundError(resource="PainPoint", resource_id=pain_point_id, tenant_id=slug)

    changes = {
        k: v for k, v in (fields or {}).items()
        if k in _EDITABLE_FIELDS or k.startswith(OBJECTIVE_PREFIX)
    }
    if not changes:
        raise ValidationError("No editable fields given.",
                              details={"allowed": list(_EDITABLE_FIELDS) + ["so_*"]})

    updated = normalize_pain_point({**pain_points[index], **changes})
    pain_points[index] = updated
    saved = _store(lifecycle, {"pain_points": pain_points,
                               "overallSummary": record.overall_summary or ""},
                   expected_version)
    db.session.commit()

    bus = get_event_bus()
    for key in changes:
        if key.startswith(OBJECTIVE_PREFIX):
            bus.publish(PainPointsUpdated(
                lifecycle_id=lifecycle.id, pain_point_id=pain_point_id,
                obj_key=key, new_score=updated[key],
            ))
    bus.publish(LifecycleDataUpdated(lifecycle_id=lifecycle.id))
    return saved.to_dict()


def delete_pain_point(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                      pain_point_id: str, expected_version: int | None = None) -> dict | None:
    """Remove one pain point. Deleting an absent id changes nothing.

    Returns:
        The saved summary, or None when nothing was removed.
    """
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _record(lifecycle)
    pain_points = list(record.pain_points or []) if record is not None else []
    index = _find(pain_points, pain_point_id)
    if index < 0:
        return None
    del pain_points[index]
    saved = _store(lifecycle, {"pain_points": pain_points,
                               "overallSummary": record.overall_summary or ""},
                   expected_version)
    db.session.commit()
    get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=lifecycle.id))
    return saved.to_dict()


# ── Process-group cascades (caller commits) ──────────────────────────────────


def _rewrite_groups(lifecycle: Lifecycle, old_name: str, new_name: str) -> int:
    record = _record(lifecycle)
    if record is None or not record.pain_points:
        return 0
    changed = 0
    pain_points = []
    for pp in record.pain_points:
        if pp.get("assigned_process_group") == old_name:
            pp = {**pp, "assigned_process_group": new_name}
            changed += 1
        pain_points.append(pp)
    if changed:
        record.pain_points = pain_points
        record.version = (record.version or 0) + 1
    return changed


def rename_group_assignments(lifecycle: Lifecycle, old_name: str, new_name: str) -> int:
    """Point pain points assigned to ``old_name`` at ``new_name``."""
    if not old_name or old_name == new_name:
        return 0
    return _rewrite_groups(lifecycle, old_name, new_name)


def reassign_group(lifecycle: Lifecycle, group_name: str) -> int:
    """Move pain points of a deleted group to ``Unassigned``."""
    return _rewrite_groups(lifecycle, group_name, UNASSIGNED)


def reconcile_dangling(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                       policy: str | None = None) -> dict:
    """Apply the dangling-reference policy to the stored summary.

    Returns:
        {"policy", "changed", "summary"}; ``summary`` is None when the
        lifecycle has none.
    """
    policy = policy or current_app.config.get("DANGLING_ASSIGNMENT_POLICY", "keep")
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    record = _record(lifecycle)
    if record is None:
        return {"policy": policy, "changed": 0, "summary": None}
    try:
        pain_points, changed = reconcile_assignments(
            list(record.pain_points or []), lifecycle.group_names(), policy,
        )
    except ValueError as exc:
        raise ValidationError(str(exc), details={"policy": policy})
    if changed:
        record.pain_points = pain_points
        record.version = (record.version or 0) + 1
        db.session.commit()
        get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=lifecycle.id))
    return {"policy": policy, "changed": changed, "summary": record.to_dict()}
