"""
Lifecycle Service — lifecycles of a scan and their process trees.

Functions:
    - list_lifecycles:       Ordered by position; repairs missing/duplicate/gapped positions
    - create_lifecycle / get_lifecycle / update_lifecycle / delete_lifecycle
    - reorder_lifecycles:    Apply [{id, position}] from drag-and-drop
    - apply_action:          Process tree edits (categories, groups, scores, reorder)
    - list_process_groups:   Flat, name-sorted group list for pain-point assignment
    - get_lifecycle_scores:  Process tree annotated with pain-point scores
    - get_lifecycle_costs / update_lifecycle_cost
    - generate_lifecycles / generate_processes: AI-driven generation

Business rules:
    - Positions are unique and dense (0..n-1) within a scan.
    - Pain points reference process groups by name: renaming a group carries
      its pain points along, deleting one moves them to "Unassigned".
    - Every mutation publishes LifecycleDataUpdated for the lifecycle.
"""

import copy
import logging

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ora.ai import factory
from ora.core.exceptions import ConflictError, NotFoundError, UpstreamError, ValidationError
from ora.events import LifecycleChanged, LifecycleDataUpdated, get_event_bus
from ora.models import db
from ora.models.document import Document
from ora.models.lifecycle import Lifecycle, empty_process_tree
from ora.scoring import UNASSIGNED, pain_point_points, score_tree
from ora.services import pain_point_service, tenant_service
from ora.utils.helpers import parse_int

logger = logging.getLogger(__name__)

TREE_ACTIONS = (
    "update_score",
    "create_category",
    "update_category",
    "delete_category",
    "create_group",
    "update_group",
    "delete_group",
    "reorder_group",
)


def _log_extra(slug: str, scan_id: str, lifecycle_id: str | None = None) -> dict:
    extra = {"tenant_slug": slug, "scan_id": scan_id}
    if lifecycle_id:
        extra["lifecycle_id"] = lifecycle_id
    return extra


def _data_updated(lifecycle_id: str) -> None:
    get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=lifecycle_id))


def _changed(action: str, scan_id: str, window: float | None = None) -> None:
    count = db.session.execute(
        select(func.count(Lifecycle.id)).where(Lifecycle.scan_id == scan_id)
    ).scalar_one()
    get_event_bus().publish(
        LifecycleChanged(action=action, count=count, scan_id=scan_id),
        coalesce_window=window,
    )


# ── Positions ────────────────────────────────────────────────────────────────


def _scan_lifecycles(scan_id: str) -> list[Lifecycle]:
    return list(db.session.execute(
        select(Lifecycle).where(Lifecycle.scan_id == scan_id)
    ).scalars().all())


def order_lifecycles(lifecycles: list) -> tuple[list, bool]:
    """Sort lifecycles and make their positions dense.

    When any position is missing, creation order decides; otherwise the
    stored positions do (creation order breaks ties).

    Returns:
        (ordered list, True when at least one position was rewritten)
    """
    def created(lc):
        return (lc.created_at is None, lc.created_at or 0, lc.id)

    if any(lc.position is None for lc in lifecycles):
        ordered = sorted(lifecycles, key=created)
    else:
        ordered = sorted(lifecycles, key=lambda lc: (lc.position, *created(lc)))

    changed = False
    for index, lc in enumerate(ordered):
        if lc.position != index:
            lc.position = index
            changed = True
    return ordered, changed


def list_lifecycles(slug: str, workspace_id: str, scan_id: str,
                    repair_positions: bool = True) -> list[dict]:
    """Lifecycles of a scan ordered by position.

    Repaired positions are persisted best-effort: a failed commit is logged
    and the repaired order is still returned.
    """
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    lifecycles = _scan_lifecycles(scan.id)
    if not repair_positions:
        lifecycles.sort(key=lambda lc: (lc.position is None, lc.position or 0))
        return [lc.to_dict() for lc in lifecycles]

    ordered, changed = order_lifecycles(lifecycles)
    result = [lc.to_dict() for lc in ordered]
    if changed:
        try:
            db.session.commit()
            logger.info("Lifecycle positions repaired (%d lifecycles)", len(ordered),
                        extra=_log_extra(slug, scan.id))
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to persist repaired lifecycle positions",
                             extra=_log_extra(slug, scan.id))
    return result


def _densify(scan_id: str) -> None:
    """Re-number remaining lifecycles 0..n-1 in their current order (no commit)."""
    order_lifecycles(_scan_lifecycles(scan_id))


def reorder_lifecycles(slug: str, workspace_id: str, scan_id: str, positions: list) -> list[dict]:
    """Apply new positions, e.g. ``[{"id": "...", "position": 0}, ...]``.

    Raises:
        ValidationError: positions malformed.
        NotFoundError: an id does not belong to the scan.
    """
    if not isinstance(positions, list) or not positions:
        raise ValidationError("positions must be a non-empty list.")
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    by_id = {lc.id: lc for lc in _scan_lifecycles(scan.id)}

    for item in positions:
        if not isinstance(item, dict) or not item.get("id"):
            raise ValidationError("Each position entry needs an id.", details={"entry": item})
        position = parse_int(item.get("position"))
        if position is None or position < 0:
            raise ValidationError("position must be a non-negative integer.",
                                  details={"id": item.get("id")})
        lifecycle = by_id.get(item["id"])
        if lifecycle is None:
            raise NotFoundError(resource="Lifecycle", resource_id=item["id"], tenant_id=slug)
        lifecycle.position = position

    ordered, _ = order_lifecycles(list(by_id.values()))
    db.session.commit()
    logger.info("Lifecycles reordered", extra=_log_extra(slug, scan.id))
    for lc in ordered:
        _data_updated(lc.id)
    _changed("reordered", scan.id)
    return [lc.to_dict() for lc in ordered]


# ── CRUD ─────────────────────────────────────────────────────────────────────


def get_lifecycle(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> dict:
    return tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id).to_dict()


def _validate_tree(processes) -> dict:
    if processes is None:
        return empty_process_tree()
    if not isinstance(processes, dict) or not isinstance(processes.get("process_categories", []), list):
        raise ValidationError("processes must be {\"process_categories\": [...]}.")
    return {"process_categories": copy.deepcopy(processes.get("process_categories") or [])}


def create_lifecycle(slug: str, workspace_id: str, scan_id: str, data: dict) -> dict:
    """Append a lifecycle at the end of the scan's order."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Lifecycle name is required.", details={"name": "required"})
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    existing = _scan_lifecycles(scan.id)
    order_lifecycles(existing)

    lifecycle = Lifecycle(
        scan_id=scan.id,
        name=name[:200],
        description=data.get("description") or "",
        position=len(existing),
        processes=_validate_tree(data.get("processes")),
        stakeholders=list(data.get("stakeholders") or []),
    )
    db.session.add(lifecycle)
    db.session.commit()
    logger.info("Lifecycle created: %s", name, extra=_log_extra(slug, scan.id, lifecycle.id))
    _data_updated(lifecycle.id)
    _changed("created", scan.id)
    return lifecycle.to_dict()


def update_lifecycle(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                     data: dict) -> dict:
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Lifecycle name is required.", details={"name": "required"})
        lifecycle.name = name[:200]
    if data.get("description") is not None:
        lifecycle.description = data["description"]
    if "stakeholders" in data:
        lifecycle.stakeholders = list(data.get("stakeholders") or [])
    if "processes" in data:
        lifecycle.processes = _validate_tree(data["processes"])
    db.session.commit()
    _data_updated(lifecycle.id)
    return lifecycle.to_dict()


def delete_lifecycle(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> None:
    """Delete a lifecycle with its summary and transcript; close the position gap."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    scan_id = lifecycle.scan_id
    db.session.delete(lifecycle)
    db.session.flush()
    _densify(scan_id)
    db.session.commit()
    logger.info("Lifecycle deleted", extra=_log_extra(slug, scan_id, lifecycle_id))
    _data_updated(lifecycle_id)
    _changed("deleted", scan_id)


# ── Process tree actions ─────────────────────────────────────────────────────


def _index(payload: dict, key: str, items: list, resource: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required.", details={key: "required"})
    index = parse_int(payload.get(key))
    if index is None:
        raise ValidationError(f"{key} must be an integer.", details={key: payload.get(key)})
    if index < 0 or index >= len(items):
        raise NotFoundError(resource=resource, resource_id=index)
    return index


def _name(payload: dict, label: str) -> str:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError(f"{label} name is required.", details={"name": "required"})
    return name[:200]


def _group_score_sum(category: dict) -> int:
    return sum(parse_int(g.get("score"), 0) for g in (category.get("process_groups") or []))


def _ensure_unique_group(tree: dict, name: str, ignore: tuple[int, int] | None = None) -> None:
    for ci, category in enumerate(tree["process_categories"]):
        for gi, group in enumerate(category.get("process_groups") or []):
            if (ci, gi) != ignore and group.get("name") == name:
                raise ConflictError(resource="ProcessGroup", field="name", value=name)


def apply_action(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                 action: str, payload: dict) -> dict:
    """Edit the lifecycle's process tree.

    Args:
        action: one of TREE_ACTIONS.
        payload: action arguments (category_index, group_index, name,
            description, score, reorder={source_category_index,
            source_group_index, dest_category_index, dest_group_index}).

    Returns:
        {"lifecycle": {...}, "message": str, ...action-specific values}

    Raises:
        ValidationError: unknown action or missing/invalid argument.
        NotFoundError: index out of range.
        ConflictError: group name already used in this lifecycle.
    """
    if action not in TREE_ACTIONS:
        raise ValidationError("Invalid action", details={"action": action,
                                                         "allowed": list(TREE_ACTIONS)})
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    tree = _validate_tree(lifecycle.processes)
    categories = tree["process_categories"]
    payload = payload or {}
    extra: dict = {}

    if action == "create_category":
        categories.append({
            "name": _name(payload, "Category"),
            "description": payload.get("description") or "",
            "score": 0,
            "process_groups": [],
        })
        message = "Process category created successfully"

    elif action == "update_category":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        categories[ci]["name"] = _name(payload, "Category")
        if payload.get("description") is not None:
            categories[ci]["description"] = payload["description"]
        message = "Process category updated successfully"

    elif action == "delete_category":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        removed = categories.pop(ci)
        moved = sum(
            pain_point_service.reassign_group(lifecycle, g.get("name"))
            for g in (removed.get("process_groups") or []) if g.get("name")
        )
        extra["unassigned_pain_points"] = moved
        message = "Process category deleted successfully"

    elif action == "create_group":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        name = _name(payload, "Process group")
        _ensure_unique_group(tree, name)
        categories[ci].setdefault("process_groups", []).append({
            "name": name,
            "description": payload.get("description") or "",
            "score": 0,
            "processes": [],
        })
        message = "Process group created successfully"

    elif action == "update_group":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        groups = categories[ci].get("process_groups") or []
        gi = _index(payload, "group_index", groups, "ProcessGroup")
        name = _name(payload, "Process group")
        _ensure_unique_group(tree, name, ignore=(ci, gi))
        old_name = groups[gi].get("name")
        groups[gi]["name"] = name
        if payload.get("description") is not None:
            groups[gi]["description"] = payload["description"]
        extra["reassigned_pain_points"] = pain_point_service.rename_group_assignments(
            lifecycle, old_name, name,
        )
        message = "Process group updated successfully"

    elif action == "delete_group":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        groups = categories[ci].get("process_groups") or []
        gi = _index(payload, "group_index", groups, "ProcessGroup")
        removed = groups.pop(gi)
        categories[ci]["score"] = _group_score_sum(categories[ci])
        extra["unassigned_pain_points"] = pain_point_service.reassign_group(
            lifecycle, removed.get("name"),
        )
        message = "Process group deleted successfully"

    elif action == "update_score":
        ci = _index(payload, "category_index", categories, "ProcessCategory")
        groups = categories[ci].get("process_groups") or []
        gi = _index(payload, "group_index", groups, "ProcessGroup")
        if payload.get("score") is None:
            raise ValidationError("score is required.", details={"score": "required"})
        try:
            score = float(payload["score"])
        except (TypeError, ValueError):
            raise ValidationError("Score must be a valid number", details={"score": payload["score"]})
        groups[gi]["score"] = int(score) if score.is_integer() else score
        categories[ci]["score"] = sum(g.get("score") or 0 for g in groups)
        extra.update(category_score=categories[ci]["score"], group_score=groups[gi]["score"])
        message = "Score updated successfully"

    else:  # reorder_group
        reorder = payload.get("reorder")
        keys = ("source_category_index", "source_group_index",
                "dest_category_index", "dest_group_index")
        if not isinstance(reorder, dict) or any(reorder.get(k) is None for k in keys):
            raise ValidationError("Missing required fields for group reordering",
                                  details={"reorder": list(keys)})
        sci = _index(reorder, "source_category_index", categories, "ProcessCategory")
        dci = _index(reorder, "dest_category_index", categories, "ProcessCategory")
        source = categories[sci].setdefault("process_groups", [])
        sgi = _index(reorder, "source_group_index", source, "ProcessGroup")
        dest = categories[dci].setdefault("process_groups", [])
        moved = source.pop(sgi)
        dgi = max(0, parse_int(reorder.get("dest_group_index"), 0))
        dest.insert(min(dgi, len(dest)), moved)
        categories[sci]["score"] = _group_score_sum(categories[sci])
        categories[dci]["score"] = _group_score_sum(categories[dci])
        extra.update(source_category_score=categories[sci]["score"],
                     dest_category_score=categories[dci]["score"])
        message = "Process group reordered successfully"

    lifecycle.processes = tree
    db.session.commit()
    logger.info("Lifecycle action %s applied", action,
                extra=_log_extra(slug, scan_id, lifecycle.id))
    _data_updated(lifecycle.id)
    return {"message": message, "lifecycle": lifecycle.to_dict(), **extra}


def list_process_groups(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> list[dict]:
    """Every process group of the lifecycle, sorted by name."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    groups = [
        {
            "name": group["name"],
            "description": group.get("description") or "",
            "category": category.get("name") or "",
        }
        for category in lifecycle.process_categories
        for group in (category.get("process_groups") or [])
        if isinstance(group, dict) and group.get("name")
    ]
    return sorted(groups, key=lambda g: g["name"].lower())


# ── Scores & costs ───────────────────────────────────────────────────────────


def _pain_points(lifecycle: Lifecycle) -> list[dict]:
    summary = lifecycle.pain_point_summary
    return list(summary.pain_points or []) if summary is not None else []


def get_lifecycle_scores(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str) -> dict:
    """Process tree with scores computed from the current pain points."""
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    pain_points = _pain_points(lifecycle)
    return {
        "lifecycle_id": lifecycle.id,
        "name": lifecycle.name,
        **score_tree(lifecycle.process_categories, pain_points),
        "pain_point_count": len(pain_points),
    }


def cost_metrics(lifecycle: Lifecycle) -> dict:
    pain_points = _pain_points(lifecycle)
    assigned = [
        pp for pp in pain_points
        if pp.get("assigned_process_group") and pp.get("assigned_process_group") != UNASSIGNED
    ]
    cost = lifecycle.cost_to_serve or 0
    benchmark = lifecycle.industry_benchmark or 0
    return {
        "processes": sum(len(c.get("process_groups") or []) for c in lifecycle.process_categories),
        "painPoints": len(assigned),
        "points": sum(pain_point_points(pp) for pp in assigned),
        "costToServe": cost,
        "industryBenchmark": benchmark,
        "delta": benchmark - cost,
    }


def get_lifecycle_costs(slug: str, workspace_id: str, scan_id: str) -> list[dict]:
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    lifecycles = sorted(
        _scan_lifecycles(scan.id),
        key=lambda lc: (lc.position is None, lc.position or 0),
    )
    return [{**lc.to_dict(), "costMetrics": cost_metrics(lc)} for lc in lifecycles]


def update_lifecycle_cost(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                          data: dict) -> dict:
    """Set cost_to_serve and/or industry_benchmark (stored as absolute integers)."""
    if data.get("cost_to_serve") is None and data.get("industry_benchmark") is None:
        raise ValidationError("cost_to_serve or industry_benchmark is required.")
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    for field in ("cost_to_serve", "industry_benchmark"):
        if data.get(field) is not None:
            value = parse_int(data[field])
            if value is None:
                raise ValidationError(f"{field} must be a number.", details={field: data[field]})
            setattr(lifecycle, field, abs(value))
    db.session.commit()
    _data_updated(lifecycle.id)
    return {**lifecycle.to_dict(), "costMetrics": cost_metrics(lifecycle)}


# ── Generation ───────────────────────────────────────────────────────────────


def generate_lifecycles(slug: str, workspace_id: str, scan_id: str, generator=None) -> list[dict]:
    """Replace the scan's lifecycles with AI-proposed ones.

    Existing lifecycles (with their summaries and transcripts) are deleted.

    Raises:
        ValidationError: no uploaded documents.
        UpstreamError: the generator failed.
    """
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    documents = db.session.execute(
        select(Document).where(Document.scan_id == scan.id, Document.status != "placeholder")
    ).scalars().all()
    if not documents:
        raise ValidationError("No completed documents found for this scan. Please upload files first.")

    generator = generator or factory.get_lifecycle_generator()
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    result = generator.generate(company, [d.to_dict() for d in documents])
    if result.get("error"):
        raise UpstreamError(result["error"])

    for lifecycle in _scan_lifecycles(scan.id):
        db.session.delete(lifecycle)
    db.session.flush()

    created = []
    for index, item in enumerate(result["lifecycles"]):
        lifecycle = Lifecycle(
            scan_id=scan.id,
            name=item["name"],
            description=item.get("description") or "",
            position=index,
            processes=empty_process_tree(),
            stakeholders=[],
        )
        db.session.add(lifecycle)
        created.append(lifecycle)
    db.session.commit()

    logger.info("Generated %d lifecycles", len(created), extra=_log_extra(slug, scan.id))
    _changed("generated", scan.id,
             window=current_app.config.get("LIFECYCLE_GENERATION_COALESCE_SECONDS", 10))
    return [lc.to_dict() for lc in created]


def generate_processes(slug: str, workspace_id: str, scan_id: str, lifecycle_id: str,
                       generator=None) -> dict:
    """Replace the lifecycle's process tree with an AI-proposed one.

    Pain points pointing at groups that no longer exist are reconciled with
    the configured dangling-reference policy.
    """
    lifecycle = tenant_service.get_lifecycle(slug, workspace_id, scan_id, lifecycle_id)
    generator = generator or factory.get_process_generator()
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    result = generator.generate(company, lifecycle.to_dict())
    if result.get("error"):
        raise UpstreamError(result["error"])

    lifecycle.processes = {"process_categories": result["process_categories"]}
    db.session.commit()
    logger.info("Generated %d process categories", len(result["process_categories"]),
                extra=_log_extra(slug, scan_id, lifecycle.id))

    pain_point_service.reconcile_dangling(slug, workspace_id, scan_id, lifecycle.id)
    _data_updated(lifecycle.id)
    return lifecycle.to_dict()
