"""
Scenario Planning Service — where to focus improvement work.

Aggregates every lifecycle of a scan: process-group scores from the
pain points, lifecycle cost against industry benchmark, and a ranked list
of focus opportunities. The consultant's chosen focus groups are stored on
the scan's ScenarioPlanning record.
"""

import logging

from ora.core.exceptions import NotFoundError, ValidationError
from ora.models import db
from ora.models.tenant import ScenarioPlanning
from ora.scoring import score_tree
from ora.services import tenant_service
from ora.utils.helpers import parse_int

logger = logging.getLogger(__name__)


def _ordered_lifecycles(scan) -> list:
    return sorted(scan.lifecycles, key=lambda lc: (lc.position is None, lc.position or 0))


def _group_cost(pain_points: list[dict], group_name: str) -> int:
    return sum(
        parse_int(pp.get("cost_to_serve"), 0)
        for pp in pain_points
        if pp.get("assigned_process_group") == group_name
    )


def rank_opportunities(opportunities: list[dict]) -> list[dict]:
    """Points descending, then cost_to_serve descending, then name."""
    ranked = sorted(
        opportunities,
        key=lambda o: (-o["points"], -o["cost_to_serve"], o["process_group"].lower()),
    )
    for rank, item in enumerate(ranked, start=1):
        item["rank"] = rank
    return ranked


def _record(scan) -> ScenarioPlanning:
    if scan.scenario_planning is None:
        scan.scenario_planning = ScenarioPlanning(scan_id=scan.id, focus=[], notes="")
        db.session.flush()
    return scan.scenario_planning


def scenario_planning(slug: str, workspace_id: str, scan_id: str) -> dict:
    """Scan-wide scoring and cost overview.

    Returns:
        {"scan", "companyInfo", "scenarioPlanning", "lifecycles", "totals",
         "opportunities"}
    """
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    planning = scan.scenario_planning
    selected = {
        (f.get("lifecycle_id"), f.get("process_group"))
        for f in (planning.focus if planning is not None else []) or []
    }

    lifecycles = []
    opportunities = []
    for lifecycle in _ordered_lifecycles(scan):
        summary = lifecycle.pain_point_summary
        pain_points = list(summary.pain_points or []) if summary is not None else []
        tree = score_tree(lifecycle.process_categories, pain_points)
        cost = lifecycle.cost_to_serve or 0
        benchmark = lifecycle.industry_benchmark or 0
        lifecycles.append({
            "id": lifecycle.id,
            "name": lifecycle.name,
            "position": lifecycle.position,
            "process_categories": tree["process_categories"],
            "total_points": tree["total_points"],
            "unassigned_points": tree["unassigned_points"],
            "dangling_points": tree["dangling_points"],
            "pain_point_count": len(pain_points),
            "cost_to_serve": cost,
            "industry_benchmark": benchmark,
            "delta": benchmark - cost,
        })
        for category in tree["process_categories"]:
            for group in category["process_groups"]:
                name = group.get("name")
                if not name:
                    continue
                opportunities.append({
                    "lifecycle_id": lifecycle.id,
                    "lifecycle_name": lifecycle.name,
                    "category": category.get("name") or "",
                    "process_group": name,
                    "points": group["score"],
                    "pain_point_count": group["pain_point_count"],
                    "cost_to_serve": _group_cost(pain_points, name),
                    "selected": (lifecycle.id, name) in selected,
                })

    totals = {
        "points": sum(lc["total_points"] for lc in lifecycles),
        "pain_points": sum(lc["pain_point_count"] for lc in lifecycles),
        "cost_to_serve": sum(lc["cost_to_serve"] for lc in lifecycles),
        "industry_benchmark": sum(lc["industry_benchmark"] for lc in lifecycles),
    }
    totals["delta"] = totals["industry_benchmark"] - totals["cost_to_serve"]

    return {
        "scan": scan.to_dict(),
        "companyInfo": company,
        "scenarioPlanning": planning.to_dict() if planning is not None else {
            "scan_id": scan.id, "focus": [], "notes": "",
        },
        "lifecycles": lifecycles,
        "totals": totals,
        "opportunities": rank_opportunities(opportunities),
    }


def select_focus(slug: str, workspace_id: str, scan_id: str, focus: list,
                 notes: str | None = None) -> dict:
    """Store the selected focus groups ``[{lifecycle_id, process_group}]``.

    Raises:
        ValidationError: malformed entry or unknown process group.
        NotFoundError: lifecycle not part of the scan.
    """
    if not isinstance(focus, list):
        raise ValidationError("focus must be a list.")
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    lifecycles = {lc.id: lc for lc in scan.lifecycles}

    cleaned = []
    seen = set()
    for index, item in enumerate(focus):
        if not isinstance(item, dict) or not item.get("lifecycle_id") or not item.get("process_group"):
            raise ValidationError("Each focus entry needs lifecycle_id and process_group.",
                                  details={"index": index})
        lifecycle = lifecycles.get(item["lifecycle_id"])
        if lifecycle is None:
            raise NotFoundError(resource="Lifecycle", resource_id=item["lifecycle_id"], tenant_id=slug)
        if item["process_group"] not in lifecycle.group_names():
            raise ValidationError("Unknown process group.",
                                  details={"index": index, "process_group": item["process_group"]})
        key = (lifecycle.id, item["process_group"])
        if key in seen:
            continue
        seen.add(key)
        cleaned.append({"lifecycle_id": lifecycle.id, "process_group": item["process_group"]})

    record = _record(scan)
    record.focus = cleaned
    if notes is not None:
        record.notes = notes
    db.session.commit()
    logger.info("Scenario focus updated (%d groups)", len(cleaned),
                extra={"tenant_slug": slug, "scan_id": scan.id})
    return record.to_dict()
