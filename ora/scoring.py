"""
Ora Scan Platform
Pain-point score aggregation.

A pain point's points are the sum of its ``so_<objective>`` fields; they are
never stored. A process group scores the points of the pain points assigned
to it by name, and a category scores the sum of its groups. Everything here
is pure and recomputed on every call.

Pain points reference groups by name. A name that matches no group in the
lifecycle tree is *dangling* and contributes to no displayed score;
``reconcile_assignments`` applies an explicit policy to such references.
"""

import copy
import logging
import numbers

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"
OBJECTIVE_PREFIX = "so_"

DANGLING_POLICIES = ("keep", "unassign", "drop")


def objective_keys(pain_point: dict) -> list[str]:
    return [k for k in pain_point if k.startswith(OBJECTIVE_PREFIX)]


def _numeric(value) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def pain_point_points(pain_point: dict) -> int:
    """Sum of the numeric ``so_*`` fields of one pain point."""
    return sum(
        value for key, value in pain_point.items()
        if key.startswith(OBJECTIVE_PREFIX) and _numeric(value)
    )


def objective_label(key: str) -> str:
    """``so_customer_satisfaction`` → ``Customer Satisfaction``."""
    return key[len(OBJECTIVE_PREFIX):].replace("_", " ").strip().title()


def objective_key(name: str) -> str:
    """Inverse of ``objective_label`` for a strategic objective name."""
    slug = "".join(ch if ch.isalnum() else "_" for ch in (name or "").strip().lower())
    slug = "_".join(part for part in slug.split("_") if part)
    return f"{OBJECTIVE_PREFIX}{slug}"


def objective_breakdown(pain_point: dict) -> list[tuple[str, int]]:
    """Positive objective scores as ``[(label, value)]`` in field order."""
    return [
        (objective_label(key), pain_point[key])
        for key in objective_keys(pain_point)
        if _numeric(pain_point[key]) and pain_point[key] > 0
    ]


def calculate_process_group_score(pain_points: list[dict], group_name: str) -> int:
    """Points of every pain point assigned to ``group_name``."""
    return sum(
        pain_point_points(pp)
        for pp in pain_points
        if pp.get("assigned_process_group") == group_name
    )


def calculate_category_score(pain_points: list[dict], category: dict) -> int:
    """Sum of ``calculate_process_group_score`` over the category's groups."""
    return sum(
        calculate_process_group_score(pain_points, group.get("name"))
        for group in (category.get("process_groups") or [])
    )


def group_names(process_categories: list[dict]) -> set[str]:
    return {
        group.get("name")
        for category in process_categories
        for group in (category.get("process_groups") or [])
        if group.get("name")
    }


def dangling_pain_points(pain_points: list[dict], names: set[str]) -> list[dict]:
    """Pain points whose group name is neither a known group nor Unassigned."""
    return [
        pp for pp in pain_points
        if pp.get("assigned_process_group", UNASSIGNED) not in names
        and pp.get("assigned_process_group", UNASSIGNED) != UNASSIGNED
    ]


def score_tree(process_categories: list[dict], pain_points: list[dict]) -> dict:
    """Annotate a lifecycle's process tree with computed scores.

    Returns:
        {"process_categories": [... each with "score", groups with "score"
         and "pain_point_count"], "total_points", "unassigned_points",
         "dangling_points"}
    """
    categories = []
    for category in process_categories:
        groups = []
        for group in (category.get("process_groups") or []):
            name = group.get("name")
            groups.append({
                **copy.deepcopy(group),
                "score": calculate_process_group_score(pain_points, name),
                "pain_point_count": sum(
                    1 for pp in pain_points if pp.get("assigned_process_group") == name
                ),
            })
        categories.append({
            **{k: copy.deepcopy(v) for k, v in category.items() if k != "process_groups"},
            "process_groups": groups,
            "score": calculate_category_score(pain_points, category),
        })

    names = group_names(process_categories)
    return {
        "process_categories": categories,
        "total_points": sum(pain_point_points(pp) for pp in pain_points),
        "unassigned_points": calculate_process_group_score(pain_points, UNASSIGNED),
        "dangling_points": sum(
            pain_point_points(pp) for pp in dangling_pain_points(pain_points, names)
        ),
    }


def reconcile_assignments(pain_points: list[dict], names: set[str],
                          policy: str = "keep") -> tuple[list[dict], int]:
    """Apply the dangling-reference policy to a pain-point list.

    Policies:
        keep      leave dangling names untouched (they score nowhere)
        unassign  rewrite dangling names to "Unassigned"
        drop      remove dangling pain points

    Returns:
        (new pain-point list, number of pain points changed or removed)
    """
    if policy not in DANGLING_POLICIES:
        raise ValueError(f"policy must be one of: {', '.join(DANGLING_POLICIES)}")

    dangling_ids = {id(pp) for pp in dangling_pain_points(pain_points, names)}
    if policy == "keep" or not dangling_ids:
        return list(pain_points), 0

    result = []
    for pp in pain_points:
        if id(pp) not in dangling_ids:
            result.append(pp)
        elif policy == "unassign":
            result.append({**pp, "assigned_process_group": UNASSIGNED})
        # drop: skip
    logger.info("Reconciled %d dangling pain point(s) with policy=%s", len(dangling_ids), policy)
    return result, len(dangling_ids)
