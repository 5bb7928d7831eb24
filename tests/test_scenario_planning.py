"""
Tests — scenario planning: scan-wide scores, costs and focus selection.
"""

import pytest

from ora.core.exceptions import NotFoundError, ValidationError
from ora.services import lifecycle_service, pain_point_service, scenario_planning_service
from ora.services.scenario_planning_service import rank_opportunities

BASE = "/api/tenants/by-slug/workspaces/scans"


def _scan_args(scope):
    return scope["slug"], scope["workspace_id"], scope["scan_id"]


@pytest.fixture()
def scored(scope):
    """Order to Cash with three scored pain points and a cost gap."""
    args = _scan_args(scope) + (scope["lifecycle_id"],)
    pain_point_service.save_summary(*args, {"pain_points": [
        {"id": "p1", "assigned_process_group": "Order Handling", "so_cost_reduction": 3,
         "cost_to_serve": 100},
        {"id": "p2", "assigned_process_group": "Budgeting", "so_cost_reduction": 3,
         "cost_to_serve": 900},
        {"id": "p3", "assigned_process_group": "Demand Planning", "so_cost_reduction": 1},
    ]})
    lifecycle_service.update_lifecycle_cost(*args, {"cost_to_serve": 5000, "industry_benchmark": 4000})
    return scope


def test_rank_opportunities_ties_broken_by_cost_then_name():
    ranked = rank_opportunities([
        {"process_group": "b", "points": 3, "cost_to_serve": 10},
        {"process_group": "a", "points": 3, "cost_to_serve": 10},
        {"process_group": "c", "points": 3, "cost_to_serve": 50},
        {"process_group": "d", "points": 5, "cost_to_serve": 0},
    ])
    assert [o["process_group"] for o in ranked] == ["d", "c", "a", "b"]
    assert [o["rank"] for o in ranked] == [1, 2, 3, 4]


def test_overview_totals_and_ranking(scored):
    overview = scenario_planning_service.scenario_planning(*_scan_args(scored))

    assert overview["companyInfo"]["name"] == "Acme Scan"
    assert overview["totals"] == {
        "points": 7,
        "pain_points": 3,
        "cost_to_serve": 5000,
        "industry_benchmark": 4000,
        "delta": -1000,
    }
    top = overview["opportunities"][:3]
    assert [o["process_group"] for o in top] == ["Budgeting", "Order Handling", "Demand Planning"]
    assert overview["lifecycles"][0]["delta"] == -1000
    assert overview["scenarioPlanning"]["focus"] == []


def test_select_focus_deduplicates_and_marks_selected(scored):
    lc_id = scored["lifecycle_id"]
    planning = scenario_planning_service.select_focus(*_scan_args(scored), [
        {"lifecycle_id": lc_id, "process_group": "Budgeting"},
        {"lifecycle_id": lc_id, "process_group": "Budgeting"},
    ], notes="Start with budgeting")
    assert planning["focus"] == [{"lifecycle_id": lc_id, "process_group": "Budgeting"}]
    assert planning["notes"] == "Start with budgeting"

    overview = scenario_planning_service.scenario_planning(*_scan_args(scored))
    selected = [o["process_group"] for o in overview["opportunities"] if o["selected"]]
    assert selected == ["Budgeting"]


def test_select_focus_rejects_unknown_group(scope):
    with pytest.raises(ValidationError):
        scenario_planning_service.select_focus(*_scan_args(scope), [
            {"lifecycle_id": scope["lifecycle_id"], "process_group": "Nope"},
        ])


def test_select_focus_rejects_foreign_lifecycle(scope):
    with pytest.raises(NotFoundError):
        scenario_planning_service.select_focus(*_scan_args(scope), [
            {"lifecycle_id": "other", "process_group": "Budgeting"},
        ])


def test_api_round_trip(client, scored):
    qs = {k: v for k, v in scored.items() if k != "lifecycle_id"}
    res = client.put(f"{BASE}/scenario-planning", json={
        **qs, "focus": [{"lifecycle_id": scored["lifecycle_id"], "process_group": "Order Handling"}],
    })
    assert res.status_code == 200

    res = client.get(f"{BASE}/scenario-planning", query_string=qs)
    body = res.get_json()
    assert body["scenarioPlanning"]["focus"][0]["process_group"] == "Order Handling"
    assert body["opportunities"][0]["rank"] == 1


def test_api_rejects_non_list_focus(client, scope):
    qs = {k: v for k, v in scope.items() if k != "lifecycle_id"}
    res = client.put(f"{BASE}/scenario-planning", json={**qs, "focus": "Budgeting"})
    assert res.status_code == 400
