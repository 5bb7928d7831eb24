"""
Tests — pain-point summaries: full-replace persistence, version tokens,
single-item edits and the interview chat lane.

Coverage:
    1. Save → get round trip; version increments per save
    2. Stale version → VersionConflictError / HTTP 409; no version → last write wins
    3. Normalisation: so_* clamped to 0..3, legacy ``painPoints`` key
    4. Single-item edits publish PainPointsUpdated + LifecycleDataUpdated
    5. Deleting an absent pain point is a no-op
    6. Dangling-reference reconciliation
    7. Chat endpoint (local stub)
"""

import pytest

from ora.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from ora.events import LifecycleDataUpdated, PainPointsUpdated, get_event_bus
from ora.scoring import UNASSIGNED
from ora.services import pain_point_service

BASE = "/api/tenants/by-slug/workspaces/scans"


def _args(scope):
    return scope["slug"], scope["workspace_id"], scope["scan_id"], scope["lifecycle_id"]


SUMMARY = {
    "pain_points": [
        {"id": "p1", "name": "Manual order entry", "description": "Orders are retyped",
         "assigned_process_group": "Order Handling", "so_customer_satisfaction": 2,
         "so_cost_reduction": 1},
        {"id": "p2", "name": "Late forecasts", "assigned_process_group": "Demand Planning",
         "so_cost_reduction": 3},
    ],
    "overallSummary": "Two pain points.",
}


class TestNormalisation:
    def test_scores_clamped(self):
        pp = pain_point_service.normalize_pain_point({"name": "x", "so_cost": 7, "so_speed": -2})
        assert pp["so_cost"] == 3
        assert pp["so_speed"] == 0

    def test_defaults(self):
        pp = pain_point_service.normalize_pain_point({"name": " Slow "})
        assert pp["name"] == "Slow"
        assert pp["assigned_process_group"] == UNASSIGNED
        assert pp["id"]

    def test_legacy_keys(self):
        summary = pain_point_service.normalize_summary({
            "painPoints": [{"id": "a", "name": "x"}], "overall_summary": "legacy",
        })
        assert [pp["id"] for pp in summary["pain_points"]] == ["a"]
        assert summary["overallSummary"] == "legacy"

    def test_non_list_rejected(self):
        with pytest.raises(ValidationError):
            pain_point_service.normalize_summary({"pain_points": "nope"})


class TestSummaryPersistence:
    def test_get_without_summary_not_found(self, scope):
        with pytest.raises(NotFoundError):
            pain_point_service.get_summary(*_args(scope))

    def test_round_trip(self, scope):
        saved = pain_point_service.save_summary(*_args(scope), SUMMARY)
        assert saved["version"] == 1

        loaded = pain_point_service.get_summary(*_args(scope))
        assert loaded["overallSummary"] == "Two pain points."
        assert [pp["id"] for pp in loaded["pain_points"]] == ["p1", "p2"]
        assert loaded["pain_points"][0]["so_customer_satisfaction"] == 2

    def test_save_replaces_whole_array(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        pain_point_service.save_summary(*_args(scope), {
            "pain_points": [{"id": "p3", "name": "New"}], "overallSummary": "",
        })
        loaded = pain_point_service.get_summary(*_args(scope))
        assert [pp["id"] for pp in loaded["pain_points"]] == ["p3"]
        assert loaded["version"] == 2

    def test_stale_version_conflicts(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        pain_point_service.save_summary(*_args(scope), SUMMARY, expected_version=1)
        with pytest.raises(VersionConflictError) as exc_info:
            pain_point_service.save_summary(*_args(scope), SUMMARY, expected_version=1)
        assert exc_info.value.actual == 2

    def test_first_save_expects_version_zero(self, scope):
        saved = pain_point_service.save_summary(*_args(scope), SUMMARY, expected_version=0)
        assert saved["version"] == 1

    def test_delete_summary(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        assert pain_point_service.delete_summary(*_args(scope)) is True
        assert pain_point_service.delete_summary(*_args(scope)) is False


class TestSingleItemEdits:
    @pytest.fixture()
    def events(self):
        bus = get_event_bus()
        received = []
        unsubscribers = [
            bus.subscribe(PainPointsUpdated.name, received.append),
            bus.subscribe(LifecycleDataUpdated.name, received.append),
        ]
        yield received
        for unsubscribe in unsubscribers:
            unsubscribe()

    def test_update_objective_score(self, scope, events):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        saved = pain_point_service.update_pain_point(*_args(scope), "p1", {"so_cost_reduction": 3})

        assert saved["version"] == 2
        assert saved["pain_points"][0]["so_cost_reduction"] == 3
        assert saved["pain_points"][1] == pain_point_service.normalize_pain_point(SUMMARY["pain_points"][1])

        updates = [e for e in events if isinstance(e, PainPointsUpdated)]
        assert [(e.pain_point_id, e.obj_key, e.new_score) for e in updates] == [("p1", "so_cost_reduction", 3)]
        assert isinstance(events[-1], LifecycleDataUpdated)

    def test_update_ignores_unknown_fields(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        with pytest.raises(ValidationError):
            pain_point_service.update_pain_point(*_args(scope), "p1", {"id": "hijack"})

    def test_update_unknown_pain_point(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        with pytest.raises(NotFoundError):
            pain_point_service.update_pain_point(*_args(scope), "zzz", {"name": "x"})

    def test_update_with_stale_version(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        with pytest.raises(VersionConflictError):
            pain_point_service.update_pain_point(*_args(scope), "p1", {"name": "x"}, expected_version=1)

    def test_delete_absent_id_is_noop(self, scope, events):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        assert pain_point_service.delete_pain_point(*_args(scope), "zzz") is None
        assert pain_point_service.get_summary(*_args(scope))["version"] == 1
        assert events == []

    def test_delete_pain_point(self, scope):
        pain_point_service.save_summary(*_args(scope), SUMMARY)
        saved = pain_point_service.delete_pain_point(*_args(scope), "p1")
        assert [pp["id"] for pp in saved["pain_points"]] == ["p2"]


class TestReconcile:
    def test_keep_by_default(self, scope):
        pain_point_service.save_summary(*_args(scope), {
            "pain_points": [{"id": "p1", "assigned_process_group": "Gone"}],
        })
        result = pain_point_service.reconcile_dangling(*_args(scope))
        assert result["policy"] == "keep"
        assert result["changed"] == 0

    def test_drop_policy(self, scope):
        pain_point_service.save_summary(*_args(scope), {
            "pain_points": [{"id": "p1", "assigned_process_group": "Gone"},
                            {"id": "p2", "assigned_process_group": "Budgeting"}],
        })
        result = pain_point_service.reconcile_dangling(*_args(scope), policy="drop")
        assert result["changed"] == 1
        assert [pp["id"] for pp in result["summary"]["pain_points"]] == ["p2"]

    def test_unknown_policy(self, scope):
        pain_point_service.save_summary(*_args(scope), {"pain_points": [{"id": "p1"}]})
        with pytest.raises(ValidationError):
            pain_point_service.reconcile_dangling(*_args(scope), policy="explode")

    def test_without_summary(self, scope):
        assert pain_point_service.reconcile_dangling(*_args(scope))["summary"] is None


class TestPainPointsAPI:
    def test_get_without_summary_is_404(self, client, query):
        res = client.get(f"{BASE}/pain-points-summary", query_string=query)
        assert res.status_code == 404

    def test_save_and_get(self, client, query):
        res = client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY})
        assert res.status_code == 200
        assert res.get_json()["version"] == 1

        res = client.get(f"{BASE}/pain-points-summary", query_string=query)
        assert len(res.get_json()["pain_points"]) == 2

    def test_top_level_legacy_body(self, client, query):
        res = client.post(f"{BASE}/pain-points-summary", json={
            **query, "painPoints": [{"id": "a", "name": "x", "so_cost": 9}],
        })
        assert res.get_json()["pain_points"][0]["so_cost"] == 3

    def test_stale_version_is_409(self, client, query):
        client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY})
        client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY, "version": 1})
        res = client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY, "version": 1})

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_VERSION"
        assert body["details"] == {"expected_version": 1, "current_version": 2}

    def test_without_version_last_write_wins(self, client, query):
        client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY})
        res = client.post(f"{BASE}/pain-points-summary", json={
            **query, "summary": {"pain_points": [], "overallSummary": "cleared"},
        })
        assert res.status_code == 200
        assert res.get_json()["version"] == 2

    def test_patch_item(self, client, query):
        client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY})
        res = client.patch(f"{BASE}/pain-points/items", json={
            **query, "pain_point_id": "p2", "fields": {"assigned_process_group": "Budgeting"},
        })
        assert res.status_code == 200
        assert res.get_json()["pain_points"][1]["assigned_process_group"] == "Budgeting"

    def test_patch_requires_id(self, client, query):
        res = client.patch(f"{BASE}/pain-points/items", json={**query, "name": "x"})
        assert res.status_code == 400

    def test_delete_item_is_idempotent(self, client, query):
        client.post(f"{BASE}/pain-points-summary", json={**query, "summary": SUMMARY})
        qs = {**query, "pain_point_id": "p1"}
        assert client.delete(f"{BASE}/pain-points/items", query_string=qs).get_json()["deleted"] is True
        assert client.delete(f"{BASE}/pain-points/items", query_string=qs).get_json()["deleted"] is False

    def test_chat(self, client, query):
        res = client.post(f"{BASE}/pain-points/chat", json={
            **query, "query": "What should I ask about order handling?",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["query"] == "What should I ask about order handling?"
        assert body["message"].startswith("**Suggested follow-up**")

    def test_chat_requires_query(self, client, query):
        res = client.post(f"{BASE}/pain-points/chat", json=query)
        assert res.status_code == 400

    def test_missing_lifecycle_id_is_400(self, client, query):
        qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        res = client.get(f"{BASE}/pain-points-summary", query_string=qs)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Missing required parameter(s): lifecycle_id"
