"""
Tests — lifecycles, process tree actions, scores, costs and generation.

Coverage:
    1. Positions: append on create, reorder, densify on delete, self-heal on list
    2. Tree actions: categories, groups, scores, reorder (index errors 404 / 400)
    3. Group rename / delete cascades to pain-point assignments
    4. Process-group listing and pain-point scores
    5. Cost metrics and delta
    6. Generation from documents (local stub provider)
    7. API wiring for every endpoint above
"""

from datetime import datetime, timedelta, timezone

import pytest

from ora.core.exceptions import ConflictError, NotFoundError, ValidationError
from ora.events import LifecycleChanged, LifecycleDataUpdated, get_event_bus
from ora.models import db
from ora.models.lifecycle import Lifecycle
from ora.scoring import UNASSIGNED
from ora.services import document_service, lifecycle_service, pain_point_service

BASE = "/api/tenants/by-slug/workspaces/scans"


def _scan_args(scope):
    return scope["slug"], scope["workspace_id"], scope["scan_id"]


def _lc_args(scope):
    return _scan_args(scope) + (scope["lifecycle_id"],)


def _add(scope, name):
    return lifecycle_service.create_lifecycle(*_scan_args(scope), {"name": name})


def _save_pain_points(scope, *pain_points):
    return pain_point_service.save_summary(*_lc_args(scope), {
        "pain_points": list(pain_points), "overallSummary": "",
    })


# ═════════════════════════════════════════════════════════════════════════════
# POSITIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestPositions:
    def test_create_appends_at_end(self, scope):
        second = _add(scope, "Procure to Pay")
        third = _add(scope, "Record to Report")
        assert (second["position"], third["position"]) == (1, 2)

    def test_delete_closes_gap(self, scope):
        second = _add(scope, "Procure to Pay")
        _add(scope, "Record to Report")
        lifecycle_service.delete_lifecycle(*_scan_args(scope), second["id"])

        listed = lifecycle_service.list_lifecycles(*_scan_args(scope))
        assert [lc["name"] for lc in listed] == ["Order to Cash", "Record to Report"]
        assert [lc["position"] for lc in listed] == [0, 1]

    def test_reorder(self, scope):
        second = _add(scope, "Procure to Pay")
        third = _add(scope, "Record to Report")
        result = lifecycle_service.reorder_lifecycles(*_scan_args(scope), [
            {"id": third["id"], "position": 0},
            {"id": scope["lifecycle_id"], "position": 1},
            {"id": second["id"], "position": 2},
        ])
        assert [lc["name"] for lc in result] == ["Record to Report", "Order to Cash", "Procure to Pay"]

    def test_reorder_unknown_id(self, scope):
        with pytest.raises(NotFoundError):
            lifecycle_service.reorder_lifecycles(*_scan_args(scope), [{"id": "nope", "position": 0}])

    def test_reorder_negative_position(self, scope):
        with pytest.raises(ValidationError):
            lifecycle_service.reorder_lifecycles(
                *_scan_args(scope), [{"id": scope["lifecycle_id"], "position": -1}],
            )

    def test_missing_position_reordered_by_creation(self, scope):
        _add(scope, "Procure to Pay")
        _add(scope, "Record to Report")
        rows = db.session.execute(
            db.select(Lifecycle).where(Lifecycle.scan_id == scope["scan_id"])
        ).scalars().all()
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for row in rows:
            offset = {"Order to Cash": 0, "Procure to Pay": 1, "Record to Report": 2}[row.name]
            row.created_at = base + timedelta(minutes=offset)
            row.position = {"Order to Cash": 5, "Procure to Pay": None, "Record to Report": 0}[row.name]
        db.session.commit()

        listed = lifecycle_service.list_lifecycles(*_scan_args(scope))
        assert [lc["name"] for lc in listed] == ["Order to Cash", "Procure to Pay", "Record to Report"]
        assert [lc["position"] for lc in listed] == [0, 1, 2]

        stored = db.session.get(Lifecycle, scope["lifecycle_id"])
        assert stored.position == 0

    def test_duplicate_positions_renumbered(self, scope):
        _add(scope, "Procure to Pay")
        _add(scope, "Record to Report")
        rows = db.session.execute(
            db.select(Lifecycle).where(Lifecycle.scan_id == scope["scan_id"])
        ).scalars().all()
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for row in rows:
            offset = {"Order to Cash": 0, "Procure to Pay": 1, "Record to Report": 2}[row.name]
            row.created_at = base + timedelta(minutes=offset)
            row.position = {"Order to Cash": 3, "Procure to Pay": 3, "Record to Report": 1}[row.name]
        db.session.commit()

        listed = lifecycle_service.list_lifecycles(*_scan_args(scope))
        assert [lc["name"] for lc in listed] == ["Record to Report", "Order to Cash", "Procure to Pay"]
        assert [lc["position"] for lc in listed] == [0, 1, 2]

    def test_delete_publishes_lifecycle_changed(self, scope, monkeypatch):
        bus = get_event_bus()
        monkeypatch.setitem(bus._windows, LifecycleChanged.name, 0)
        received = []
        unsubscribe = bus.subscribe(LifecycleChanged.name, received.append)
        try:
            lifecycle_service.delete_lifecycle(*_lc_args(scope))
        finally:
            unsubscribe()
        assert received[-1].action == "deleted"
        assert received[-1].count == 0


# ═════════════════════════════════════════════════════════════════════════════
# TREE ACTIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestTreeActions:
    def _act(self, scope, action, **payload):
        return lifecycle_service.apply_action(*_lc_args(scope), action, payload)

    def _categories(self, result):
        return result["lifecycle"]["processes"]["process_categories"]

    def test_create_category(self, scope):
        result = self._act(scope, "create_category", name="Monitor", description="Oversight")
        assert [c["name"] for c in self._categories(result)] == ["Plan", "Execute", "Monitor"]
        assert self._categories(result)[2]["process_groups"] == []

    def test_update_category(self, scope):
        result = self._act(scope, "update_category", category_index=0, name="Strategy")
        assert self._categories(result)[0]["name"] == "Strategy"
        assert self._categories(result)[0]["description"] == "Planning activities"

    def test_create_group_rejects_duplicate_name(self, scope):
        with pytest.raises(ConflictError):
            self._act(scope, "create_group", category_index=1, name="Budgeting")

    def test_create_group(self, scope):
        result = self._act(scope, "create_group", category_index=1, name="Shipping")
        groups = self._categories(result)[1]["process_groups"]
        assert [g["name"] for g in groups] == ["Order Handling", "Shipping"]
        assert groups[1]["score"] == 0

    def test_update_score_recomputes_category(self, scope):
        self._act(scope, "update_score", category_index=0, group_index=0, score=4)
        result = self._act(scope, "update_score", category_index=0, group_index=1, score="2.5")
        assert result["group_score"] == 2.5
        assert result["category_score"] == 6.5
        assert self._categories(result)[0]["score"] == 6.5

    def test_update_score_rejects_non_number(self, scope):
        with pytest.raises(ValidationError):
            self._act(scope, "update_score", category_index=0, group_index=0, score="high")

    def test_out_of_range_index(self, scope):
        with pytest.raises(NotFoundError):
            self._act(scope, "update_category", category_index=9, name="X")

    def test_missing_index(self, scope):
        with pytest.raises(ValidationError):
            self._act(scope, "delete_group", group_index=0)

    def test_unknown_action(self, scope):
        with pytest.raises(ValidationError):
            self._act(scope, "explode")

    def test_reorder_group_across_categories(self, scope):
        result = self._act(scope, "reorder_group", reorder={
            "source_category_index": 0, "source_group_index": 1,
            "dest_category_index": 1, "dest_group_index": 0,
        })
        categories = self._categories(result)
        assert [g["name"] for g in categories[0]["process_groups"]] == ["Demand Planning"]
        assert [g["name"] for g in categories[1]["process_groups"]] == ["Budgeting", "Order Handling"]

    def test_reorder_group_requires_all_indexes(self, scope):
        with pytest.raises(ValidationError):
            self._act(scope, "reorder_group", reorder={"source_category_index": 0})

    def test_rename_group_carries_pain_points(self, scope):
        _save_pain_points(scope,
                          {"id": "p1", "name": "Slow orders", "assigned_process_group": "Order Handling",
                           "so_cost_reduction": 2},
                          {"id": "p2", "name": "Bad forecast", "assigned_process_group": "Demand Planning"})
        result = self._act(scope, "update_group", category_index=1, group_index=0, name="Order Capture")
        assert result["reassigned_pain_points"] == 1

        summary = pain_point_service.get_summary(*_lc_args(scope))
        groups = {pp["id"]: pp["assigned_process_group"] for pp in summary["pain_points"]}
        assert groups == {"p1": "Order Capture", "p2": "Demand Planning"}
        assert summary["version"] == 2

    def test_delete_group_unassigns_pain_points(self, scope):
        _save_pain_points(scope, {"id": "p1", "name": "Slow orders",
                                  "assigned_process_group": "Order Handling"})
        result = self._act(scope, "delete_group", category_index=1, group_index=0)
        assert result["unassigned_pain_points"] == 1
        assert self._categories(result)[1]["process_groups"] == []

        summary = pain_point_service.get_summary(*_lc_args(scope))
        assert summary["pain_points"][0]["assigned_process_group"] == UNASSIGNED

    def test_delete_category_unassigns_all_its_groups(self, scope):
        _save_pain_points(scope,
                          {"id": "p1", "assigned_process_group": "Demand Planning"},
                          {"id": "p2", "assigned_process_group": "Budgeting"},
                          {"id": "p3", "assigned_process_group": "Order Handling"})
        result = self._act(scope, "delete_category", category_index=0)
        assert result["unassigned_pain_points"] == 2
        assert [c["name"] for c in self._categories(result)] == ["Execute"]

    def test_action_publishes_data_updated(self, scope):
        received = []
        unsubscribe = get_event_bus().subscribe(LifecycleDataUpdated.name, received.append)
        try:
            self._act(scope, "create_category", name="Monitor")
        finally:
            unsubscribe()
        assert [e.lifecycle_id for e in received] == [scope["lifecycle_id"]]


# ═════════════════════════════════════════════════════════════════════════════
# GROUPS, SCORES, COSTS
# ═════════════════════════════════════════════════════════════════════════════


class TestScoresAndCosts:
    def test_process_groups_sorted_by_name(self, scope):
        groups = lifecycle_service.list_process_groups(*_lc_args(scope))
        assert [g["name"] for g in groups] == ["Budgeting", "Demand Planning", "Order Handling"]
        assert groups[0] == {"name": "Budgeting", "description": "Allocate budgets", "category": "Plan"}

    def test_scores_from_pain_points(self, scope):
        _save_pain_points(scope,
                          {"id": "p1", "assigned_process_group": "Order Handling",
                           "so_cost_reduction": 2, "so_customer_satisfaction": 1},
                          {"id": "p2", "assigned_process_group": UNASSIGNED, "so_cost_reduction": 3})
        scores = lifecycle_service.get_lifecycle_scores(*_lc_args(scope))

        execute = scores["process_categories"][1]
        assert execute["score"] == 3
        assert execute["process_groups"][0]["score"] == 3
        assert scores["total_points"] == 6
        assert scores["unassigned_points"] == 3
        assert scores["pain_point_count"] == 2

    def test_cost_update_stores_absolute_values(self, scope):
        result = lifecycle_service.update_lifecycle_cost(*_lc_args(scope), {
            "cost_to_serve": -1200, "industry_benchmark": "1000",
        })
        assert result["cost_to_serve"] == 1200
        assert result["costMetrics"]["delta"] == -200

    def test_cost_update_requires_a_value(self, scope):
        with pytest.raises(ValidationError):
            lifecycle_service.update_lifecycle_cost(*_lc_args(scope), {})

    def test_cost_metrics_count_assigned_pain_points(self, scope):
        _save_pain_points(scope,
                          {"id": "p1", "assigned_process_group": "Budgeting", "so_cost_reduction": 2},
                          {"id": "p2", "assigned_process_group": UNASSIGNED, "so_cost_reduction": 3})
        costs = lifecycle_service.get_lifecycle_costs(*_scan_args(scope))
        metrics = costs[0]["costMetrics"]
        assert metrics == {
            "processes": 3,
            "painPoints": 1,
            "points": 2,
            "costToServe": 0,
            "industryBenchmark": 0,
            "delta": 0,
        }


# ═════════════════════════════════════════════════════════════════════════════
# GENERATION
# ═════════════════════════════════════════════════════════════════════════════


class TestGeneration:
    def test_generation_requires_uploaded_documents(self, scope):
        with pytest.raises(ValidationError):
            lifecycle_service.generate_lifecycles(*_scan_args(scope))

    def test_generation_replaces_lifecycles(self, scope):
        document_service.upload_document(*_scan_args(scope), {
            "document_type": "Annual Report", "file_name": "ar.pdf",
        })
        created = lifecycle_service.generate_lifecycles(*_scan_args(scope))

        assert [lc["name"] for lc in created] == [
            "Order to Cash", "Procure to Pay", "Record to Report", "Hire to Retire",
        ]
        assert [lc["position"] for lc in created] == [0, 1, 2, 3]
        assert db.session.get(Lifecycle, scope["lifecycle_id"]) is None

    def test_generator_error_is_upstream(self, scope):
        from ora.core.exceptions import UpstreamError

        class Broken:
            def generate(self, company, documents):
                return {"lifecycles": [], "error": "quota exceeded"}

        document_service.upload_document(*_scan_args(scope), {
            "document_type": "Annual Report", "file_name": "ar.pdf",
        })
        with pytest.raises(UpstreamError):
            lifecycle_service.generate_lifecycles(*_scan_args(scope), generator=Broken())
        assert db.session.get(Lifecycle, scope["lifecycle_id"]) is not None

    def test_generate_processes_reconciles_dangling(self, app, scope):
        _save_pain_points(scope, {"id": "p1", "assigned_process_group": "Budgeting"},
                          {"id": "p2", "assigned_process_group": "Order Handling"})
        app.config["DANGLING_ASSIGNMENT_POLICY"] = "unassign"
        try:
            lifecycle = lifecycle_service.generate_processes(*_lc_args(scope))
        finally:
            app.config["DANGLING_ASSIGNMENT_POLICY"] = "keep"

        names = [c["name"] for c in lifecycle["processes"]["process_categories"]]
        assert names == ["Plan", "Execute", "Monitor"]
        summary = pain_point_service.get_summary(*_lc_args(scope))
        groups = {pp["id"]: pp["assigned_process_group"] for pp in summary["pain_points"]}
        assert groups == {"p1": UNASSIGNED, "p2": "Order Handling"}


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


class TestLifecyclesAPI:
    def test_list_and_get(self, client, query):
        res = client.get(f"{BASE}/lifecycles", query_string={
            k: v for k, v in query.items() if k != "lifecycle_id"
        })
        assert res.status_code == 200
        assert [lc["name"] for lc in res.get_json()] == ["Order to Cash"]

        res = client.get(f"{BASE}/lifecycles", query_string=query)
        assert res.get_json()["id"] == query["lifecycle_id"]

    def test_action_out_of_range_is_404(self, client, query):
        res = client.post(f"{BASE}/lifecycles", json={
            **query, "action": "update_group", "category_index": 0, "group_index": 7, "name": "X",
        })
        assert res.status_code == 404

    def test_action_missing_index_is_400(self, client, query):
        res = client.post(f"{BASE}/lifecycles", json={**query, "action": "update_category", "name": "X"})
        assert res.status_code == 400

    def test_action_requires_action(self, client, query):
        res = client.post(f"{BASE}/lifecycles", json=query)
        assert res.status_code == 400
        assert "allowed" in res.get_json()["details"]

    def test_duplicate_group_is_409(self, client, query):
        res = client.post(f"{BASE}/lifecycles", json={
            **query, "action": "create_group", "category_index": 0, "name": "Order Handling",
        })
        assert res.status_code == 409

    def test_create_and_reorder(self, client, query):
        scan_qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        res = client.post(f"{BASE}/lifecycles/create", json={**scan_qs, "name": "Hire to Retire"})
        assert res.status_code == 201
        new_id = res.get_json()["id"]

        res = client.patch(f"{BASE}/lifecycles", json={**scan_qs, "positions": [
            {"id": new_id, "position": 0}, {"id": query["lifecycle_id"], "position": 1},
        ]})
        assert [lc["id"] for lc in res.get_json()] == [new_id, query["lifecycle_id"]]

    def test_process_groups_and_scores(self, client, query):
        res = client.get(f"{BASE}/lifecycles/process-groups", query_string=query)
        assert len(res.get_json()["process_groups"]) == 3

        res = client.get(f"{BASE}/lifecycles/scores", query_string=query)
        assert res.get_json()["total_points"] == 0

    def test_generate_lifecycles_without_documents_is_400(self, client, query):
        scan_qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        res = client.post(f"{BASE}/generate-lifecycles", json=scan_qs)
        assert res.status_code == 400

    def test_generate_lifecycles(self, client, query):
        scan_qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        client.post(f"{BASE}/documents/upload", json={
            **scan_qs, "document_type": "Strategy Document", "file_name": "strategy.docx",
        })
        res = client.post(f"{BASE}/generate-lifecycles", json=scan_qs)
        assert res.status_code == 200
        assert res.get_json()["count"] == 4

    def test_costs(self, client, query):
        res = client.put(f"{BASE}/lifecycle-costs", json={**query, "cost_to_serve": 500})
        assert res.get_json()["costMetrics"]["costToServe"] == 500

        scan_qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        res = client.get(f"{BASE}/lifecycle-costs", query_string=scan_qs)
        assert res.get_json()["lifecycles"][0]["cost_to_serve"] == 500

    def test_delete(self, client, query):
        res = client.delete(f"{BASE}/lifecycles", query_string=query)
        assert res.status_code == 200
        res = client.get(f"{BASE}/lifecycles", query_string=query)
        assert res.status_code == 404
