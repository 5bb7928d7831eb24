"""
Tests — tenants, workspaces, scans and company details.

Coverage:
    1. Tenant slug derivation and uniqueness (409)
    2. Workspace and scan names unique per parent (case-insensitive)
    3. Scan creation seeds CompanyInfo + one placeholder per required type
    4. Scoped lookups never cross tenant boundaries
    5. Strategic objectives replace-in-full with validation
    6. API endpoints and status codes
"""

import pytest

from ora.core.exceptions import ConflictError, NotFoundError, ValidationError
from ora.models.document import REQUIRED_DOCUMENT_TYPES
from ora.models.tenant import DEFAULT_COMPANY_RESEARCH
from ora.services import document_service, tenant_service

SCANS_URL = "/api/tenants/by-slug/workspaces/scans"


class TestTenants:
    def test_slug_derived_from_name(self, tenant):
        assert tenant["slug"] == "acme-corp"

    def test_duplicate_slug_conflicts(self, tenant):
        with pytest.raises(ConflictError):
            tenant_service.create_tenant({"name": "ACME corp"})

    def test_name_required(self):
        with pytest.raises(ValidationError):
            tenant_service.create_tenant({"name": "  "})

    def test_lookup_is_case_insensitive(self, tenant):
        assert tenant_service.get_tenant("ACME-CORP").id == tenant["id"]

    def test_unknown_slug_not_found(self):
        with pytest.raises(NotFoundError):
            tenant_service.get_tenant("nope")


class TestWorkspacesAndScans:
    def test_duplicate_workspace_name_conflicts(self, tenant, workspace):
        with pytest.raises(ConflictError):
            tenant_service.create_workspace(tenant["slug"], {"name": "transformation 2026"})

    def test_scan_creation_seeds_company_and_placeholders(self, tenant, workspace, scan):
        company = tenant_service.get_company_details(tenant["slug"], workspace["id"], scan["id"])
        assert company["name"] == "Acme Scan"
        assert company["research"] == DEFAULT_COMPANY_RESEARCH

        documents = document_service.list_documents(tenant["slug"], workspace["id"], scan["id"])
        assert sorted(d["document_type"] for d in documents) == sorted(REQUIRED_DOCUMENT_TYPES)
        assert {d["status"] for d in documents} == {"placeholder"}

    def test_duplicate_scan_name_conflicts(self, tenant, workspace, scan):
        with pytest.raises(ConflictError):
            tenant_service.create_scan(tenant["slug"], workspace["id"], {"name": "ACME SCAN"})

    def test_scan_not_reachable_from_other_tenant(self, tenant, workspace, scan):
        other = tenant_service.create_tenant({"name": "Globex"})
        other_ws = tenant_service.create_workspace(other["slug"], {"name": "Other"})
        with pytest.raises(NotFoundError):
            tenant_service.get_workspace(other["slug"], workspace["id"])
        with pytest.raises(NotFoundError):
            tenant_service.get_scan(other["slug"], other_ws["id"], scan["id"])

    def test_invalid_scan_status_rejected(self, tenant, workspace, scan):
        with pytest.raises(ValidationError):
            tenant_service.update_scan(tenant["slug"], workspace["id"], scan["id"], {"status": "paused"})

    def test_delete_tenant_cascades(self, tenant, workspace, scan):
        tenant_service.delete_tenant(tenant["slug"])
        with pytest.raises(NotFoundError):
            tenant_service.get_tenant(tenant["slug"])


class TestStrategicObjectives:
    def test_replace_keeps_order(self, tenant, workspace, scan):
        args = (tenant["slug"], workspace["id"], scan["id"])
        saved = tenant_service.update_strategic_objectives(*args, [
            {"name": "Speed", "description": "Faster", "weight": 2},
            {"name": "Quality"},
        ])
        assert [o["name"] for o in saved] == ["Speed", "Quality"]
        assert saved[0]["weight"] == 2
        assert tenant_service.get_strategic_objectives(*args) == saved

    def test_objective_without_name_rejected(self, tenant, workspace, scan):
        with pytest.raises(ValidationError):
            tenant_service.update_strategic_objectives(
                tenant["slug"], workspace["id"], scan["id"], [{"description": "x"}],
            )

    def test_non_list_rejected(self, tenant, workspace, scan):
        with pytest.raises(ValidationError):
            tenant_service.update_strategic_objectives(
                tenant["slug"], workspace["id"], scan["id"], {"name": "x"},
            )


class TestTenantsAPI:
    def test_create_and_list_tenants(self, client):
        res = client.post("/api/tenants", json={"name": "Initech"})
        assert res.status_code == 201
        assert res.get_json()["slug"] == "initech"

        res = client.get("/api/tenants")
        assert [t["slug"] for t in res.get_json()] == ["initech"]

    def test_duplicate_tenant_is_409(self, client, tenant):
        res = client.post("/api/tenants", json={"name": "Acme Corp"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_unknown_tenant_slug_is_404(self, client):
        res = client.get("/api/tenants/by-slug", query_string={"slug": "ghost"})
        assert res.status_code == 404

    def test_missing_slug_is_400(self, client):
        res = client.get("/api/tenants/by-slug/workspaces")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_workspace_crud(self, client, tenant):
        res = client.post("/api/tenants/by-slug/workspaces",
                          json={"tenantSlug": tenant["slug"], "name": "Pilot"})
        assert res.status_code == 201
        ws_id = res.get_json()["id"]

        res = client.get("/api/tenants/by-slug/workspaces",
                         query_string={"slug": tenant["slug"], "workspace_id": ws_id})
        assert res.get_json()["name"] == "Pilot"

        res = client.put("/api/tenants/by-slug/workspaces",
                         json={"slug": tenant["slug"], "workspace_id": ws_id, "name": "Pilot 2"})
        assert res.get_json()["name"] == "Pilot 2"

        res = client.delete("/api/tenants/by-slug/workspaces",
                            query_string={"slug": tenant["slug"], "workspace_id": ws_id})
        assert res.status_code == 200

    def test_scan_crud(self, client, tenant, workspace):
        res = client.post(SCANS_URL, json={
            "slug": tenant["slug"], "workspace_id": workspace["id"], "name": "API Scan",
        })
        assert res.status_code == 201
        scan_id = res.get_json()["id"]

        res = client.get(SCANS_URL, query_string={"slug": tenant["slug"], "workspace_id": workspace["id"]})
        assert [s["id"] for s in res.get_json()] == [scan_id]

        res = client.put(SCANS_URL, json={
            "slug": tenant["slug"], "workspace_id": workspace["id"], "scan_id": scan_id,
            "status": "in_progress",
        })
        assert res.get_json()["status"] == "in_progress"

        res = client.delete(SCANS_URL, query_string={
            "slug": tenant["slug"], "workspace_id": workspace["id"], "scan_id": scan_id,
        })
        assert res.status_code == 200
        assert "deleted" in res.get_json()["message"]

    def test_company_details_and_objectives(self, client, tenant, workspace, scan):
        qs = {"slug": tenant["slug"], "workspace_id": workspace["id"], "scan_id": scan["id"]}
        res = client.put(f"{SCANS_URL}/company-details", json={**qs, "industry": "Retail"})
        assert res.get_json()["industry"] == "Retail"

        res = client.put(f"{SCANS_URL}/strategic-objectives",
                         json={**qs, "strategic_objectives": [{"name": "Growth"}]})
        assert res.status_code == 200
        res = client.get(f"{SCANS_URL}/strategic-objectives", query_string=qs)
        assert res.get_json()["strategic_objectives"] == [{"name": "Growth", "description": ""}]

    def test_deactivated_tenant_is_403(self, client, tenant, workspace):
        tenant_service.update_tenant(tenant["slug"], {"is_active": False})
        res = client.get(SCANS_URL, query_string={"slug": tenant["slug"], "workspace_id": workspace["id"]})
        assert res.status_code == 403
