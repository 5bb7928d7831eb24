"""
Tests — API key authentication, RBAC, Content-Type guard and health checks.

Auth is disabled in TestingConfig; these tests switch it on through the
API_AUTH_ENABLED / API_KEYS environment variables, which take precedence.
"""

import pytest

from ora.auth import _parse_api_keys


@pytest.fixture()
def auth_on(monkeypatch):
    monkeypatch.setenv("API_AUTH_ENABLED", "true")
    monkeypatch.setenv("API_KEYS", "admin-key:admin,viewer-key:viewer,editor-key:editor")


class TestParseApiKeys:
    def test_roles(self, monkeypatch):
        monkeypatch.setenv("API_KEYS", "a:admin, b:EDITOR ,c,d:root")
        assert _parse_api_keys() == {"a": "admin", "b": "editor", "c": "viewer", "d": "viewer"}

    def test_empty(self, monkeypatch):
        monkeypatch.setenv("API_KEYS", "")
        assert _parse_api_keys() == {}


class TestAuthentication:
    def test_missing_key_is_401_with_login_url(self, client, auth_on):
        res = client.get("/api/tenants")
        assert res.status_code == 401
        body = res.get_json()
        assert body["code"] == "ERR_UNAUTHENTICATED"
        assert body["login_url"] == "/api/auth/login"

    def test_invalid_key(self, client, auth_on):
        res = client.get("/api/tenants", headers={"X-API-Key": "nope"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid API key"

    def test_valid_header_key(self, client, auth_on):
        res = client.get("/api/tenants", headers={"X-API-Key": "viewer-key"})
        assert res.status_code == 200

    def test_valid_query_key(self, client, auth_on):
        res = client.get("/api/tenants", query_string={"api_key": "viewer-key"})
        assert res.status_code == 200

    def test_no_keys_configured_is_500(self, client, monkeypatch):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        monkeypatch.delenv("API_KEYS", raising=False)
        res = client.get("/api/tenants", headers={"X-API-Key": "anything"})
        assert res.status_code == 500

    def test_health_is_public(self, client, auth_on):
        assert client.get("/api/health").status_code == 200


class TestRoles:
    def test_viewer_cannot_delete_tenant(self, client, auth_on, tenant):
        res = client.delete("/api/tenants/by-slug", query_string={"slug": tenant["slug"]},
                            headers={"X-API-Key": "viewer-key"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_editor_cannot_delete_tenant(self, client, auth_on, tenant):
        res = client.delete("/api/tenants/by-slug", query_string={"slug": tenant["slug"]},
                            headers={"X-API-Key": "editor-key"})
        assert res.status_code == 403

    def test_admin_deletes_tenant(self, client, auth_on, tenant):
        res = client.delete("/api/tenants/by-slug", query_string={"slug": tenant["slug"]},
                            headers={"X-API-Key": "admin-key"})
        assert res.status_code == 200

    def test_auth_disabled_acts_as_admin(self, client, tenant):
        res = client.delete("/api/tenants/by-slug", query_string={"slug": tenant["slug"]})
        assert res.status_code == 200


class TestContentType:
    def test_form_body_rejected(self, client):
        res = client.post("/api/tenants", data="name=Acme",
                          content_type="application/x-www-form-urlencoded")
        assert res.status_code == 415

    def test_json_body_accepted(self, client):
        res = client.post("/api/tenants", json={"name": "Acme"})
        assert res.status_code == 201


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/health")
        assert res.get_json() == {"status": "ok", "app": "Ora Scan Platform"}

    def test_ready(self, client):
        assert client.get("/api/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert "redis" in body["checks"]
        assert body["checks"]["interview"]["active_recordings"] == 0
        assert body["checks"]["app"]["testing"] is True
