"""
Tests — AI endpoints: transcript summarization and speech-service credentials.

All LLM calls are answered by the local stub provider (no API keys in tests).
"""

from ora.events import LifecycleDataUpdated, get_event_bus
from ora.services import pain_point_service

TRANSCRIPT = (
    "[09:00:00] Customer: Order handling is very slow because everything is manual\n\n"
    "[09:00:20] Interviewer: How often does that happen?\n\n"
    "[09:00:40] Customer: Every single day"
)


def _body(scope, **extra):
    return {
        "tenantSlug": scope["slug"],
        "workspaceId": scope["workspace_id"],
        "scanId": scope["scan_id"],
        "lifecycleId": scope["lifecycle_id"],
        **extra,
    }


class TestSummarize:
    def test_text_required(self, client):
        res = client.post("/api/summarize", json={"text": ""})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_text_must_be_string(self, client):
        res = client.post("/api/summarize", json={"text": ["a", "b"]})
        assert res.status_code == 400

    def test_save_requires_full_scope(self, client, scope):
        res = client.post("/api/summarize", json={
            "text": TRANSCRIPT, "tenantSlug": scope["slug"], "saveToDatabase": True,
        })
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"workspace_id", "scan_id", "lifecycle_id"}

    def test_without_scope_groups_are_unassigned(self, client):
        res = client.post("/api/summarize", json={"text": TRANSCRIPT})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "generated"
        assert body["saved"] is False
        assert [pp["assigned_process_group"] for pp in body["summary"]["pain_points"]] == ["Unassigned"]

    def test_scored_against_lifecycle_and_saved(self, client, scope):
        received = []
        unsubscribe = get_event_bus().subscribe(LifecycleDataUpdated.name, received.append)
        try:
            res = client.post("/api/summarize", json=_body(scope, text=TRANSCRIPT, saveToDatabase=True))
        finally:
            unsubscribe()

        assert res.status_code == 200
        body = res.get_json()
        assert body["saved"] is True
        pain_point = body["summary"]["pain_points"][0]
        assert pain_point["assigned_process_group"] == "Order Handling"
        assert pain_point["so_customer_satisfaction"] == 3
        assert pain_point["so_cost_reduction"] == 3
        assert body["summary"]["overallSummary"].startswith("## Summary")

        stored = pain_point_service.get_summary(
            scope["slug"], scope["workspace_id"], scope["scan_id"], scope["lifecycle_id"],
        )
        assert stored["version"] == 1
        assert [e.lifecycle_id for e in received] == [scope["lifecycle_id"]]

    def test_short_text_keeps_stored_pain_points(self, client, scope):
        pain_point_service.save_summary(
            scope["slug"], scope["workspace_id"], scope["scan_id"], scope["lifecycle_id"],
            {"pain_points": [{"id": "p1", "name": "Known"}]},
        )
        res = client.post("/api/summarize", json=_body(scope, text="hi"))
        body = res.get_json()
        assert body["status"] == "waiting"
        assert [pp["id"] for pp in body["summary"]["pain_points"]] == ["p1"]

    def test_single_turn_is_initial(self, client):
        res = client.post("/api/summarize", json={"text": "[09:00:00] Hello everyone"})
        assert res.get_json()["status"] == "initial"

    def test_unknown_lifecycle_is_404(self, client, scope):
        res = client.post("/api/summarize", json={
            **_body(scope, text=TRANSCRIPT), "lifecycleId": "nope",
        })
        assert res.status_code == 404


class TestSpeechToken:
    def test_returns_credentials(self, client):
        res = client.get("/api/azure-speech-token")
        assert res.status_code == 200
        assert res.get_json() == {"key": "test-speech-key", "region": "westeurope"}

    def test_not_configured(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "AZURE_SPEECH_KEY", "")
        res = client.get("/api/azure-speech-token")
        assert res.status_code == 500
        assert res.get_json()["error"] == "Azure Speech Service credentials not configured"
