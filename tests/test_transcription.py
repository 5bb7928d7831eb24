"""
Tests — interview transcripts.

Coverage:
    1. Utterance formatting ``[HH:MM:SS] text`` and blank-line accumulation
    2. Save / no-op re-save / reset (summary survives a reset)
    3. Scan-wide listing with lifecycle-name and journey fallbacks
    4. Transcript API
"""

from datetime import datetime

import pytest

from ora.core.exceptions import NotFoundError
from ora.services import pain_point_service, transcription_service
from ora.services.transcription_service import (
    DEFAULT_JOURNEY_REF,
    append_utterance,
    format_utterance,
)

BASE = "/api/tenants/by-slug/workspaces/scans"


def _args(scope):
    return scope["slug"], scope["workspace_id"], scope["scan_id"], scope["lifecycle_id"]


class TestUtterances:
    def test_format_utterance(self):
        at = datetime(2026, 3, 1, 9, 5, 7)
        assert format_utterance("  Orders are slow  ", at) == "[09:05:07] Orders are slow"

    def test_append_separates_with_blank_line(self):
        blob = append_utterance("", "[09:00:00] first")
        blob = append_utterance(blob, "[09:00:05] second")
        assert blob == "[09:00:00] first\n\n[09:00:05] second"


class TestTranscriptPersistence:
    def test_get_without_transcript(self, scope):
        with pytest.raises(NotFoundError):
            transcription_service.get_transcription(*_args(scope))

    def test_save_creates_with_defaults(self, scope):
        saved = transcription_service.save_transcription(*_args(scope), "[09:00:00] hello")
        assert saved["transcription"] == "[09:00:00] hello"
        assert saved["journey_ref"] == DEFAULT_JOURNEY_REF
        assert saved["transcript_name"].startswith("Interview - ")

    def test_identical_resave_writes_nothing(self, scope):
        first = transcription_service.save_transcription(*_args(scope), "same")
        second = transcription_service.save_transcription(*_args(scope), "same")
        assert second["updated_at"] == first["updated_at"]

    def test_save_replaces_text_and_name(self, scope):
        transcription_service.save_transcription(*_args(scope), "old")
        saved = transcription_service.save_transcription(
            *_args(scope), "new", transcript_name="CFO interview",
        )
        assert saved["transcription"] == "new"
        assert saved["transcript_name"] == "CFO interview"

    def test_reset_keeps_summary(self, scope):
        pain_point_service.save_summary(*_args(scope), {"pain_points": [{"id": "p1"}]})
        transcription_service.save_transcription(*_args(scope), "text")

        assert transcription_service.reset_transcription(*_args(scope)) is True
        assert transcription_service.reset_transcription(*_args(scope)) is False
        assert pain_point_service.get_summary(*_args(scope))["pain_points"][0]["id"] == "p1"

    def test_list_fills_lifecycle_name(self, scope):
        transcription_service.save_transcription(*_args(scope), "text", journey_ref="")
        listed = transcription_service.list_transcriptions(
            scope["slug"], scope["workspace_id"], scope["scan_id"],
        )
        assert len(listed) == 1
        assert listed[0]["lifecycle_name"] == "Order to Cash"
        assert listed[0]["journey_ref"] == DEFAULT_JOURNEY_REF


class TestTranscriptAPI:
    def test_save_get_reset(self, client, query):
        res = client.post(f"{BASE}/pain-points-transcription", json={**query, "transcription": "hi"})
        assert res.status_code == 200

        res = client.get(f"{BASE}/pain-points-transcription", query_string=query)
        assert res.get_json()["transcription"] == "hi"

        res = client.delete(f"{BASE}/pain-points-transcription", query_string=query)
        assert res.get_json() == {"deleted": True}

        res = client.get(f"{BASE}/pain-points-transcription", query_string=query)
        assert res.status_code == 404

    def test_save_requires_text(self, client, query):
        res = client.post(f"{BASE}/pain-points-transcription", json=query)
        assert res.status_code == 400

    def test_list(self, client, query):
        client.post(f"{BASE}/pain-points-transcription", json={**query, "transcription": "hi"})
        scan_qs = {k: v for k, v in query.items() if k != "lifecycle_id"}
        res = client.get(f"{BASE}/transcriptions", query_string=scan_qs)
        assert [t["lifecycle_id"] for t in res.get_json()] == [query["lifecycle_id"]]
