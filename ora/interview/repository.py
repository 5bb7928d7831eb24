"""
Service-backed persistence for the interview layer.

Interview objects outlive a single request: the recurring summary runs on a
timer thread. Every repository call therefore runs inside an application
context, pushing one when the caller has none (the same way the background
runners of the platform wrap their work in ``app.app_context()``).
"""

import logging

from flask import has_app_context

from ora.core.exceptions import NotFoundError
from ora.services import pain_point_service, tenant_service, transcription_service

logger = logging.getLogger(__name__)


def run_in_app_context(app, fn, *args, **kwargs):
    """Call ``fn`` directly inside a context, else inside ``app.app_context()``."""
    if app is None or has_app_context():
        return fn(*args, **kwargs)
    with app.app_context():
        return fn(*args, **kwargs)


class _ScopedRepository:
    def __init__(self, app, scope: dict):
        self.app = app
        self.scope = dict(scope)

    @property
    def lifecycle_id(self) -> str:
        return self.scope["lifecycle_id"]

    def _args(self) -> tuple:
        s = self.scope
        return s["slug"], s["workspace_id"], s["scan_id"], s["lifecycle_id"]

    def _call(self, fn, *args, **kwargs):
        return run_in_app_context(self.app, fn, *args, **kwargs)


class SummaryRepository(_ScopedRepository):
    """Pain-point summary of one lifecycle plus its summarization context."""

    def load(self) -> dict | None:
        """Stored summary, or None when the lifecycle has none yet."""
        def _load():
            try:
                return pain_point_service.get_summary(*self._args())
            except NotFoundError as exc:
                if exc.resource == "PainPointSummary":
                    return None
                raise
        return self._call(_load)

    def save(self, summary: dict, expected_version: int | None = None) -> dict:
        return self._call(
            pain_point_service.save_summary, *self._args(), summary,
            expected_version=expected_version,
        )

    def context(self) -> dict:
        """Objectives and process-group names the summarizer scores against."""
        def _context():
            slug, ws, scan_id, lc_id = self._args()
            lifecycle = tenant_service.get_lifecycle(slug, ws, scan_id, lc_id)
            objectives = tenant_service.get_strategic_objectives(slug, ws, scan_id)
            return {
                "objectives": objectives,
                "process_groups": sorted(lifecycle.group_names()),
            }
        return self._call(_context)

    def chat_context(self) -> dict:
        """Company details and lifecycle dict for the chat assistant."""
        def _chat_context():
            slug, ws, scan_id, lc_id = self._args()
            lifecycle = tenant_service.get_lifecycle(slug, ws, scan_id, lc_id)
            return {
                "company": tenant_service.get_company_details(slug, ws, scan_id),
                "lifecycle": lifecycle.to_dict(),
            }
        return self._call(_chat_context)


class TranscriptRepository(_ScopedRepository):
    """Stored transcript of one lifecycle."""

    def load(self) -> str | None:
        def _load():
            try:
                return transcription_service.get_transcription(*self._args())["transcription"]
            except NotFoundError as exc:
                if exc.resource == "Transcription":
                    return None
                raise
        return self._call(_load)

    def save(self, text: str) -> dict:
        return self._call(transcription_service.save_transcription, *self._args(), text)

    def delete(self) -> bool:
        return self._call(transcription_service.reset_transcription, *self._args())
