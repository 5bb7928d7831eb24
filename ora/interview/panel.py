"""
Interview Panel and assistant panel context.

The interview panel stacks three collapsible lanes over one lifecycle:
``chat`` (assistant Q&A), ``interview`` (live transcript) and ``painpoint``
(pain-point cards from the summary store).

``PanelContextTracker`` decides which assistant panel is mounted: the
interview panel while a lifecycle's pain points are open, the default chat
panel otherwise.
"""

import logging
import re

from ora.events import ContextChanged
from ora.interview.repository import run_in_app_context
from ora.interview.viewer import PAIN_POINT_CONTEXT

logger = logging.getLogger(__name__)

LANES = ("chat", "interview", "painpoint")

DEFAULT_PANEL = "default"
INTERVIEW_PANEL = "interview"

_PAIN_POINTS_PATH = re.compile(r"/pain-points/([^/]+)")


class InterviewPanel:
    """
    Args:
        session: ``InterviewSession`` of the lifecycle (owns the store).
        chat_assistant: ``PainPointChatAssistant``.
        repository: ``SummaryRepository`` providing ``chat_context()``.
        app: Flask app used when called outside an app context.
    """

    def __init__(self, session, chat_assistant, repository, app=None):
        self.session = session
        self.store = session.store
        self.chat_assistant = chat_assistant
        self.repository = repository
        self.app = app
        self.lanes = {lane: True for lane in LANES}
        self.history: list[dict] = []
        self.chat_error: str | None = None

    def toggle_lane(self, lane: str) -> bool:
        if lane not in self.lanes:
            raise ValueError(f"Unknown lane: {lane}")
        self.lanes[lane] = not self.lanes[lane]
        return self.lanes[lane]

    def active_modes(self) -> dict:
        return dict(self.lanes)

    def ask(self, query: str) -> dict:
        """Send a chat question grounded in the lifecycle and its pain points."""
        context = self.repository.chat_context()
        result = run_in_app_context(
            self.app, self.chat_assistant.chat, query,
            company=context.get("company"),
            lifecycle=context.get("lifecycle"),
            pain_points=self.store.pain_points,
            conversation_history=self.history,
            active_modes=self.active_modes(),
        )
        self.chat_error = result.get("error")
        if not self.chat_error:
            self.history.append({"role": "user", "content": query})
            self.history.append({"role": "assistant", "content": result["message"]})
        return result

    def snapshot(self) -> dict:
        session = self.session.snapshot()
        summary = self.store.snapshot()
        return {
            "lanes": dict(self.lanes),
            "transcript": session["transcript"],
            "state": session["state"],
            "is_recording": session["is_recording"],
            "pain_points": summary["pain_points"],
            "overallSummary": summary["overallSummary"],
            "version": summary["version"],
            "history": list(self.history),
            "errors": {
                "recording": session["error"],
                "summary": summary["error"],
                "chat": self.chat_error,
            },
        }


class PanelContextTracker:
    """Which assistant panel is mounted, from context events and the path."""

    def __init__(self, bus):
        self.panel = DEFAULT_PANEL
        self.lifecycle_id: str | None = None
        self.lifecycle_name: str | None = None
        self._unsubscribe = bus.subscribe(ContextChanged.name, self._on_context_changed)

    def close(self) -> None:
        self._unsubscribe()

    def _reset(self) -> None:
        self.panel = DEFAULT_PANEL
        self.lifecycle_id = None
        self.lifecycle_name = None

    def _on_context_changed(self, event) -> None:
        if event.context == PAIN_POINT_CONTEXT and event.lifecycle_id:
            self.panel = INTERVIEW_PANEL
            self.lifecycle_id = event.lifecycle_id
            self.lifecycle_name = event.lifecycle_name
        else:
            self._reset()

    def navigate(self, path: str) -> str:
        match = _PAIN_POINTS_PATH.search(path or "")
        if match:
            if self.lifecycle_id != match.group(1):
                self.lifecycle_name = None
            self.panel = INTERVIEW_PANEL
            self.lifecycle_id = match.group(1)
        else:
            self._reset()
        return self.panel

    def snapshot(self) -> dict:
        return {
            "panel": self.panel,
            "lifecycleId": self.lifecycle_id,
            "lifecycleName": self.lifecycle_name,
        }
