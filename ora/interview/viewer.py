"""
Lifecycle Viewer — one lifecycle's process tree scored by its pain points.

Scores are never cached: ``scores()`` runs ``score_tree`` over the current
tree and the store's current pain points on every call. Tree edits go
through ``lifecycle_service``; objective score edits go through the
Pain-Point Summary Store so the interview panel sees them too.
"""

import logging

from ora.core.exceptions import NotFoundError
from ora.events import ContextChanged, LifecycleDataUpdated
from ora.interview.repository import run_in_app_context
from ora.scoring import score_tree
from ora.services import lifecycle_service

logger = logging.getLogger(__name__)

PAIN_POINT_CONTEXT = "pain-point-interview"


class LifecycleViewer:
    """
    Args:
        scope: {slug, workspace_id, scan_id, lifecycle_id}
        bus: Application event bus.
        store: ``PainPointSummaryStore`` of the same lifecycle.
        app: Flask app used when called outside an app context.
    """

    def __init__(self, scope: dict, bus, store, app=None):
        self.scope = dict(scope)
        self.lifecycle_id = scope["lifecycle_id"]
        self.bus = bus
        self.store = store
        self.app = app

        self.lifecycle: dict | None = None
        self.error: str | None = None
        self._unsubscribe = bus.subscribe(LifecycleDataUpdated.name, self._on_data_updated)

    def close(self) -> None:
        self._unsubscribe()

    def _scan_args(self) -> tuple:
        s = self.scope
        return s["slug"], s["workspace_id"], s["scan_id"]

    def load(self, reload_summary: bool = True) -> dict | None:
        """Fetch the scan's lifecycles and pick this one.

        Args:
            reload_summary: Also re-fetch the store's pain points. Callers
                pass False while a recording holds a summary not saved yet.
        """
        lifecycles = run_in_app_context(
            self.app, lifecycle_service.list_lifecycles, *self._scan_args(),
        )
        self.lifecycle = next((lc for lc in lifecycles if lc.get("id") == self.lifecycle_id), None)
        if self.lifecycle is None:
            self.error = "Lifecycle not found"
            logger.warning("Lifecycle missing from scan data", extra={"lifecycle_id": self.lifecycle_id})
        else:
            self.error = None
        if reload_summary:
            self.store.load_summary()
        return self.lifecycle

    def _on_data_updated(self, event) -> None:
        if event.lifecycle_id != self.lifecycle_id:
            return
        # The store reloads itself on the same event.
        try:
            self.load(reload_summary=False)
        except Exception as exc:
            logger.warning("Lifecycle reload failed: %s", exc, extra={"lifecycle_id": self.lifecycle_id})
            self.error = f"Failed to reload lifecycle: {exc}"

    # ── Scores ───────────────────────────────────────────────────────────

    def scores(self) -> dict:
        categories = (self.lifecycle or {}).get("processes", {}).get("process_categories") or []
        return score_tree(categories, self.store.pain_points)

    def group_score(self, group_name: str) -> int:
        for category in self.scores()["process_categories"]:
            for group in category["process_groups"]:
                if group.get("name") == group_name:
                    return group["score"]
        return 0

    # ── Edits ────────────────────────────────────────────────────────────

    def apply(self, action: str, **payload) -> dict:
        """Process tree action (see ``lifecycle_service.TREE_ACTIONS``)."""
        if self.lifecycle is None:
            raise NotFoundError(resource="Lifecycle", resource_id=self.lifecycle_id)
        result = run_in_app_context(
            self.app, lifecycle_service.apply_action, *self._scan_args(),
            self.lifecycle_id, action, payload,
        )
        self.lifecycle = result["lifecycle"]
        return result

    def update_objective_score(self, pain_point_id: str, obj_key: str, value) -> dict:
        return self.store.update_objective_score(pain_point_id, obj_key, value)

    def open_pain_point_context(self) -> None:
        """Switch the assistant panel to the interview panel for this lifecycle."""
        name = (self.lifecycle or {}).get("name")
        self.bus.publish(ContextChanged(
            context=PAIN_POINT_CONTEXT, lifecycle_id=self.lifecycle_id, lifecycle_name=name,
        ))

    def snapshot(self) -> dict:
        return {
            "lifecycle": self.lifecycle,
            "scores": self.scores(),
            "pain_points": self.store.snapshot()["pain_points"],
            "error": self.error,
        }
