"""
Pain-Point Summary Store — local summary state of one lifecycle.

Every mutation follows the same pattern: optimistic local change, full-array
save carrying the last known version, then ``LifecycleDataUpdated`` so other
panels recompute their scores. A failed save keeps the optimistic state and
records ``last_error``; a stale version reloads the stored summary and
re-raises ``VersionConflictError`` (deletes retry once on the reload).
"""

import logging
import threading

from ora.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from ora.events import LifecycleDataUpdated, PainPointsUpdated
from ora.scoring import OBJECTIVE_PREFIX
from ora.services.pain_point_service import MAX_OBJECTIVE_SCORE, normalize_pain_point
from ora.utils.helpers import parse_int

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("score", "cost_to_serve", "name", "description")


class PainPointSummaryStore:
    """
    Args:
        scope: {slug, workspace_id, scan_id, lifecycle_id}
        bus: Application event bus.
        summarizer: Object with ``summarize(text, objectives, process_groups,
            existing_pain_points)``.
        repository: ``SummaryRepository`` (or a fake with load/save/context).
    """

    def __init__(self, scope: dict, bus, summarizer, repository):
        self.scope = dict(scope)
        self.lifecycle_id = scope["lifecycle_id"]
        self.bus = bus
        self.summarizer = summarizer
        self.repository = repository

        self.pain_points: list[dict] = []
        self.overall_summary = ""
        self.version: int | None = None
        self.last_error: str | None = None
        self.is_summarizing = False
        self._lock = threading.RLock()

        self.source = f"summary-store:{id(self)}"
        self._unsubscribers = []
        if bus is not None:
            self._unsubscribers = [
                bus.subscribe(LifecycleDataUpdated.name, self._on_external_change),
                bus.subscribe(PainPointsUpdated.name, self._on_external_change),
            ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ── State ────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "pain_points": [dict(pp) for pp in self.pain_points],
                "overallSummary": self.overall_summary,
                "version": self.version,
                "error": self.last_error,
                "is_summarizing": self.is_summarizing,
            }

    def _apply(self, summary: dict | None) -> None:
        summary = summary or {}
        self.pain_points = [dict(pp) for pp in summary.get("pain_points") or []]
        self.overall_summary = summary.get("overallSummary") or ""
        self.version = summary.get("version")

    def load_summary(self) -> dict:
        """Fetch the stored summary; none stored yet is an empty list."""
        stored = self.repository.load()
        with self._lock:
            if stored is None:
                self.pain_points = []
                self.overall_summary = ""
                self.version = 0
            else:
                self._apply(stored)
        return self.snapshot()

    def _on_external_change(self, event) -> None:
        if event.source == self.source or event.lifecycle_id != self.lifecycle_id:
            return
        try:
            self.load_summary()
        except Exception as exc:
            logger.warning("Summary reload after %s failed: %s", event.name, exc,
                           extra={"lifecycle_id": self.lifecycle_id})
            self.last_error = f"Failed to reload pain points: {exc}"

    # ── Persistence ──────────────────────────────────────────────────────

    def _publish(self, event) -> None:
        if self.bus is not None:
            self.bus.publish(event)

    def _save(self) -> bool:
        """Full-array save of the current local state. Returns success."""
        with self._lock:
            payload = {
                "pain_points": [dict(pp) for pp in self.pain_points],
                "overallSummary": self.overall_summary,
            }
            expected = self.version
        try:
            saved = self.repository.save(payload, expected_version=expected)
        except VersionConflictError as exc:
            logger.warning("Pain-point summary conflict: %s", exc,
                           extra={"lifecycle_id": self.lifecycle_id})
            self.load_summary()
            self.last_error = "Pain points were changed elsewhere and have been reloaded."
            raise
        except Exception as exc:
            logger.error("Saving pain-point summary failed: %s", exc,
                         extra={"lifecycle_id": self.lifecycle_id})
            self.last_error = f"Failed to save pain points: {exc}"
            return False
        with self._lock:
            self.version = saved.get("version", self.version)
            self.last_error = None
        return True

    # ── Summarization ────────────────────────────────────────────────────

    def update_summary(self, transcript: str, persist: bool = False) -> dict:
        """Summarize ``transcript`` and replace local state with the result.

        When ``persist`` the result is saved and, if it holds pain points,
        ``LifecycleDataUpdated`` is published.
        """
        with self._lock:
            self.is_summarizing = True
            existing = [dict(pp) for pp in self.pain_points]
        try:
            context = self.repository.context()
            result = self.summarizer.summarize(
                transcript,
                objectives=context.get("objectives"),
                process_groups=context.get("process_groups"),
                existing_pain_points=existing,
            )
        except Exception as exc:
            logger.error("Summarization failed: %s", exc,
                         extra={"lifecycle_id": self.lifecycle_id})
            with self._lock:
                self.is_summarizing = False
                self.last_error = f"Failed to summarize transcript: {exc}"
            return self.snapshot()

        with self._lock:
            self.pain_points = [dict(pp) for pp in result.get("pain_points") or []]
            self.overall_summary = result.get("overallSummary") or ""
            self.last_error = result.get("error")
            self.is_summarizing = False

        if persist and self._save() and self.pain_points:
            self._publish(LifecycleDataUpdated(lifecycle_id=self.lifecycle_id, source=self.source))
        return self.snapshot()

    # ── Optimistic edits ─────────────────────────────────────────────────

    def _index(self, pain_point_id: str) -> int:
        for index, pp in enumerate(self.pain_points):
            if pp.get("id") == pain_point_id:
                return index
        return -1

    def _require(self, pain_point_id: str) -> int:
        index = self._index(pain_point_id)
        if index < 0:
            raise NotFoundError(resource="PainPoint", resource_id=pain_point_id)
        return index

    def _commit_edit(self) -> dict:
        self._save()
        self._publish(LifecycleDataUpdated(lifecycle_id=self.lifecycle_id, source=self.source))
        return self.snapshot()

    def handle_process_group_change(self, pain_point_id: str, group_name: str) -> dict:
        with self._lock:
            index = self._require(pain_point_id)
            self.pain_points[index] = normalize_pain_point(
                {**self.pain_points[index], "assigned_process_group": group_name},
            )
        return self._commit_edit()

    def update_pain_point(self, pain_point_id: str, **fields) -> dict:
        unknown = [k for k in fields if k not in EDITABLE_FIELDS]
        if unknown:
            raise ValidationError("Unsupported pain point fields.",
                                  details={"fields": unknown, "allowed": list(EDITABLE_FIELDS)})
        with self._lock:
            index = self._require(pain_point_id)
            self.pain_points[index] = normalize_pain_point({**self.pain_points[index], **fields})
        return self._commit_edit()

    def update_objective_score(self, pain_point_id: str, obj_key: str, value) -> dict:
        if not obj_key or not obj_key.startswith(OBJECTIVE_PREFIX):
            raise ValidationError("Objective keys start with 'so_'.", details={"obj_key": obj_key})
        score = parse_int(value)
        if score is None or not 0 <= score <= MAX_OBJECTIVE_SCORE:
            raise ValidationError("Objective scores range from 0 to 3.",
                                  details={"obj_key": obj_key, "value": value})
        with self._lock:
            index = self._require(pain_point_id)
            self.pain_points[index] = {**self.pain_points[index], obj_key: score}
        snapshot = self._commit_edit()
        self._publish(PainPointsUpdated(
            lifecycle_id=self.lifecycle_id, pain_point_id=pain_point_id,
            obj_key=obj_key, new_score=score, source=self.source,
        ))
        return snapshot

    def delete_pain_point(self, pain_point_id: str) -> dict:
        """Remove one pain point; an absent id changes nothing.

        Removing an id means the same thing against any version, so a stale
        version is retried once on the reloaded summary instead of raising.
        """
        for attempt in range(2):
            with self._lock:
                index = self._index(pain_point_id)
                if index < 0:
                    return self.snapshot()
                del self.pain_points[index]
            try:
                return self._commit_edit()
            except VersionConflictError:
                if attempt:
                    raise
