"""
Ora Scan Platform
Live Transcription Engine — one recording session per lifecycle.

State machine: IDLE → RECORDING → STOPPING → IDLE.

While recording, a one-shot summary runs ``INITIAL_SUMMARY_DELAY_SECONDS``
after start and a ``RecurringTask`` ticks every ``SUMMARY_INTERVAL_SECONDS``:
it summarizes without persisting and saves the transcript. The task only
reschedules itself while the session is still recording, and stop/cancel
cancel the pending timer handle.

A timer callback may already be running when the session stops or resets.
Each recording gets a generation number; stop, cancel and reset move to a
new one, and a callback of an older generation neither replaces the summary
nor writes the transcript. Summaries are serialized, so the final persisted
summary of a stop always lands after an in-flight tick.

The browser owns the microphone and the speech SDK; recognised utterances
reach the session through ``PushRecognizer.push`` (the interview API).
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from flask import current_app

from ora.ai.factory import get_summarizer
from ora.core.exceptions import ConflictError, RecordingError, VersionConflictError
from ora.events import get_event_bus
from ora.interview.repository import SummaryRepository, TranscriptRepository
from ora.interview.store import PainPointSummaryStore
from ora.services.transcription_service import append_utterance, format_utterance

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


# ═════════════════════════════════════════════════════════════════════════════
# Speech recognizers
# ═════════════════════════════════════════════════════════════════════════════


class SpeechRecognizer(Protocol):
    def start(self, on_recognized: Callable[[str], None],
              on_canceled: Callable[[str, str | None], None]) -> None: ...

    def stop(self) -> None: ...


class PushRecognizer:
    """Recognizer fed from outside (the browser posts each utterance).

    ``available`` / ``permission_granted`` model the capability and
    microphone-permission checks the client reports before starting.
    """

    def __init__(self, available: bool = True, permission_granted: bool = True):
        self.available = available
        self.permission_granted = permission_granted
        self._on_recognized = None
        self._on_canceled = None

    @property
    def active(self) -> bool:
        return self._on_recognized is not None

    def start(self, on_recognized, on_canceled) -> None:
        if not self.available:
            raise RecordingError("Speech recognition is not available in this browser.",
                                 code="unsupported")
        if not self.permission_granted:
            raise RecordingError("Microphone permission was denied.", code="permission_denied")
        self._on_recognized = on_recognized
        self._on_canceled = on_canceled

    def stop(self) -> None:
        self._on_recognized = None
        self._on_canceled = None

    def push(self, text: str) -> None:
        if self._on_recognized is None:
            raise RecordingError("No active recording session.", code="inactive")
        self._on_recognized(text)

    def cancel(self, details: str, code: str | None = None) -> None:
        callback = self._on_canceled
        self.stop()
        if callback is not None:
            callback(details, code)


# ═════════════════════════════════════════════════════════════════════════════
# Timers
# ═════════════════════════════════════════════════════════════════════════════


class TimerScheduler:
    """``call_later`` on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, fn: Callable[[], None]):
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer


class RecurringTask:
    """Cancellable chain of one-shot timers.

    ``fn`` runs every ``interval`` seconds; the next run is scheduled only
    after ``fn`` returns and only while ``should_continue()`` holds.
    """

    def __init__(self, scheduler, interval: float, fn: Callable[[], None],
                 should_continue: Callable[[], bool]):
        self.scheduler = scheduler
        self.interval = interval
        self.fn = fn
        self.should_continue = should_continue
        self._handle = None
        self._cancelled = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self._cancelled = False
            self._schedule()

    def _schedule(self) -> None:
        self._handle = self.scheduler.call_later(self.interval, self._tick)

    def _tick(self) -> None:
        if self._cancelled or not self.should_continue():
            return
        try:
            self.fn()
        except Exception:
            logger.exception("Recurring interview task failed")
        with self._lock:
            if not self._cancelled and self.should_continue():
                self._schedule()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None


class ResetGuard:
    """Per-lifecycle flag, valid for ``window`` seconds after a reset.

    While active, loading a session does not resurrect the stored transcript.
    """

    def __init__(self, window: float = 300, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self.clock = clock
        self._armed: dict[str, float] = {}
        self._lock = threading.Lock()

    def arm(self, lifecycle_id: str) -> None:
        with self._lock:
            self._armed[lifecycle_id] = self.clock()

    def is_active(self, lifecycle_id: str) -> bool:
        with self._lock:
            armed_at = self._armed.get(lifecycle_id)
            if armed_at is None:
                return False
            if self.clock() - armed_at >= self.window:
                del self._armed[lifecycle_id]
                return False
            return True

    def clear(self, lifecycle_id: str) -> None:
        with self._lock:
            self._armed.pop(lifecycle_id, None)


# ═════════════════════════════════════════════════════════════════════════════
# Session
# ═════════════════════════════════════════════════════════════════════════════


class InterviewSession:
    """
    Recording session of one lifecycle.

    Args:
        lifecycle_id: Lifecycle being interviewed.
        store: ``PainPointSummaryStore`` of the lifecycle.
        transcripts: ``TranscriptRepository`` (load/save/delete).
        recognizer: ``SpeechRecognizer``; defaults to a ``PushRecognizer``.
        scheduler: Object with ``call_later(delay, fn)`` returning a handle
            with ``cancel()``.
        reset_guard: Shared ``ResetGuard``.
    """

    def __init__(self, lifecycle_id: str, store, transcripts, recognizer=None,
                 scheduler=None, reset_guard: ResetGuard | None = None,
                 summary_interval: float = 30, initial_delay: float = 10,
                 clock: Callable[[], datetime] = datetime.now):
        self.lifecycle_id = lifecycle_id
        self.store = store
        self.transcripts = transcripts
        self.recognizer = recognizer or PushRecognizer()
        self.scheduler = scheduler or TimerScheduler()
        self.reset_guard = reset_guard or ResetGuard()
        self.summary_interval = summary_interval
        self.initial_delay = initial_delay
        self.clock = clock

        self.state = SessionState.IDLE
        self.transcript = ""
        self.error: str | None = None
        self._initial_handle = None
        self._task: RecurringTask | None = None
        self._generation = 0
        self._lock = threading.RLock()
        self._summary_lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        return self.state == SessionState.RECORDING

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return self.is_recording and generation == self._generation

    def _log_extra(self) -> dict:
        return {"lifecycle_id": self.lifecycle_id}

    # ── Load / persist ───────────────────────────────────────────────────

    def load(self) -> str:
        """Load the stored transcript unless a recent reset guards it."""
        if self.reset_guard.is_active(self.lifecycle_id):
            logger.info("Transcript reset recently; not reloading", extra=self._log_extra())
            return self.transcript
        stored = self.transcripts.load()
        with self._lock:
            if stored is not None and not self.is_recording:
                self.transcript = stored
        return self.transcript

    def persist_transcript(self) -> bool:
        with self._lock:
            text = self.transcript
        if not text:
            return False
        try:
            self.transcripts.save(text)
        except Exception as exc:
            logger.error("Saving transcript failed: %s", exc, extra=self._log_extra())
            self.error = f"Failed to save transcript: {exc}"
            return False
        return True

    # ── Recording ────────────────────────────────────────────────────────

    def start_recording(self) -> None:
        with self._lock:
            if self.state != SessionState.IDLE:
                raise ConflictError("InterviewSession", "lifecycle_id", self.lifecycle_id)
            self.error = None
            try:
                self.recognizer.start(self.on_utterance, self.on_canceled)
            except RecordingError as exc:
                self.state = SessionState.IDLE
                self.error = str(exc)
                raise
            except Exception as exc:
                self.state = SessionState.IDLE
                self.error = f"Failed to start recording: {exc}"
                raise RecordingError(self.error) from exc

            self.state = SessionState.RECORDING
            generation = self._next_generation()
            self.reset_guard.clear(self.lifecycle_id)
            self._initial_handle = self.scheduler.call_later(
                self.initial_delay, lambda: self._initial_summary(generation),
            )
            self._task = RecurringTask(
                self.scheduler, self.summary_interval, lambda: self._tick(generation),
                should_continue=lambda: self._is_current(generation),
            )
            self._task.start()
        logger.info("Recording started", extra=self._log_extra())

    def on_utterance(self, text: str) -> None:
        if not text or not text.strip():
            return
        line = format_utterance(text, self.clock())
        with self._lock:
            self.transcript = append_utterance(self.transcript, line)

    def _summarize(self, persist: bool, generation: int | None = None) -> bool:
        """Summarize the current transcript.

        With a ``generation`` nothing happens unless that recording is still
        the live one. Returns whether the summary ran.
        """
        with self._summary_lock:
            if generation is not None and not self._is_current(generation):
                return False
            with self._lock:
                text = self.transcript
            if not text.strip():
                return False
            self.store.update_summary(text, persist=persist)
            return True

    def _initial_summary(self, generation: int) -> None:
        with self._lock:
            if generation == self._generation:
                self._initial_handle = None
        try:
            self._summarize(persist=False, generation=generation)
        except Exception:
            logger.exception("Initial interview summary failed", extra=self._log_extra())

    def _tick(self, generation: int) -> None:
        self._summarize(persist=False, generation=generation)
        # Check and save under one lock so a reset cannot slip in between.
        with self._lock:
            if generation == self._generation:
                self.persist_transcript()

    def _cancel_timers(self) -> None:
        if self._initial_handle is not None:
            self._initial_handle.cancel()
            self._initial_handle = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def stop_recording(self) -> None:
        """Stop, force one persisted summary and save the final transcript.

        The transcript is saved even when the summary save fails. A summary
        changed elsewhere in the meantime wins: the store keeps the reloaded
        version and the conflict is reported in ``error``.
        """
        with self._lock:
            if self.state != SessionState.RECORDING:
                return
            self.state = SessionState.STOPPING
            self._next_generation()
            self._cancel_timers()
        try:
            self.recognizer.stop()
            self._summarize(persist=True)
        except VersionConflictError as exc:
            logger.warning("Final summary not saved: %s", exc, extra=self._log_extra())
            with self._lock:
                self.error = "Pain points were changed elsewhere; the final summary was not saved."
        finally:
            self.persist_transcript()
            with self._lock:
                self.state = SessionState.IDLE
        logger.info("Recording stopped", extra=self._log_extra())

    def on_canceled(self, details: str, code: str | None = None) -> None:
        """Recognition canceled mid-session; keep whatever was captured."""
        with self._lock:
            self.error = f"Speech recognition canceled: {details}"
            if code is not None:
                self.error += f" (code {code})"
            self._next_generation()
            self._cancel_timers()
            self.state = SessionState.IDLE
        logger.warning("Recording canceled: %s", details, extra=self._log_extra())
        self.persist_transcript()

    def reset_transcript(self) -> bool:
        """Stop without summarizing, delete the stored transcript, arm the guard.

        Returns whether a stored transcript was deleted.
        """
        with self._lock:
            self._next_generation()
            if self.state != SessionState.IDLE:
                self._cancel_timers()
                self.recognizer.stop()
                self.state = SessionState.IDLE
            self.transcript = ""
            self.error = None
        self.reset_guard.arm(self.lifecycle_id)
        deleted = self.transcripts.delete()
        logger.info("Transcript reset", extra=self._log_extra())
        return bool(deleted)

    def close(self) -> None:
        """Stop recording if needed and release the store subscriptions."""
        if self.is_recording:
            self.stop_recording()
        else:
            self.persist_transcript()
        self.store.close()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "lifecycle_id": self.lifecycle_id,
                "state": self.state.value,
                "is_recording": self.is_recording,
                "transcript": self.transcript,
                "error": self.error,
            }


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════


class InterviewSessionRegistry:
    """
    Live interview sessions of the application, one per lifecycle.

    Args:
        session_factory: Callable(scope) → InterviewSession.
        scheduler: Timer scheduler handed to new sessions.
    """

    def __init__(self, session_factory: Callable[[dict], InterviewSession],
                 reset_guard: ResetGuard | None = None, scheduler=None):
        self.session_factory = session_factory
        self.reset_guard = reset_guard or ResetGuard()
        self.scheduler = scheduler or TimerScheduler()
        self._sessions: dict[str, InterviewSession] = {}
        self._lock = threading.Lock()

    def get(self, lifecycle_id: str) -> InterviewSession | None:
        with self._lock:
            return self._sessions.get(lifecycle_id)

    def get_or_create(self, scope: dict) -> InterviewSession:
        lifecycle_id = scope["lifecycle_id"]
        with self._lock:
            session = self._sessions.get(lifecycle_id)
            if session is None:
                session = self.session_factory(scope)
                self._sessions[lifecycle_id] = session
                created = True
            else:
                created = False
        if created:
            session.store.load_summary()
            session.load()
        return session

    def start(self, scope: dict) -> InterviewSession:
        """Start recording; a second start on the same lifecycle is a 409."""
        session = self.get_or_create(scope)
        session.start_recording()
        return session

    def discard(self, lifecycle_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(lifecycle_id, None)
        if session is None:
            return False
        session.close()
        return True

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.is_recording)

    def shutdown(self) -> None:
        with self._lock:
            ids = list(self._sessions)
        for lifecycle_id in ids:
            self.discard(lifecycle_id)


def init_interview(app) -> InterviewSessionRegistry:
    """Build the session registry and store it in ``app.extensions``."""
    guard = ResetGuard(window=app.config.get("TRANSCRIPT_RESET_WINDOW_SECONDS", 300))

    def session_factory(scope: dict) -> InterviewSession:
        # Called inside a request context.
        store = PainPointSummaryStore(
            scope, get_event_bus(), get_summarizer(), SummaryRepository(app, scope),
        )
        return InterviewSession(
            scope["lifecycle_id"], store, TranscriptRepository(app, scope),
            scheduler=registry.scheduler,
            reset_guard=guard,
            summary_interval=app.config.get("SUMMARY_INTERVAL_SECONDS", 30),
            initial_delay=app.config.get("INITIAL_SUMMARY_DELAY_SECONDS", 10),
        )

    registry = InterviewSessionRegistry(session_factory, reset_guard=guard)
    app.extensions["interview_sessions"] = registry
    return registry


def get_registry() -> InterviewSessionRegistry:
    return current_app.extensions["interview_sessions"]
