"""
Ora Scan Platform
Cross-panel event bus.

Panels that share no state owner (assistant panel, lifecycle viewer,
interview panel) are notified of data changes through one explicit
publish/subscribe bus per application, injected where it is needed.

Event variants (``name`` → payload):
    - DocumentChanged       ora-document-change    {action, document, scanId}
    - LifecycleChanged      ora-lifecycle-change   {action, count, scanId}
    - LifecycleDataUpdated  lifecycle-data-updated {lifecycleId, timestamp}
    - ContextChanged        ora-context-change     {context, lifecycleId, lifecycleName}
    - PainPointsUpdated     pain-points-updated    {lifecycleId, painPointId, objKey,
                                                    newScore, timestamp}

Delivery is synchronous and in subscription order. Subscribers should
re-fetch state rather than trust payload completeness; payloads carry ids
and counts only.

Coalescing: an event with a ``coalesce_key`` is dropped when the same
(name, key) was published less than the configured window ago, so a burst
of identical notifications reaches subscribers once.

Usage:
    from ora.events import LifecycleDataUpdated, get_event_bus

    bus = get_event_bus()
    unsubscribe = bus.subscribe(LifecycleDataUpdated.name, handler)
    bus.publish(LifecycleDataUpdated(lifecycle_id=lc_id))
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, ClassVar

from flask import current_app

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


# ── Event variants ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Event:
    """Base for tagged event variants."""

    name: ClassVar[str] = ""
    # Publisher identity; subscribers can ignore their own events.
    source: str | None = field(default=None, compare=False, kw_only=True)

    def coalesce_key(self) -> str | None:
        return None

    def to_payload(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class DocumentChanged(Event):
    name: ClassVar[str] = "ora-document-change"
    ACTIONS: ClassVar[frozenset] = frozenset({"added", "removed", "status_changed"})

    action: str
    document: dict
    scan_id: str

    def __post_init__(self):
        if self.action not in self.ACTIONS:
            raise ValueError(f"Unknown document action: {self.action}")

    def to_payload(self) -> dict:
        return {"action": self.action, "document": self.document, "scanId": self.scan_id}


@dataclass(frozen=True)
class LifecycleChanged(Event):
    name: ClassVar[str] = "ora-lifecycle-change"

    action: str
    count: int
    scan_id: str

    def coalesce_key(self) -> str | None:
        return self.scan_id

    def to_payload(self) -> dict:
        return {"action": self.action, "count": self.count, "scanId": self.scan_id}


@dataclass(frozen=True)
class LifecycleDataUpdated(Event):
    name: ClassVar[str] = "lifecycle-data-updated"

    lifecycle_id: str
    timestamp: int = field(default_factory=_now_ms)

    def to_payload(self) -> dict:
        return {"lifecycleId": self.lifecycle_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ContextChanged(Event):
    name: ClassVar[str] = "ora-context-change"

    context: str
    lifecycle_id: str | None = None
    lifecycle_name: str | None = None

    def to_payload(self) -> dict:
        return {
            "context": self.context,
            "lifecycleId": self.lifecycle_id,
            "lifecycleName": self.lifecycle_name,
        }


@dataclass(frozen=True)
class PainPointsUpdated(Event):
    name: ClassVar[str] = "pain-points-updated"

    lifecycle_id: str
    pain_point_id: str | None = None
    obj_key: str | None = None
    new_score: int | None = None
    timestamp: int = field(default_factory=_now_ms)

    def to_payload(self) -> dict:
        return {
            "lifecycleId": self.lifecycle_id,
            "painPointId": self.pain_point_id,
            "objKey": self.obj_key,
            "newScore": self.new_score,
            "timestamp": self.timestamp,
        }


EVENT_TYPES = {
    cls.name: cls
    for cls in (DocumentChanged, LifecycleChanged, LifecycleDataUpdated,
                ContextChanged, PainPointsUpdated)
}

Handler = Callable[[Event], None]


# ── Bus ──────────────────────────────────────────────────────────────────────


class EventBus:
    """Synchronous in-process publish/subscribe channel with coalescing.

    Args:
        coalesce_windows: {event name: seconds} default windows for events
            that define a ``coalesce_key``.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(self, coalesce_windows: dict[str, float] | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._windows = dict(coalesce_windows or {})
        self._last_published: dict[tuple[str, str], float] = {}
        self._max_window = max(self._windows.values(), default=0)
        self._clock = clock
        self._lock = threading.RLock()

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for events called ``name``.

        Returns:
            A callable that removes the subscription. Calling it twice is safe.
        """
        if name not in EVENT_TYPES:
            raise ValueError(f"Unknown event name: {name}")
        with self._lock:
            self._subscribers[name].append(handler)

        def unsubscribe():
            self.unsubscribe(name, handler)

        return unsubscribe

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._subscribers.get(name, []))

    def publish(self, event: Event, *, coalesce_window: float | None = None) -> bool:
        """Deliver ``event`` to its subscribers.

        Args:
            event: Event variant instance.
            coalesce_window: Override of the default window for this publish.

        Returns:
            False when the event was coalesced into an earlier one, else True.
        """
        key = event.coalesce_key()
        with self._lock:
            if key is not None:
                window = coalesce_window if coalesce_window is not None else self._windows.get(event.name, 0)
                now = self._clock()
                last = self._last_published.get((event.name, key))
                if window and last is not None and now - last < window:
                    logger.debug(
                        "Coalesced %s for key %s", event.name, key,
                        extra={"event_type": event.name},
                    )
                    return False
                self._last_published[(event.name, key)] = now
                self._max_window = max(self._max_window, window or 0)
                self._prune(now)
            handlers = list(self._subscribers.get(event.name, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed for %s", event.name,
                    extra={"event_type": event.name},
                )
        return True

    def _prune(self, now: float) -> None:
        """Forget keys whose last publish is older than every window."""
        expired = [k for k, at in self._last_published.items() if now - at >= self._max_window]
        for k in expired:
            del self._last_published[k]

    def clear(self) -> None:
        """Drop all subscriptions and coalescing state."""
        with self._lock:
            self._subscribers.clear()
            self._last_published.clear()


def init_event_bus(app) -> EventBus:
    """Create the application's bus and store it in ``app.extensions``."""
    bus = EventBus(coalesce_windows={
        LifecycleChanged.name: app.config.get("LIFECYCLE_EVENT_COALESCE_SECONDS", 5),
    })
    app.extensions["event_bus"] = bus
    return bus


def get_event_bus() -> EventBus:
    """Return the current application's bus."""
    return current_app.extensions["event_bus"]
