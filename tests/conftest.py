"""
Shared pytest fixtures for the Ora Scan Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - interview_registry: Session registry with a manual timer scheduler (autouse)
    - client: Flask test client (function-scoped)
    - tenant / workspace / scan / lifecycle / scope: Pre-created scan hierarchy
    - fake_scheduler / fake_clock: deterministic timers for engine and bus tests
"""

import os

import pytest

from ora import create_app
from ora.models import db as _db
from ora.services import lifecycle_service, tenant_service

# The local stub provider answers every LLM call in tests.
for _key in ("GEMINI_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
    os.environ.pop(_key, None)
os.environ.pop("API_AUTH_ENABLED", None)


PROCESS_TREE = {
    "process_categories": [
        {
            "name": "Plan",
            "description": "Planning activities",
            "score": 0,
            "process_groups": [
                {"name": "Demand Planning", "description": "Forecast demand", "score": 0, "processes": []},
                {"name": "Budgeting", "description": "Allocate budgets", "score": 0, "processes": []},
            ],
        },
        {
            "name": "Execute",
            "description": "Day-to-day execution",
            "score": 0,
            "process_groups": [
                {"name": "Order Handling", "description": "Capture orders", "score": 0, "processes": []},
            ],
        },
    ],
}

OBJECTIVES = [
    {"name": "Customer Satisfaction", "description": "Happier customers"},
    {"name": "Cost Reduction", "description": "Lower operating cost"},
]


# ── Timers ───────────────────────────────────────────────────────────────


class FakeHandle:
    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Collects ``call_later`` requests; tests fire them with ``run_pending``."""

    def __init__(self):
        self.handles = []

    def call_later(self, delay, fn):
        handle = FakeHandle(delay, fn)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def run_pending(self, delay=None):
        """Fire every pending handle (optionally only those with ``delay``)."""
        due = [h for h in self.pending if delay is None or h.delay == delay]
        self.handles = [h for h in self.handles if h not in due and not h.cancelled]
        for handle in due:
            handle.fn()
        return len(due)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture(autouse=True)
def interview_registry(app, session):
    """Live sessions use a manual scheduler and are dropped after each test."""
    registry = app.extensions["interview_sessions"]
    registry.scheduler = FakeScheduler()
    yield registry
    with registry._lock:
        sessions = list(registry._sessions.values())
        registry._sessions.clear()
    for live in sessions:
        live.store.close()
    app.extensions.get("interview_panels", {}).clear()
    app.extensions["panel_context"].navigate("/")


@pytest.fixture()
def fake_scheduler(interview_registry):
    return interview_registry.scheduler


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Scan hierarchy ───────────────────────────────────────────────────────


@pytest.fixture()
def tenant():
    return tenant_service.create_tenant({"name": "Acme Corp"})


@pytest.fixture()
def workspace(tenant):
    return tenant_service.create_workspace(tenant["slug"], {"name": "Transformation 2026"})


@pytest.fixture()
def scan(tenant, workspace):
    scan = tenant_service.create_scan(tenant["slug"], workspace["id"], {
        "name": "Acme Scan",
        "industry": "Manufacturing",
        "country": "Netherlands",
    })
    tenant_service.update_strategic_objectives(tenant["slug"], workspace["id"], scan["id"], OBJECTIVES)
    return scan


@pytest.fixture()
def lifecycle(tenant, workspace, scan):
    return lifecycle_service.create_lifecycle(tenant["slug"], workspace["id"], scan["id"], {
        "name": "Order to Cash",
        "description": "From order to payment",
        "processes": PROCESS_TREE,
    })


@pytest.fixture()
def scope(tenant, workspace, scan, lifecycle):
    """Full lifecycle scope as the services and the interview layer take it."""
    return {
        "slug": tenant["slug"],
        "workspace_id": workspace["id"],
        "scan_id": scan["id"],
        "lifecycle_id": lifecycle["id"],
    }


@pytest.fixture()
def query(scope):
    """Scope as query-string parameters for the API."""
    return dict(scope)
