"""
Ora Scan Platform
Flask Application Factory.

Usage:
    from ora import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import atexit
import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from ora.auth import init_auth
from ora.config import config
from ora.events import init_event_bus
from ora.interview.engine import init_interview
from ora.interview.panel import PanelContextTracker
from ora.middleware.logging_config import configure_logging
from ora.middleware.rate_limiter import init_rate_limits
from ora.middleware.tenant_context import init_tenant_context
from ora.middleware.timing import init_request_timing
from ora.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Authentication & Content-Type guard ──────────────────────────────
    init_auth(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Tenant context middleware (sets g.tenant from the slug) ──────────
    init_tenant_context(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Event bus + interview sessions ───────────────────────────────────
    bus = init_event_bus(app)
    app.extensions["panel_context"] = PanelContextTracker(bus)
    registry = init_interview(app)
    atexit.register(registry.shutdown)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ora.blueprints.ai_bp import ai_bp
    from ora.blueprints.documents_bp import documents_bp
    from ora.blueprints.health_bp import health_bp
    from ora.blueprints.insights_bp import insights_bp
    from ora.blueprints.interview_bp import interview_bp
    from ora.blueprints.lifecycles_bp import lifecycles_bp
    from ora.blueprints.pain_points_bp import pain_points_bp
    from ora.blueprints.scenario_bp import scenario_bp
    from ora.blueprints.tenants_bp import tenants_bp

    app.register_blueprint(tenants_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(lifecycles_bp)
    app.register_blueprint(insights_bp)
    app.register_blueprint(pain_points_bp)
    app.register_blueprint(interview_bp)
    app.register_blueprint(scenario_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("init-db")
    def init_db_cmd():
        """Create all tables (development without migrations)."""
        db.create_all()
        logger.info("Database tables created.")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404
        return {"error": "Not found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
