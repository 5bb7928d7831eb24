"""
Health checks (no auth).

    GET /api/health        app name
    GET /api/health/ready  load balancer readiness
    GET /api/health/live   database, Redis and live interview recordings

``live`` answers 503 only when the database is unreachable. Redis backs the
rate limiter alone, so a Redis failure is reported but does not degrade.
"""

import logging
import time

import redis as redis_lib
from flask import Blueprint, current_app, jsonify

from ora.models import db

logger = logging.getLogger(__name__)

APP_NAME = "Ora Scan Platform"

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


def _timed(check):
    """Run ``check()`` and return its latency in milliseconds."""
    started = time.perf_counter()
    check()
    return round((time.perf_counter() - started) * 1000, 1)


def _database_check() -> dict:
    try:
        latency = _timed(lambda: db.session.execute(db.text("SELECT 1")))
    except Exception as exc:
        db.session.rollback()
        logger.error("Liveness check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": latency}


def _redis_check(redis_url: str) -> dict:
    if not redis_url.startswith("redis"):
        return {"status": "skipped", "detail": "no REDIS_URL configured"}
    try:
        client = redis_lib.from_url(redis_url, socket_timeout=2)
        latency = _timed(client.ping)
    except redis_lib.RedisError as exc:
        logger.warning("Liveness check: redis unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": latency}


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": APP_NAME}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    registry = current_app.extensions.get("interview_sessions")
    checks = {
        "database": _database_check(),
        "redis": _redis_check(current_app.config.get("REDIS_URL") or ""),
        "interview": {
            "status": "ok",
            "active_recordings": registry.active_count() if registry is not None else 0,
        },
        "app": {"name": APP_NAME, "debug": current_app.debug, "testing": current_app.testing},
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
