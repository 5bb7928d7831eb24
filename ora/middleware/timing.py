"""
Request timing middleware.

Records request duration and logs slow requests.
Adds X-Request-ID and X-Request-Duration-Ms headers to all responses.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Endpoints excluded from timing logs (high frequency, low value)
_SKIP_LOG = frozenset({"/api/health", "/api/health/ready", "/api/health/live"})

# Slow request threshold (ms). Summarize calls go through an LLM and are
# expected to be slower than CRUD.
SLOW_THRESHOLD_MS = 1000
SLOW_THRESHOLD_AI_MS = 15000

_AI_PATHS = ("/api/summarize", "/api/tenants/by-slug/workspaces/scans/pain-points/chat")


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        if request.path in _SKIP_LOG or request.path.startswith("/static"):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": getattr(g, "request_id", ""),
            "tenant_slug": request.args.get("slug") or getattr(g, "tenant_slug", None),
            "scan_id": request.args.get("scan_id"),
            "lifecycle_id": request.args.get("lifecycle_id"),
        }
        threshold = SLOW_THRESHOLD_AI_MS if request.path.startswith(_AI_PATHS) else SLOW_THRESHOLD_MS
        if duration_ms > threshold:
            logger.warning("Slow request: %s %s %d (%.0fms)",
                           request.method, request.path,
                           response.status_code, duration_ms, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)
        else:
            logger.debug("Request: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)

        return response
