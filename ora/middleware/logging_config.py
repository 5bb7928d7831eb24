"""
Structured logging configuration.

- Development: human-readable colored lines with the scan scope appended
- Production: one JSON object per line (log aggregator compatible)
- LOG_LEVEL sets the level; LOG_FORMAT=json|readable overrides the format

Log calls pass scope identifiers through ``extra=`` (``tenant_slug``,
``scan_id``, ``lifecycle_id``). ``RequestContextFilter`` fills in the request
id and tenant slug of the current request when the caller did not, so
interview timer threads (no request context) log only what they pass.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone

from flask import g, has_request_context

# Fields copied from the record into JSON lines, in this order.
CONTEXT_FIELDS = (
    "request_id",
    "tenant_slug",
    "workspace_id",
    "scan_id",
    "lifecycle_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "event_type",
)

# Scope fields shown at the end of a readable line.
_SCOPE_LABELS = (("tenant_slug", "tenant"), ("scan_id", "scan"), ("lifecycle_id", "lifecycle"))


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` / ``tenant_slug`` from ``g`` onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "tenant_slug", None) is None:
                record.tenant_slug = getattr(g, "tenant_slug", None)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName != threading.main_thread().name:
            log_entry["thread"] = record.threadName
        for key in CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        scope = " ".join(
            f"{label}={getattr(record, key)}"
            for key, label in _SCOPE_LABELS if getattr(record, key, None)
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if scope:
            line += f" [{scope}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    fmt = os.getenv("LOG_FORMAT", "").lower()
    if fmt in ("json", "readable"):
        return fmt == "json"
    return not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG otherwise. The root
    handlers are replaced, so creating several apps (tests) never stacks them.
    """
    as_json = _use_json(app)
    default_level = "INFO" if as_json else "DEBUG"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # LLM SDKs and HTTP clients log every request at INFO.
    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "anthropic", "openai", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if as_json else "readable")
