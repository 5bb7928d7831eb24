"""
Tests — log formatting and request-context stamping.

Covers:
  - RequestContextFilter: g.request_id / g.tenant_slug copied onto records
  - JSONFormatter: context fields, thread name, exception text
  - ReadableFormatter: scope suffix and duration
  - LOG_FORMAT override
"""

import json
import logging
import sys

from flask import g

from ora.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
    _use_json,
)


def _record(msg="hello", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord("ora.test", level, __file__, 1, msg, None, exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:
    def test_stamps_from_g(self, app):
        with app.test_request_context("/api/tenants"):
            g.request_id = "req-1"
            g.tenant_slug = "acme"
            record = _record()
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "req-1"
        assert record.tenant_slug == "acme"

    def test_explicit_extra_wins(self, app):
        with app.test_request_context("/api/tenants"):
            g.tenant_slug = "acme"
            record = _record(tenant_slug="globex")
            RequestContextFilter().filter(record)
        assert record.tenant_slug == "globex"

    def test_outside_request_leaves_record_alone(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "request_id")


class TestJSONFormatter:
    def test_fields(self):
        line = JSONFormatter().format(_record(scan_id="s1", lifecycle_id="l1", status=None))
        entry = json.loads(line)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "ora.test"
        assert entry["message"] == "hello"
        assert entry["scan_id"] == "s1"
        assert entry["lifecycle_id"] == "l1"
        assert "status" not in entry
        assert "thread" not in entry

    def test_names_worker_threads(self):
        record = _record()
        record.threadName = "interview-timer"
        assert json.loads(JSONFormatter().format(record))["thread"] == "interview-timer"

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(level=logging.ERROR, exc_info=sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestReadableFormatter:
    def test_scope_and_duration(self):
        line = ReadableFormatter().format(
            _record(tenant_slug="acme", lifecycle_id="l1", duration_ms=12.4)
        )
        assert "ora.test: hello" in line
        assert line.endswith("[tenant=acme lifecycle=l1] (12ms)")

    def test_plain(self):
        line = ReadableFormatter().format(_record())
        assert "[" not in line.split("hello", 1)[1]


class TestLogFormat:
    def test_testing_defaults_to_readable(self, app, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        assert _use_json(app) is False

    def test_env_override(self, app, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        assert _use_json(app) is True
