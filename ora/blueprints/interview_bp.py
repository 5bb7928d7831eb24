"""
Ora Scan Platform
Interview Blueprint — live interview sessions of a lifecycle.

The browser owns the microphone and the speech SDK; it drives the server
session with commands and pushes every recognised utterance.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    GET  /interview            — Panel snapshot (lanes, transcript, pain points, errors)
    POST /interview            — Command {command, ...}
    GET  /interview/viewer     — Lifecycle viewer snapshot (score tree)
    GET  /interview/context    — Assistant panel context (?path= re-resolves it)

Commands:
    start {capabilities?}         stop                 utterance {text}
    cancel {details, code?}       reset                summarize {persist?}
    toggle_lane {lane}            ask {query}          open_context
    change_group {pain_point_id, group}
    update_pain_point {pain_point_id, fields}
    update_objective_score {pain_point_id, obj_key, value}
    delete_pain_point {pain_point_id}
    close
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from ora.ai.factory import get_chat_assistant
from ora.blueprints import json_body, register_error_handlers, require_scope
from ora.events import get_event_bus
from ora.interview.engine import PushRecognizer, get_registry
from ora.interview.panel import InterviewPanel
from ora.interview.repository import SummaryRepository
from ora.interview.viewer import LifecycleViewer
from ora.services import tenant_service
from ora.utils.errors import E, api_error

logger = logging.getLogger(__name__)

interview_bp = Blueprint("interview", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(interview_bp)

LIFECYCLE_SCOPE = ("slug", "workspace_id", "scan_id", "lifecycle_id")


def _panels() -> dict:
    return current_app.extensions.setdefault("interview_panels", {})


def _panel(scope: dict) -> InterviewPanel:
    # Resolving the lifecycle first keeps sessions scoped to the tenant chain.
    tenant_service.get_lifecycle(scope["slug"], scope["workspace_id"],
                                 scope["scan_id"], scope["lifecycle_id"])
    session = get_registry().get_or_create(scope)
    panels = _panels()
    panel = panels.get(scope["lifecycle_id"])
    if panel is None or panel.session is not session:
        app = current_app._get_current_object()
        panel = InterviewPanel(
            session, get_chat_assistant(), SummaryRepository(app, scope), app=app,
        )
        panels[scope["lifecycle_id"]] = panel
    return panel


def _required(data: dict, *keys: str):
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing required field(s): {', '.join(missing)}",
                         details={k: "required" for k in missing})
    return None


@interview_bp.route("/interview", methods=["GET"])
def interview_state():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    return jsonify(_panel(scope).snapshot()), 200


@interview_bp.route("/interview", methods=["POST"])
def interview_command():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    command = data.get("command")
    panel = _panel(scope)
    session = panel.session
    store = panel.store
    extra = {"tenant_slug": scope["slug"], "lifecycle_id": scope["lifecycle_id"]}

    if command == "start":
        capabilities = data.get("capabilities") or {}
        if isinstance(session.recognizer, PushRecognizer):
            session.recognizer.available = capabilities.get("available", True)
            session.recognizer.permission_granted = capabilities.get("permission_granted", True)
        get_registry().start(scope)
        logger.info("Interview recording started", extra=extra)

    elif command == "stop":
        session.stop_recording()

    elif command == "utterance":
        err = _required(data, "text")
        if err:
            return err
        session.recognizer.push(str(data["text"]))

    elif command == "cancel":
        session.recognizer.cancel(data.get("details") or "Canceled", data.get("code"))

    elif command == "reset":
        session.reset_transcript()

    elif command == "summarize":
        store.update_summary(session.transcript, persist=bool(data.get("persist")))

    elif command == "toggle_lane":
        err = _required(data, "lane")
        if err:
            return err
        try:
            panel.toggle_lane(data["lane"])
        except ValueError as exc:
            return api_error(E.VALIDATION_INVALID, str(exc))

    elif command == "ask":
        err = _required(data, "query")
        if err:
            return err
        result = panel.ask(str(data["query"]))
        if result.get("error"):
            return api_error(E.UPSTREAM, result["error"])

    elif command == "open_context":
        viewer = LifecycleViewer(scope, get_event_bus(), store, app=current_app._get_current_object())
        try:
            viewer.load(reload_summary=not session.is_recording)
            viewer.open_pain_point_context()
        finally:
            viewer.close()

    elif command == "change_group":
        err = _required(data, "pain_point_id", "group")
        if err:
            return err
        store.handle_process_group_change(data["pain_point_id"], data["group"])

    elif command == "update_pain_point":
        err = _required(data, "pain_point_id")
        if err:
            return err
        store.update_pain_point(data["pain_point_id"], **(data.get("fields") or {}))

    elif command == "update_objective_score":
        err = _required(data, "pain_point_id", "obj_key", "value")
        if err:
            return err
        store.update_objective_score(data["pain_point_id"], data["obj_key"], data["value"])

    elif command == "delete_pain_point":
        err = _required(data, "pain_point_id")
        if err:
            return err
        store.delete_pain_point(data["pain_point_id"])

    elif command == "close":
        _panels().pop(scope["lifecycle_id"], None)
        get_registry().discard(scope["lifecycle_id"])
        return jsonify({"message": "Interview session closed"}), 200

    else:
        return api_error(E.VALIDATION_INVALID, "Unknown interview command",
                         details={"command": command})

    return jsonify(panel.snapshot()), 200


@interview_bp.route("/interview/viewer", methods=["GET"])
def viewer_state():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    panel = _panel(scope)
    viewer = LifecycleViewer(scope, get_event_bus(), panel.store, app=current_app._get_current_object())
    try:
        # A recording session holds a summary that is not saved yet.
        viewer.load(reload_summary=not panel.session.is_recording)
        return jsonify(viewer.snapshot()), 200
    finally:
        viewer.close()


@interview_bp.route("/interview/context", methods=["GET"])
def panel_context():
    tracker = current_app.extensions["panel_context"]
    path = request.args.get("path")
    if path is not None:
        tracker.navigate(path)
    return jsonify(tracker.snapshot()), 200
