"""
Ora Scan Platform
Pain Points Blueprint — pain-point summaries, transcripts and the chat lane.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    GET    /pain-points-summary           — Stored summary (404 = none yet)
    POST   /pain-points-summary           — Full replace {summary, version?}
    DELETE /pain-points-summary           — Remove summary
    PATCH  /pain-points/items             — Edit one pain point {pain_point_id, ...fields}
    DELETE /pain-points/items             — Remove one pain point (idempotent)
    POST   /pain-points/chat              — Interview co-pilot question
    GET    /pain-points-transcription     — Stored transcript
    POST   /pain-points-transcription     — Replace transcript
    DELETE /pain-points-transcription     — Reset transcript (summary kept)
    GET    /transcriptions                — All transcripts of the scan
"""

import logging

from flask import Blueprint, jsonify, request

from ora.ai.factory import get_chat_assistant
from ora.blueprints import (
    json_body,
    lifecycle_args,
    register_error_handlers,
    require_scope,
    scan_args,
)
from ora.core.exceptions import NotFoundError
from ora.events import LifecycleDataUpdated, get_event_bus
from ora.interview.engine import get_registry
from ora.services import pain_point_service, tenant_service, transcription_service
from ora.utils.errors import E, api_error
from ora.utils.helpers import parse_int

logger = logging.getLogger(__name__)

pain_points_bp = Blueprint("pain_points", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(pain_points_bp)

LIFECYCLE_SCOPE = ("slug", "workspace_id", "scan_id", "lifecycle_id")


def _expected_version(data: dict) -> int | None:
    return parse_int(data.get("expected_version", data.get("version")))


# ═════════════════════════════════════════════════════════════════════════════
# SUMMARY
# ═════════════════════════════════════════════════════════════════════════════

@pain_points_bp.route("/pain-points-summary", methods=["GET"])
def get_summary():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    return jsonify(pain_point_service.get_summary(*lifecycle_args(scope))), 200


@pain_points_bp.route("/pain-points-summary", methods=["POST"])
def save_summary():
    """Body: {summary: {pain_points, overallSummary}, version?} or the
    summary fields at the top level."""
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    summary = data.get("summary")
    if summary is None:
        summary = {k: data[k] for k in ("pain_points", "painPoints", "overallSummary",
                                        "overall_summary") if k in data}
    saved = pain_point_service.save_summary(
        *lifecycle_args(scope), summary, expected_version=_expected_version(data),
    )
    get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=scope["lifecycle_id"]))
    return jsonify(saved), 200


@pain_points_bp.route("/pain-points-summary", methods=["DELETE"])
def delete_summary():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    deleted = pain_point_service.delete_summary(*lifecycle_args(scope))
    if deleted:
        get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=scope["lifecycle_id"]))
    return jsonify({"deleted": deleted}), 200


@pain_points_bp.route("/pain-points/items", methods=["PATCH"])
def update_pain_point():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    pain_point_id = data.get("pain_point_id") or data.get("painPointId")
    if not pain_point_id:
        return api_error(E.VALIDATION_REQUIRED, "pain_point_id is required")
    fields = data.get("fields")
    if not isinstance(fields, dict):
        fields = data
    saved = pain_point_service.update_pain_point(
        *lifecycle_args(scope), pain_point_id, fields,
        expected_version=_expected_version(data),
    )
    return jsonify(saved), 200


@pain_points_bp.route("/pain-points/items", methods=["DELETE"])
def delete_pain_point():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    pain_point_id = request.args.get("pain_point_id") or json_body().get("pain_point_id")
    if not pain_point_id:
        return api_error(E.VALIDATION_REQUIRED, "pain_point_id is required")
    saved = pain_point_service.delete_pain_point(*lifecycle_args(scope), pain_point_id)
    return jsonify({"deleted": saved is not None, "summary": saved}), 200


@pain_points_bp.route("/pain-points/chat", methods=["POST"])
def chat():
    """Body: {query, conversation_history?, active_modes?, lifecycle_context?}"""
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    query = (data.get("query") or data.get("message") or "").strip()
    if not query:
        return api_error(E.VALIDATION_REQUIRED, "Missing query parameter")

    lifecycle = tenant_service.get_lifecycle(*lifecycle_args(scope))
    try:
        pain_points = pain_point_service.get_summary(*lifecycle_args(scope))["pain_points"]
    except NotFoundError:
        pain_points = []

    result = get_chat_assistant().chat(
        query,
        company=tenant_service.get_company_details(*scan_args(scope)),
        lifecycle=lifecycle.to_dict(),
        pain_points=pain_points,
        conversation_history=data.get("conversation_history") or data.get("conversationHistory"),
        active_modes=data.get("active_modes") or data.get("activeModes"),
        lifecycle_context=data.get("lifecycle_context") or data.get("lifecycleContext") or "",
    )
    if result.get("error"):
        logger.error("Pain-point chat failed: %s", result["error"],
                     extra={"tenant_slug": scope["slug"], "lifecycle_id": scope["lifecycle_id"]})
        return api_error(E.UPSTREAM, result["error"])
    return jsonify({"message": result["message"], "query": query}), 200


# ═════════════════════════════════════════════════════════════════════════════
# TRANSCRIPTS
# ═════════════════════════════════════════════════════════════════════════════

@pain_points_bp.route("/pain-points-transcription", methods=["GET"])
def get_transcription():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    return jsonify(transcription_service.get_transcription(*lifecycle_args(scope))), 200


@pain_points_bp.route("/pain-points-transcription", methods=["POST"])
def save_transcription():
    """Body: {transcription, transcript_name?, journey_ref?}"""
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    text = data.get("transcription")
    if text is None:
        text = data.get("text")
    if text is None:
        return api_error(E.VALIDATION_REQUIRED, "transcription is required")
    saved = transcription_service.save_transcription(
        *lifecycle_args(scope), str(text),
        transcript_name=data.get("transcript_name"),
        journey_ref=data.get("journey_ref"),
    )
    return jsonify(saved), 200


@pain_points_bp.route("/pain-points-transcription", methods=["DELETE"])
def reset_transcription():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    # A live session would write its in-memory transcript back on its next tick.
    session = get_registry().get(scope["lifecycle_id"])
    if session is not None:
        tenant_service.get_lifecycle(*lifecycle_args(scope))
        deleted = session.reset_transcript()
    else:
        deleted = transcription_service.reset_transcription(*lifecycle_args(scope))
    return jsonify({"deleted": deleted}), 200


@pain_points_bp.route("/transcriptions", methods=["GET"])
def list_transcriptions():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(transcription_service.list_transcriptions(*scan_args(scope))), 200
