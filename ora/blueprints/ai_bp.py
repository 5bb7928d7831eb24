"""
Ora Scan Platform
AI Blueprint — transcript summarization and speech-service credentials.

Endpoints:
    POST /api/summarize            — transcript → {summary: {pain_points, overallSummary}}
    GET  /api/azure-speech-token   — {key, region} for the browser speech SDK
"""

import logging

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ora.ai.factory import get_summarizer
from ora.blueprints import json_body, register_error_handlers
from ora.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from ora.events import LifecycleDataUpdated, get_event_bus
from ora.models import db
from ora.services import pain_point_service, tenant_service
from ora.utils.errors import E, api_error
from ora.utils.helpers import missing_scope, scope_from_request

logger = logging.getLogger(__name__)

ai_bp = Blueprint("ai", __name__, url_prefix="/api")
register_error_handlers(ai_bp)

SCOPE_FIELDS = ("slug", "workspace_id", "scan_id", "lifecycle_id")


def _summary_context(scope: dict) -> dict:
    """Objectives, group names and stored pain points of a lifecycle scope."""
    if missing_scope(scope, *SCOPE_FIELDS):
        return {"objectives": [], "process_groups": [], "existing": []}
    args = tuple(scope[f] for f in SCOPE_FIELDS)
    lifecycle = tenant_service.get_lifecycle(*args)
    try:
        existing = pain_point_service.get_summary(*args)["pain_points"]
    except NotFoundError:
        existing = []
    return {
        "objectives": tenant_service.get_strategic_objectives(*args[:3]),
        "process_groups": sorted(lifecycle.group_names()),
        "existing": existing,
    }


@ai_bp.route("/summarize", methods=["POST"])
def summarize():
    """
    Summarize an interview transcript into pain points.

    Body: {text, tenantSlug, workspaceId, scanId, lifecycleId, saveToDatabase?}
    A failed save is logged and the summary is still returned.
    """
    data = json_body()
    text = data.get("text")
    if not text or not isinstance(text, str):
        return api_error(
            E.VALIDATION_REQUIRED,
            'Invalid request body. "text" field is required and must be a string.',
        )

    scope = scope_from_request(data)
    save = bool(data.get("saveToDatabase", data.get("save_to_database", False)))
    if save and missing_scope(scope, *SCOPE_FIELDS):
        return api_error(
            E.VALIDATION_REQUIRED,
            "Missing tenant slug, workspace ID, scan ID, or lifecycle ID.",
            details={f: "required" for f in missing_scope(scope, *SCOPE_FIELDS)},
        )

    context = _summary_context(scope)
    result = get_summarizer().summarize(
        text,
        objectives=context["objectives"],
        process_groups=context["process_groups"],
        existing_pain_points=context["existing"],
    )
    summary = {"pain_points": result["pain_points"], "overallSummary": result["overallSummary"]}

    saved = False
    if save:
        args = tuple(scope[f] for f in SCOPE_FIELDS)
        try:
            pain_point_service.save_summary(*args, summary)
            saved = True
        except (ValidationError, VersionConflictError, SQLAlchemyError) as exc:
            db.session.rollback()
            logger.warning("Failed to save summary: %s", exc,
                           extra={"tenant_slug": scope["slug"], "lifecycle_id": scope["lifecycle_id"]})
        if saved:
            get_event_bus().publish(LifecycleDataUpdated(lifecycle_id=scope["lifecycle_id"]))

    return jsonify({
        "summary": summary,
        "status": result["status"],
        "error": result["error"],
        "saved": saved,
    }), 200


@ai_bp.route("/azure-speech-token", methods=["GET"])
def azure_speech_token():
    key = current_app.config.get("AZURE_SPEECH_KEY")
    region = current_app.config.get("AZURE_SPEECH_REGION")
    if not key or not region:
        logger.error("Speech service credentials are not configured")
        return api_error(E.INTERNAL, "Azure Speech Service credentials not configured")
    return jsonify({"key": key, "region": region}), 200
