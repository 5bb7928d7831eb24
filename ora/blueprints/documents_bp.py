"""
Ora Scan Platform
Documents Blueprint — data-room documents of a scan.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    GET    /documents                 — List (optional document_type filter)
    DELETE /documents?document_id=    — Revert a slot to placeholder
    POST   /documents/upload          — Record an uploaded file
    PATCH  /documents/status          — Processing status / summarization prompt
    GET    /documents/status-summary  — Required-set counts + assistant narratives
    POST   /documents/summary         — Replace a summary by hand
    POST   /documents/summarization-prompt — Prompt by id or type; re-summarizes stored text
    POST   /documents/summarize       — Regenerate a summary from the stored text
"""

from flask import Blueprint, jsonify, request

from ora.blueprints import json_body, register_error_handlers, require_scope, scan_args
from ora.services import document_service, lifecycle_service, tenant_service
from ora.utils.errors import E, api_error

documents_bp = Blueprint("documents", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(documents_bp)


@documents_bp.route("/documents", methods=["GET"])
def list_documents():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    documents = document_service.list_documents(
        *scan_args(scope), document_type=request.args.get("document_type"),
    )
    return jsonify(documents), 200


@documents_bp.route("/documents/upload", methods=["POST"])
def upload_document():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(document_service.upload_document(*scan_args(scope), json_body())), 201


@documents_bp.route("/documents/status", methods=["PATCH"])
def update_document_status():
    """Body: {document_id, status?, summarization?, summarization_prompt?}"""
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    data = json_body()
    document_id = data.get("document_id") or data.get("documentId")
    if not document_id:
        return api_error(E.VALIDATION_REQUIRED, "document_id is required")
    if not data.get("status") and "summarization_prompt" not in data:
        return api_error(E.VALIDATION_REQUIRED, "status or summarization_prompt is required")

    document = None
    if "summarization_prompt" in data:
        document = document_service.update_summarization_prompt(
            *scan_args(scope), data.get("summarization_prompt"), document_id=document_id,
        )
    if data.get("status"):
        document = document_service.set_document_status(
            *scan_args(scope), document_id, data["status"], data.get("summarization"),
        )
    return jsonify(document), 200


@documents_bp.route("/documents", methods=["DELETE"])
def delete_document():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    document_id = request.args.get("document_id") or json_body().get("document_id")
    if not document_id:
        return api_error(E.VALIDATION_REQUIRED, "document_id is required")
    document = document_service.delete_document(*scan_args(scope), document_id)
    return jsonify({"message": "Document deleted successfully", "document": document}), 200


@documents_bp.route("/documents/status-summary", methods=["GET"])
def document_status_summary():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    documents = document_service.list_documents(*scan_args(scope))
    company = tenant_service.get_company_details(*scan_args(scope))
    has_lifecycles = bool(lifecycle_service.list_lifecycles(*scan_args(scope), repair_positions=False))
    return jsonify({
        **document_service.document_status(documents),
        "missing_message": document_service.missing_documents_message(documents),
        "welcome_message": document_service.welcome_message(
            documents, company=company, has_lifecycles=has_lifecycles,
        ),
    }), 200


@documents_bp.route("/documents/summary", methods=["POST"])
def update_document_summary():
    """Body: {document_id, summary}"""
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    data = json_body()
    document_id = data.get("document_id") or data.get("documentId")
    missing = [k for k, present in (("document_id", bool(document_id)), ("summary", "summary" in data))
               if not present]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, "Missing required parameters",
                         details={k: "required" for k in missing})
    document = document_service.update_summary(*scan_args(scope), document_id, data["summary"])
    return jsonify({
        "success": True,
        "message": "Summary updated successfully",
        "document": {
            "id": document["id"],
            "document_type": document["document_type"],
            "summary": document["summarization"],
        },
    }), 200


@documents_bp.route("/documents/summarization-prompt", methods=["POST"])
def update_summarization_prompt():
    """Body: {document_type, document_id?, summarization_prompt}

    A document with stored text is re-summarized with the new prompt.
    """
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    data = json_body()
    document_type = data.get("document_type")
    if not document_type:
        return api_error(E.VALIDATION_REQUIRED, "Missing required parameters",
                         details={"document_type": "required"})
    document = document_service.update_summarization_prompt(
        *scan_args(scope), data.get("summarization_prompt") or "",
        document_id=data.get("document_id") or None, document_type=document_type,
    )
    return jsonify({
        "success": True,
        "message": "Summarization prompt updated successfully",
        "document": {
            "id": document["id"],
            "document_type": document["document_type"],
            "summarization_prompt": document["summarization_prompt"],
            "summary": document["summarization"],
        },
    }), 200


@documents_bp.route("/documents/summarize", methods=["POST"])
def summarize_document():
    """Body: {document_id}; regenerate the summary from the stored text."""
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    document_id = json_body().get("document_id")
    if not document_id:
        return api_error(E.VALIDATION_REQUIRED, "document_id is required")
    return jsonify(document_service.summarize_document(*scan_args(scope), document_id)), 200
