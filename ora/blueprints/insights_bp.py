"""
Ora Scan Platform
Insights Blueprint — AI-generated company insights and the data-room chat.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    POST /chat                       — Question over the scan's documents
    POST /generate-objectives        — Replace strategic objectives with AI-proposed ones
    POST /generate-scoring-criteria  — Impact criteria of one objective (not stored)
    POST /company-research           — Regenerate the company research report
"""

from flask import Blueprint, jsonify

from ora.blueprints import json_body, register_error_handlers, require_scope, scan_args
from ora.services import insight_service
from ora.utils.errors import E, api_error

insights_bp = Blueprint("insights", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(insights_bp)

SCAN_SCOPE = ("slug", "workspace_id", "scan_id")


@insights_bp.route("/chat", methods=["POST"])
def scan_chat():
    """Body: {query, conversationHistory?, documentStatus?, companyInfo?, formatInstructions?}"""
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    data = json_body()
    query = data.get("query")
    if not query or not isinstance(query, str):
        return api_error(E.VALIDATION_REQUIRED, "Missing query parameter")
    company = data.get("companyInfo")
    result = insight_service.scan_chat(
        *scan_args(scope), query,
        conversation_history=data.get("conversationHistory"),
        document_status=data.get("documentStatus") or "",
        company=company if isinstance(company, dict) else None,
        format_instructions=data.get("formatInstructions"),
    )
    return jsonify(result), 200


@insights_bp.route("/generate-objectives", methods=["POST"])
def generate_objectives():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    objectives = insight_service.generate_objectives(*scan_args(scope))
    return jsonify({"success": True, "objectives": objectives}), 200


@insights_bp.route("/generate-scoring-criteria", methods=["POST"])
def generate_scoring_criteria():
    """Body: {objective_name, objective_description?}"""
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    data = json_body()
    if not data.get("objective_name"):
        return api_error(E.VALIDATION_REQUIRED, "Missing required parameters",
                         details={"objective_name": "required"})
    criteria = insight_service.generate_scoring_criteria(
        *scan_args(scope), data["objective_name"], data.get("objective_description") or "",
    )
    return jsonify({"success": True, "scoring_criteria": criteria}), 200


@insights_bp.route("/company-research", methods=["POST"])
def company_research():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    research = insight_service.research_company(*scan_args(scope))
    return jsonify({
        "success": True,
        "message": "Company research generated successfully",
        "research": research,
    }), 200
