"""
Ora Scan Platform
Scenario Planning Blueprint.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    GET /scenario-planning   — Scores, costs and ranked focus opportunities
    PUT /scenario-planning   — Store focus {focus: [{lifecycle_id, process_group}], notes?}
"""

from flask import Blueprint, jsonify

from ora.blueprints import json_body, register_error_handlers, require_scope, scan_args
from ora.services import scenario_planning_service

scenario_bp = Blueprint("scenario", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(scenario_bp)


@scenario_bp.route("/scenario-planning", methods=["GET"])
def get_scenario_planning():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(scenario_planning_service.scenario_planning(*scan_args(scope))), 200


@scenario_bp.route("/scenario-planning", methods=["PUT"])
def update_scenario_planning():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    data = json_body()
    planning = scenario_planning_service.select_focus(
        *scan_args(scope), data.get("focus"), notes=data.get("notes"),
    )
    return jsonify(planning), 200
