"""
Ora Scan Platform
Lifecycles Blueprint — lifecycles, process trees, scores and costs.

Endpoints (prefix /api/tenants/by-slug/workspaces/scans):
    GET    /lifecycles                        — List (or one with lifecycle_id)
    POST   /lifecycles                        — Process tree action {action, ...}
    PUT    /lifecycles                        — Update name/description/stakeholders
    PATCH  /lifecycles                        — Reorder {positions: [{id, position}]}
    DELETE /lifecycles                        — Delete lifecycle
    POST   /lifecycles/create                 — Create lifecycle
    GET    /lifecycles/process-groups         — Flat sorted group list
    GET    /lifecycles/scores                 — Process tree scored by pain points
    POST   /lifecycles/generate-processes     — AI process tree
    POST   /generate-lifecycles               — AI lifecycles from documents
    GET    /lifecycle-costs                   — Cost metrics per lifecycle
    PUT    /lifecycle-costs                   — Set cost_to_serve / industry_benchmark
"""

from flask import Blueprint, jsonify

from ora.blueprints import (
    json_body,
    lifecycle_args,
    register_error_handlers,
    require_scope,
    scan_args,
)
from ora.services import lifecycle_service
from ora.utils.errors import E, api_error

lifecycles_bp = Blueprint("lifecycles", __name__, url_prefix="/api/tenants/by-slug/workspaces/scans")
register_error_handlers(lifecycles_bp)

SCAN_SCOPE = ("slug", "workspace_id", "scan_id")
LIFECYCLE_SCOPE = SCAN_SCOPE + ("lifecycle_id",)


@lifecycles_bp.route("/lifecycles", methods=["GET"])
def get_lifecycles():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    if scope["lifecycle_id"]:
        return jsonify(lifecycle_service.get_lifecycle(*lifecycle_args(scope))), 200
    return jsonify(lifecycle_service.list_lifecycles(*scan_args(scope))), 200


@lifecycles_bp.route("/lifecycles", methods=["POST"])
def lifecycle_action():
    """Body: {lifecycle_id, action, category_index?, group_index?, name?,
    description?, score?, reorder?}"""
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    data = json_body()
    action = data.get("action")
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required",
                         details={"allowed": list(lifecycle_service.TREE_ACTIONS)})
    result = lifecycle_service.apply_action(*lifecycle_args(scope), action, data)
    return jsonify(result), 200


@lifecycles_bp.route("/lifecycles/create", methods=["POST"])
def create_lifecycle():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    return jsonify(lifecycle_service.create_lifecycle(*scan_args(scope), json_body())), 201


@lifecycles_bp.route("/lifecycles", methods=["PUT"])
def update_lifecycle():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    return jsonify(lifecycle_service.update_lifecycle(*lifecycle_args(scope), json_body())), 200


@lifecycles_bp.route("/lifecycles", methods=["PATCH"])
def reorder_lifecycles():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    positions = json_body().get("positions")
    return jsonify(lifecycle_service.reorder_lifecycles(*scan_args(scope), positions)), 200


@lifecycles_bp.route("/lifecycles", methods=["DELETE"])
def delete_lifecycle():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    lifecycle_service.delete_lifecycle(*lifecycle_args(scope))
    return jsonify({"message": "Lifecycle deleted successfully"}), 200


@lifecycles_bp.route("/lifecycles/process-groups", methods=["GET"])
def list_process_groups():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    groups = lifecycle_service.list_process_groups(*lifecycle_args(scope))
    return jsonify({"process_groups": groups}), 200


@lifecycles_bp.route("/lifecycles/scores", methods=["GET"])
def lifecycle_scores():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    return jsonify(lifecycle_service.get_lifecycle_scores(*lifecycle_args(scope))), 200


@lifecycles_bp.route("/lifecycles/generate-processes", methods=["POST"])
def generate_processes():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    lifecycle = lifecycle_service.generate_processes(*lifecycle_args(scope))
    return jsonify({"message": "Processes generated successfully", "lifecycle": lifecycle}), 200


@lifecycles_bp.route("/generate-lifecycles", methods=["POST"])
def generate_lifecycles():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    lifecycles = lifecycle_service.generate_lifecycles(*scan_args(scope))
    return jsonify({
        "message": "Lifecycles generated successfully",
        "lifecycles": lifecycles,
        "count": len(lifecycles),
    }), 200


@lifecycles_bp.route("/lifecycle-costs", methods=["GET"])
def get_lifecycle_costs():
    scope, err = require_scope(*SCAN_SCOPE)
    if err:
        return err
    return jsonify({"lifecycles": lifecycle_service.get_lifecycle_costs(*scan_args(scope))}), 200


@lifecycles_bp.route("/lifecycle-costs", methods=["PUT"])
def update_lifecycle_cost():
    scope, err = require_scope(*LIFECYCLE_SCOPE)
    if err:
        return err
    lifecycle = lifecycle_service.update_lifecycle_cost(*lifecycle_args(scope), json_body())
    return jsonify(lifecycle), 200
