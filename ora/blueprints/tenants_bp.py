"""
Ora Scan Platform
Tenants Blueprint — tenants, workspaces, scans and company details.

Endpoints:
    Tenants:
        GET    /api/tenants                                   — List tenants
        POST   /api/tenants                                   — Create tenant
        GET    /api/tenants/by-slug?slug=                     — Tenant detail
        PUT    /api/tenants/by-slug                           — Update tenant
        DELETE /api/tenants/by-slug?slug=                     — Delete tenant (admin)

    Workspaces (/api/tenants/by-slug/workspaces):
        GET (list, or one with workspace_id) / POST / PUT / DELETE

    Scans (/api/tenants/by-slug/workspaces/scans):
        GET (list, or one with scan_id) / POST / PUT / DELETE
        GET|PUT .../scans/company-details
        GET|PUT .../scans/strategic-objectives
"""

from flask import Blueprint, jsonify

from ora.auth import require_role
from ora.blueprints import json_body, register_error_handlers, require_scope, scan_args
from ora.services import tenant_service

tenants_bp = Blueprint("tenants", __name__, url_prefix="/api/tenants")
register_error_handlers(tenants_bp)

SCANS = "/by-slug/workspaces/scans"


# ═════════════════════════════════════════════════════════════════════════════
# TENANTS
# ═════════════════════════════════════════════════════════════════════════════

@tenants_bp.route("", methods=["GET"])
def list_tenants():
    return jsonify(tenant_service.list_tenants()), 200


@tenants_bp.route("", methods=["POST"])
def create_tenant():
    return jsonify(tenant_service.create_tenant(json_body())), 201


@tenants_bp.route("/by-slug", methods=["GET"])
def get_tenant():
    scope, err = require_scope("slug")
    if err:
        return err
    return jsonify(tenant_service.get_tenant(scope["slug"]).to_dict()), 200


@tenants_bp.route("/by-slug", methods=["PUT"])
def update_tenant():
    scope, err = require_scope("slug")
    if err:
        return err
    return jsonify(tenant_service.update_tenant(scope["slug"], json_body())), 200


@tenants_bp.route("/by-slug", methods=["DELETE"])
@require_role("admin")
def delete_tenant():
    scope, err = require_scope("slug")
    if err:
        return err
    tenant_service.delete_tenant(scope["slug"])
    return jsonify({"message": "Tenant deleted successfully"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# WORKSPACES
# ═════════════════════════════════════════════════════════════════════════════

@tenants_bp.route("/by-slug/workspaces", methods=["GET"])
def get_workspaces():
    scope, err = require_scope("slug")
    if err:
        return err
    if scope["workspace_id"]:
        workspace = tenant_service.get_workspace(scope["slug"], scope["workspace_id"])
        return jsonify(workspace.to_dict()), 200
    return jsonify(tenant_service.list_workspaces(scope["slug"])), 200


@tenants_bp.route("/by-slug/workspaces", methods=["POST"])
def create_workspace():
    scope, err = require_scope("slug")
    if err:
        return err
    return jsonify(tenant_service.create_workspace(scope["slug"], json_body())), 201


@tenants_bp.route("/by-slug/workspaces", methods=["PUT"])
def update_workspace():
    scope, err = require_scope("slug", "workspace_id")
    if err:
        return err
    workspace = tenant_service.update_workspace(scope["slug"], scope["workspace_id"], json_body())
    return jsonify(workspace), 200


@tenants_bp.route("/by-slug/workspaces", methods=["DELETE"])
def delete_workspace():
    scope, err = require_scope("slug", "workspace_id")
    if err:
        return err
    tenant_service.delete_workspace(scope["slug"], scope["workspace_id"])
    return jsonify({"message": "Workspace deleted successfully"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# SCANS
# ═════════════════════════════════════════════════════════════════════════════

@tenants_bp.route(SCANS, methods=["GET"])
def get_scans():
    scope, err = require_scope("slug", "workspace_id")
    if err:
        return err
    if scope["scan_id"]:
        return jsonify(tenant_service.get_scan(*scan_args(scope)).to_dict()), 200
    return jsonify(tenant_service.list_scans(scope["slug"], scope["workspace_id"])), 200


@tenants_bp.route(SCANS, methods=["POST"])
def create_scan():
    scope, err = require_scope("slug", "workspace_id")
    if err:
        return err
    scan = tenant_service.create_scan(scope["slug"], scope["workspace_id"], json_body())
    return jsonify(scan), 201


@tenants_bp.route(SCANS, methods=["PUT"])
def update_scan():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(tenant_service.update_scan(*scan_args(scope), json_body())), 200


@tenants_bp.route(SCANS, methods=["DELETE"])
def delete_scan():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    tenant_service.delete_scan(*scan_args(scope))
    return jsonify({"message": "Scan deleted successfully"}), 200


@tenants_bp.route(f"{SCANS}/company-details", methods=["GET"])
def get_company_details():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(tenant_service.get_company_details(*scan_args(scope))), 200


@tenants_bp.route(f"{SCANS}/company-details", methods=["PUT"])
def update_company_details():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    return jsonify(tenant_service.update_company_details(*scan_args(scope), json_body())), 200


@tenants_bp.route(f"{SCANS}/strategic-objectives", methods=["GET"])
def get_strategic_objectives():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    objectives = tenant_service.get_strategic_objectives(*scan_args(scope))
    return jsonify({"strategic_objectives": objectives}), 200


@tenants_bp.route(f"{SCANS}/strategic-objectives", methods=["PUT"])
def update_strategic_objectives():
    scope, err = require_scope("slug", "workspace_id", "scan_id")
    if err:
        return err
    data = json_body()
    objectives = tenant_service.update_strategic_objectives(
        *scan_args(scope), data.get("strategic_objectives"),
    )
    return jsonify({"strategic_objectives": objectives}), 200
