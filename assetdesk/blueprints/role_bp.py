"""
Role Blueprint — permission bundles.

Endpoints:
    GET  /api/roles        — all roles
    POST /api/roles        — create a role (manageRoles)
    PUT  /api/roles/<id>   — edit a role's flags (manageRoles)
"""

from flask import Blueprint, jsonify

from assetdesk.blueprints import actor_and_scope, record_payload
from assetdesk.services import permission_service

role_bp = Blueprint("role_bp", __name__, url_prefix="/api/roles")


@role_bp.route("", methods=["GET"])
def list_roles():
    return jsonify(permission_service.list_roles()), 200


@role_bp.route("", methods=["POST"])
def create_role():
    actor, _ = actor_and_scope()
    permission_service.require_permission(actor, "manageRoles")
    return jsonify(permission_service.create_role(record_payload())), 201


@role_bp.route("/<int:role_id>", methods=["PUT"])
def update_role(role_id):
    actor, _ = actor_and_scope()
    permission_service.require_permission(actor, "manageRoles")
    return jsonify(permission_service.update_role(role_id, record_payload())), 200
