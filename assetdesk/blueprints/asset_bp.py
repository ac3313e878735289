"""
Asset Blueprint — asset register, transfers, gate passes and disposal entry points.

Endpoints:
    GET    /api/assets                              — assets in the actor's scope
    POST   /api/assets                              — register an asset
    GET    /api/assets/search?q=                    — search by name / tag
    GET    /api/assets/transferred                  — assets transferred out of scope
    GET    /api/assets/<id>                         — single asset
    PUT    /api/assets/<id>                         — edit descriptive fields
    GET    /api/assets/<id>/transfers               — transfer ledger of one asset
    POST   /api/assets/<id>/transfer/initiate       — request a transfer
    POST   /api/assets/<id>/transfer/approve        — approve a pending transfer
    POST   /api/assets/<id>/transfer/reject         — reject a pending transfer
    POST   /api/assets/<id>/gatepass                — issue a gate pass
    POST   /api/assets/<id>/gatepass/close          — close a gate pass
    GET    /api/gatepass                            — open gate passes in scope
    POST   /api/assets/<id>/disposal/initiate       — put the asset in the disposal cart
    POST   /api/assets/<id>/disposal/approve        — final disposal approval

The acting user is passed as role / branchCode / username in the query
string or as actorRole / actorBranchCode / actorUsername in the body.
"""

import logging

from flask import Blueprint, jsonify, request

from assetdesk.blueprints import (
    actor_and_scope, flag, json_body, paginate_list, record_payload, require_in_scope,
)
from assetdesk.services import asset_lifecycle as lifecycle
from assetdesk.services.permission_service import require_head_office, require_permission

logger = logging.getLogger(__name__)

asset_bp = Blueprint("asset_bp", __name__, url_prefix="/api")


def _scoped_asset(asset_id, scope):
    return require_in_scope(lifecycle.get_asset(asset_id), scope, "Asset", asset_id)


def _held_asset(asset_id, scope):
    return require_in_scope(lifecycle.get_asset(asset_id), scope, "Asset", asset_id, held=True)


# ═════════════════════════════════════════════════════════════════════════════
# REGISTER
# ═════════════════════════════════════════════════════════════════════════════


@asset_bp.route("/assets", methods=["GET"])
def list_assets():
    """List assets visible to the actor.

    Query params: role, branchCode, username, q, status, currentOnly, limit, offset
    """
    _, scope = actor_and_scope()
    items = lifecycle.list_assets(
        scope,
        q=request.args.get("q"),
        current_only=flag("currentOnly"),
        status=request.args.get("status"),
    )
    if "limit" in request.args or "offset" in request.args:
        page, total = paginate_list(items)
        return jsonify({"items": page, "total": total}), 200
    return jsonify(items), 200


@asset_bp.route("/assets", methods=["POST"])
def create_asset():
    """Body: { name, tagNumber, branchCode, type?, warrantyEnd?, amcEnd?, ... }"""
    actor, _ = actor_and_scope()
    require_permission(actor, "assetCreation")
    asset = lifecycle.create_asset(record_payload(), created_by=actor.name)
    return jsonify(asset), 201


@asset_bp.route("/assets/search", methods=["GET"])
def search_assets():
    _, scope = actor_and_scope()
    return jsonify(lifecycle.search_assets(request.args.get("q", ""), scope)), 200


@asset_bp.route("/assets/transferred", methods=["GET"])
def transferred_assets():
    """Assets that left one of the actor's branches."""
    _, scope = actor_and_scope()
    return jsonify(lifecycle.transferred_out(scope)), 200


@asset_bp.route("/assets/<int:asset_id>", methods=["GET"])
def get_asset(asset_id):
    _, scope = actor_and_scope()
    asset = _scoped_asset(asset_id, scope)
    asset["viewStatus"] = scope.view_status(asset)
    return jsonify(asset), 200


@asset_bp.route("/assets/<int:asset_id>", methods=["PUT"])
def update_asset(asset_id):
    actor, scope = actor_and_scope()
    require_permission(actor, "assetModification")
    _held_asset(asset_id, scope)
    return jsonify(lifecycle.update_asset(asset_id, record_payload())), 200


# ═════════════════════════════════════════════════════════════════════════════
# TRANSFER
# ═════════════════════════════════════════════════════════════════════════════


@asset_bp.route("/assets/<int:asset_id>/transfers", methods=["GET"])
def transfer_history(asset_id):
    _, scope = actor_and_scope()
    _scoped_asset(asset_id, scope)
    return jsonify(lifecycle.transfer_history(asset_id)), 200


@asset_bp.route("/assets/<int:asset_id>/transfer/initiate", methods=["POST"])
def initiate_transfer(asset_id):
    """Body: { toLocation, toBranchName?, reason?, initiatedBy? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "initiateTransfer")
    _held_asset(asset_id, scope)
    data = json_body()
    asset = lifecycle.initiate_transfer(
        asset_id,
        to_location=data.get("toLocation"),
        reason=data.get("reason"),
        initiated_by=data.get("initiatedBy") or actor.name,
        to_branch_name=data.get("toBranchName"),
    )
    return jsonify(asset), 200


@asset_bp.route("/assets/<int:asset_id>/transfer/approve", methods=["POST"])
def approve_transfer(asset_id):
    """Body: { approvedBy? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "approveTransfer")
    _held_asset(asset_id, scope)
    data = json_body()
    asset = lifecycle.approve_transfer(asset_id, data.get("approvedBy") or actor.name)
    return jsonify(asset), 200


@asset_bp.route("/assets/<int:asset_id>/transfer/reject", methods=["POST"])
def reject_transfer(asset_id):
    """Body: { reason, rejectedBy? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "approveTransfer")
    _held_asset(asset_id, scope)
    data = json_body()
    asset = lifecycle.reject_transfer(asset_id, data.get("rejectedBy") or actor.name, data.get("reason"))
    return jsonify(asset), 200


# ═════════════════════════════════════════════════════════════════════════════
# GATE PASS
# ═════════════════════════════════════════════════════════════════════════════


@asset_bp.route("/gatepass", methods=["GET"])
def list_gate_passes():
    _, scope = actor_and_scope()
    return jsonify(lifecycle.list_gate_passes(scope)), 200


@asset_bp.route("/assets/<int:asset_id>/gatepass", methods=["POST"])
def generate_gate_pass(asset_id):
    """Body: { toLocation, reason?, gatePassType?: Temporary|Transfer, purpose?, generatedBy? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "assetModification")
    _held_asset(asset_id, scope)
    data = json_body()
    asset = lifecycle.generate_gate_pass(
        asset_id,
        to_location=data.get("toLocation"),
        reason=data.get("reason"),
        generated_by=data.get("generatedBy") or actor.name,
        gate_pass_type=data.get("gatePassType") or "Temporary",
        purpose=data.get("purpose"),
    )
    return jsonify(asset), 201


@asset_bp.route("/assets/<int:asset_id>/gatepass/close", methods=["POST"])
def close_gate_pass(asset_id):
    actor, scope = actor_and_scope()
    require_permission(actor, "assetModification")
    _held_asset(asset_id, scope)
    return jsonify(lifecycle.close_gate_pass(asset_id, actor.name)), 200


# ═════════════════════════════════════════════════════════════════════════════
# DISPOSAL ENTRY POINTS (cart management lives in disposal_bp)
# ═════════════════════════════════════════════════════════════════════════════


@asset_bp.route("/assets/<int:asset_id>/disposal/initiate", methods=["POST"])
def initiate_disposal(asset_id):
    """Body: { reason?, initiatedBy? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "initiateDisposal")
    _held_asset(asset_id, scope)
    data = json_body()
    asset = lifecycle.initiate_disposal(
        asset_id, data.get("initiatedBy") or actor.name, data.get("reason"),
    )
    return jsonify(asset), 200


@asset_bp.route("/assets/<int:asset_id>/disposal/approve", methods=["POST"])
def approve_disposal(asset_id):
    """Body: { approvedBy? }"""
    actor, scope = actor_and_scope()
    require_head_office(actor, "approveDisposal")
    _held_asset(asset_id, scope)
    data = json_body()
    return jsonify(lifecycle.approve_disposal(asset_id, data.get("approvedBy") or actor.name)), 200
