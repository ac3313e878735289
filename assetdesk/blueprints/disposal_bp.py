"""
Disposal Blueprint — the disposal cart and its approval queue.

A disposal is identified by its asset id.

Endpoints:
    GET    /api/disposals                   — assets in the disposal flow, in scope
    PUT    /api/disposals/<id>/submit       — In Cart → Pending
    PUT    /api/disposals/<id>/recommend    — Pending → Recommended
    PUT    /api/disposals/<id>/approve      — Pending | Recommended → Disposed
    PUT    /api/disposals/<id>/reject       — Pending | Recommended → In Cart
    DELETE /api/disposals/<id>              — In Cart → Active
"""

import logging

from flask import Blueprint, jsonify

from assetdesk.blueprints import actor_and_scope, json_body, require_in_scope
from assetdesk.services import asset_lifecycle as lifecycle
from assetdesk.services.permission_service import require_head_office, require_permission

logger = logging.getLogger(__name__)

disposal_bp = Blueprint("disposal_bp", __name__, url_prefix="/api")


def _check(asset_id, permission):
    actor, scope = actor_and_scope()
    require_permission(actor, permission)
    require_in_scope(lifecycle.get_asset(asset_id), scope, "Disposal", asset_id, held=True)
    return actor


@disposal_bp.route("/disposals", methods=["GET"])
def list_disposals():
    """Query params: role, branchCode, username"""
    _, scope = actor_and_scope()
    return jsonify(lifecycle.list_disposals(scope)), 200


@disposal_bp.route("/disposals/<int:asset_id>/submit", methods=["PUT"])
def submit_disposal(asset_id):
    actor = _check(asset_id, "initiateDisposal")
    return jsonify(lifecycle.submit_disposal(asset_id, actor.name)), 200


@disposal_bp.route("/disposals/<int:asset_id>/recommend", methods=["PUT"])
def recommend_disposal(asset_id):
    """Body: { recommendedBy? }"""
    actor = _check(asset_id, "approveDisposal")
    data = json_body()
    return jsonify(lifecycle.recommend_disposal(asset_id, data.get("recommendedBy") or actor.name)), 200


@disposal_bp.route("/disposals/<int:asset_id>/approve", methods=["PUT"])
def approve_disposal(asset_id):
    """Body: { approvedBy? }"""
    actor, scope = actor_and_scope()
    require_head_office(actor, "approveDisposal")
    require_in_scope(lifecycle.get_asset(asset_id), scope, "Disposal", asset_id, held=True)
    data = json_body()
    return jsonify(lifecycle.approve_disposal(asset_id, data.get("approvedBy") or actor.name)), 200


@disposal_bp.route("/disposals/<int:asset_id>/reject", methods=["PUT"])
def reject_disposal(asset_id):
    """Body: { rejectedBy?, reason? }"""
    actor = _check(asset_id, "approveDisposal")
    data = json_body()
    asset = lifecycle.reject_disposal(asset_id, data.get("rejectedBy") or actor.name, data.get("reason"))
    return jsonify(asset), 200


@disposal_bp.route("/disposals/<int:asset_id>", methods=["DELETE"])
def remove_disposal(asset_id):
    actor = _check(asset_id, "initiateDisposal")
    return jsonify(lifecycle.remove_disposal(asset_id, actor.name)), 200
