"""
Dashboard Blueprint.

Endpoints:
    GET /api/dashboard/stats            — headline counts for the actor's scope
    GET /api/dashboard/pending-actions  — number of bills awaiting approval
"""

from flask import Blueprint, jsonify

from assetdesk.blueprints import actor_and_scope
from assetdesk.services import bill_service, dashboard_service

dashboard_bp = Blueprint("dashboard_bp", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/stats", methods=["GET"])
def stats():
    _, scope = actor_and_scope()
    return jsonify(dashboard_service.get_dashboard_stats(scope)), 200


@dashboard_bp.route("/pending-actions", methods=["GET"])
def pending_actions():
    _, scope = actor_and_scope()
    return jsonify({"count": bill_service.pending_actions_count(scope)}), 200
