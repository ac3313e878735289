"""
Health check blueprint.

Endpoints:
    GET /api/health        — simple 200 for load balancers
    GET /api/health/live   — record store reachability
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from assetdesk.models.schema import ROLES
from assetdesk.store import get_store

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check, always 200 while the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check that reads from the record store."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        count = len(get_store().get_all(ROLES))
        store_ms = (time.perf_counter() - t0) * 1000
        checks["record_store"] = {
            "status": "ok",
            "backend": current_app.config.get("RECORD_STORE"),
            "roles": count,
            "latency_ms": round(store_ms, 1),
        }
    except Exception as exc:
        checks["record_store"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — record store failed: %s", exc)

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
