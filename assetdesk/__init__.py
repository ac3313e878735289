"""
Branch Asset & Payables Desk
Flask Application Factory.

Usage:
    from assetdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
    app = create_app("testing", {"DATA_DIR": "/tmp/desk"})
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from assetdesk.config import config
from assetdesk.core.exceptions import StorageError
from assetdesk.middleware.logging_config import configure_logging
from assetdesk.middleware.rate_limiter import init_rate_limits
from assetdesk.middleware.timing import init_request_timing
from assetdesk.models import db
from assetdesk.store import init_store
from assetdesk.utils.errors import E, SERVICE_EXCEPTIONS, error_response

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; set per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _register_error_handlers(app):
    """Map service exceptions to the standard JSON error envelope."""

    def _handle_service_error(error):
        if isinstance(error, StorageError):
            logger.error("Storage failure on %s %s: %s", request.method, request.path, error)
        return error_response(error)

    for exc_type in SERVICE_EXCEPTIONS:
        app.register_error_handler(exc_type, _handle_service_error)

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides: Optional mapping applied on top of the config class
                   (tests use it for DATA_DIR and RECORD_STORE).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Record store ─────────────────────────────────────────────────────
    init_store(app)

    if app.config["RECORD_STORE"] == "sql":
        from assetdesk.models import record as _record_models  # noqa: F401

        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    if app.config.get("SEED_ROLES_ON_STARTUP"):
        from assetdesk.services.permission_service import seed_roles

        with app.app_context():
            try:
                seed_roles()
            except StorageError as e:
                app.logger.warning("Role seeding skipped: %s", e)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from assetdesk.blueprints.asset_bp import asset_bp
    from assetdesk.blueprints.auth_bp import auth_bp
    from assetdesk.blueprints.dashboard_bp import dashboard_bp
    from assetdesk.blueprints.disposal_bp import disposal_bp
    from assetdesk.blueprints.health_bp import health_bp
    from assetdesk.blueprints.notification_bp import notification_bp
    from assetdesk.blueprints.payables_bp import payables_bp
    from assetdesk.blueprints.role_bp import role_bp

    app.register_blueprint(asset_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(disposal_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(payables_bp)
    app.register_blueprint(role_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Insert the out-of-box roles that are missing from the Roles table."""
        from assetdesk.services.permission_service import seed_roles
        count = seed_roles()
        logger.info("Seeded %s new role(s).", count)

    @app.cli.command("backfill-derived-state")
    def backfill_derived_state_cmd():
        """Persist read-time corrections (AMC label, legacy statuses, paid ⇒ approved)."""
        from assetdesk.services.asset_lifecycle import backfill_assets
        from assetdesk.services.bill_service import backfill_bills
        assets = backfill_assets()
        bills = backfill_bills()
        logger.info("Backfilled %s asset(s) and %s bill(s).", assets, bills)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
