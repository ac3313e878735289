"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in assetdesk/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from assetdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprints whose routes write to the record store
WRITE_BLUEPRINTS = ("asset_bp", "disposal_bp", "payables_bp", "role_bp", "auth_bp")
# Polled by the client
READ_BLUEPRINTS = ("dashboard_bp", "notification_bp")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Workflow / write blueprints:  60/minute
        - Dashboard and notification polling:  300/minute
        - Health check:  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute")(bp)

    for bp_name in READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("300/minute")(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write 60/min, polling 300/min")
