"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in app/__init__.py with no default limits and a
tenant-aware key; this module attaches the limits once blueprints are
registered.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def tenant_rate_limit_key():
    """Dynamic rate limit key: tenant_id if available, else remote IP."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to the lifecycle blueprint.

    Limits (per tenant):
        - Write endpoints:  60/minute  (POST/PUT/PATCH/DELETE)
        - Read endpoints:   200/minute (GET)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("lifecycle")
    if bp:
        limiter.limit(WRITE_LIMIT, methods=["POST", "PUT", "PATCH", "DELETE"])(bp)
        limiter.limit(READ_LIMIT, methods=["GET"])(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — write: %s, read: %s (per tenant)", WRITE_LIMIT, READ_LIMIT)
