"""
Model Lifecycle Tracking Service
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config

CLI:
    flask lifecycle install <tenant>
    flask lifecycle uninstall <tenant>
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask.cli import AppGroup
from flask_cors import CORS
from flask_limiter import Limiter

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits, tenant_rate_limit_key
from app.middleware.request_context import init_request_context
from app.middleware.timing import init_request_timing
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections (cascading deletes rely on it)."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


limiter = Limiter(
    key_func=tenant_rate_limit_key,
    default_limits=[],                     # no global limit; limits are per-blueprint
)

lifecycle_cli = AppGroup("lifecycle", help="Provision lifecycle tables per tenant.")


@lifecycle_cli.command("install")
@click.argument("tenant_id")
def install_cmd(tenant_id):
    """Create the lifecycle tables for TENANT_ID and seed the default catalogue."""
    from app.services.lifecycle_schema_service import install
    result = install(tenant_id)
    logger.info("%s (tenant=%s)", result["message"], tenant_id)
    click.echo(result["message"])


@lifecycle_cli.command("uninstall")
@click.argument("tenant_id")
def uninstall_cmd(tenant_id):
    """Drop every lifecycle table of TENANT_ID."""
    from app.services.lifecycle_schema_service import uninstall
    result = uninstall(tenant_id)
    logger.info("%s (tenant=%s)", result["message"], tenant_id)
    click.echo(result["message"])


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing + context (before the limiter reads g.tenant_id) ──
    init_request_timing(app)
    init_request_context(app)
    limiter.init_app(app)

    # ── Request guard (Content-Type) ─────────────────────────────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.lifecycle_bp import lifecycle_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(lifecycle_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    app.cli.add_command(lifecycle_cli)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, e.description)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
