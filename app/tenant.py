"""
Model Lifecycle Tracking Service — Multi-Tenant Engine (namespace-per-tenant).

Strategy: every tenant owns an isolated namespace holding the five lifecycle
tables. On PostgreSQL the namespace is a schema; on SQLite (dev / tests) it
is a database attached under the tenant's name.

Tenant selection happens via:
    1. X-Tenant-ID HTTP header (API calls)
    2. TENANT_ID environment variable (CLI / single-tenant mode)
    3. DEFAULT_TENANT_ID config value ("default")

Architecture:
    ┌─────────────┐   ┌──────────────────────┐   ┌──────────────────────────┐
    │  Request     │──▶│  resolve_tenant()    │──▶│  validate_tenant_id()    │
    │  X-Tenant-ID │   │  → "acme", ...       │   │  allow-list, fail closed │
    └─────────────┘   └──────────────────────┘   └────────────┬─────────────┘
                                                              │
                                                 ┌────────────▼─────────────┐
                                                 │  tenant_connection()     │
                                                 │  schema_translate_map    │
                                                 │  {None: "acme"}          │
                                                 └──────────────────────────┘

The tenant identifier is the only tenant-supplied text that ever reaches a
statement, and only as a quoted identifier rendered by SQLAlchemy after it
has passed the allow-list.
"""

import logging
import os
import re
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import text

from app.core.exceptions import TenantIdentifierError
from app.models import db

logger = logging.getLogger(__name__)

TENANT_ID_PATTERN = re.compile(r"[A-Za-z0-9_]{1,30}")

SQLITE_TENANT_FILE_TEMPLATE = "lifecycle_tenant_{tenant}.db"


# ── Validation ───────────────────────────────────────────────────────────

def validate_tenant_id(tenant_id) -> str:
    """Return the tenant id unchanged if it passes the allow-list.

    Raises:
        TenantIdentifierError: For anything other than 1-30 characters of
            letters, digits or underscore.
    """
    if not isinstance(tenant_id, str) or not TENANT_ID_PATTERN.fullmatch(tenant_id):
        logger.warning("Rejected tenant identifier %r", tenant_id)
        raise TenantIdentifierError(tenant_id)
    return tenant_id


# ── Tenant Resolution ────────────────────────────────────────────────────

def resolve_tenant() -> str:
    """
    Resolve current tenant ID from (in priority order):
        1. Flask request header X-Tenant-ID
        2. Environment variable TENANT_ID
        3. DEFAULT_TENANT_ID from app config (falls back to "default")

    The result is NOT validated here; callers pass it through
    ``validate_tenant_id`` (the request-context middleware does so).
    """
    from flask import current_app, has_app_context, has_request_context, request

    if has_request_context():
        header = request.headers.get("X-Tenant-ID", "").strip()
        if header:
            return header

    env_tenant = os.getenv("TENANT_ID", "").strip()
    if env_tenant:
        return env_tenant

    if has_app_context():
        return current_app.config.get("DEFAULT_TENANT_ID", "default")
    return "default"


# ── Namespace handling ───────────────────────────────────────────────────

def sqlite_tenant_database(main_database: str | None, tenant_id: str) -> str:
    """Path of the SQLite file attached for a tenant.

    In-memory main databases get in-memory tenant databases; file databases
    get a sibling file per tenant.
    """
    if not main_database or main_database == ":memory:":
        return ":memory:"
    directory = Path(main_database).resolve().parent
    return str(directory / SQLITE_TENANT_FILE_TEMPLATE.format(tenant=tenant_id))


def _attach_sqlite_namespace(conn, tenant_id: str) -> None:
    attached = {row[1] for row in conn.execute(text("PRAGMA database_list"))}
    if tenant_id in attached:
        return
    path = sqlite_tenant_database(conn.engine.url.database, tenant_id)
    quoted = conn.dialect.identifier_preparer.quote_identifier(tenant_id)
    conn.execute(text(f"ATTACH DATABASE :path AS {quoted}"), {"path": path})
    logger.debug("Attached SQLite namespace %s (%s)", tenant_id, path)


def create_tenant_namespace(conn, tenant_id: str) -> None:
    """Make sure the tenant namespace exists (PostgreSQL schema / SQLite attach)."""
    tenant_id = validate_tenant_id(tenant_id)
    if conn.dialect.name == "postgresql":
        quoted = conn.dialect.identifier_preparer.quote_identifier(tenant_id)
        conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {quoted}"))
    elif conn.dialect.name == "sqlite":
        _attach_sqlite_namespace(conn, tenant_id)


@contextmanager
def tenant_connection(tenant_id, engine=None, create_namespace=False):
    """Yield a connection bound to one tenant namespace, inside one transaction.

    Every lifecycle table (declared with schema=None) is rendered into the
    tenant namespace through ``schema_translate_map``. The transaction
    commits when the block exits cleanly and rolls back otherwise.

    Args:
        tenant_id: Raw tenant identifier; validated before anything else.
        engine: Engine override (defaults to the Flask-SQLAlchemy engine).
        create_namespace: Create the PostgreSQL schema if missing. Only the
            installer asks for this.

    Raises:
        TenantIdentifierError: Before any connection is opened, if the
            tenant id fails the allow-list.
    """
    tenant_id = validate_tenant_id(tenant_id)
    engine = engine if engine is not None else db.engine
    with engine.begin() as conn:
        if create_namespace:
            create_tenant_namespace(conn, tenant_id)
        elif conn.dialect.name == "sqlite":
            _attach_sqlite_namespace(conn, tenant_id)
        yield conn.execution_options(schema_translate_map={None: tenant_id})
