"""
Model Lifecycle — Schema Provisioner.

Creates and drops the five tenant-scoped lifecycle tables and seeds the
default phase/item catalogue on first install.

    install(tenant_id)    CREATE ... IF NOT EXISTS for tables and indexes,
                          then seed only if the tenant has zero phases.
    uninstall(tenant_id)  DROP ... IF EXISTS in dependency order
                          (history → files → values → items → phases).

Both run inside a single transaction; on PostgreSQL DDL is transactional
so a failed install leaves nothing behind. The IF [NOT] EXISTS guards keep
repeated calls safe on every backend.

Usage:
    from app.services.lifecycle_schema_service import install
    result = install("acme")
    # -> {"success": True, "message": "...", "installed_at": "..."}
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, insert, select
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import CreateIndex, CreateTable, DropTable

from app.core.exceptions import ProvisioningError
from app.models.lifecycle import LIFECYCLE_TABLES, lifecycle_items, lifecycle_phases
from app.services.lifecycle_defaults import DEFAULT_PHASES
from app.tenant import tenant_connection, validate_tenant_id

logger = logging.getLogger(__name__)

PLUGIN_METADATA = {
    "name": "Model Lifecycle",
    "version": "1.0.0",
    "author": "VerifyWise",
    "description": (
        "Track AI model lifecycle phases from registration through monitoring "
        "with configurable phases, approval workflows, and compliance documentation"
    ),
}


class DropTableCascade(DropTable):
    """DROP TABLE that also removes dependent objects on PostgreSQL."""


@compiles(DropTableCascade)
def _compile_drop_table_cascade(element, compiler, **kw):
    ddl = compiler.visit_drop_table(element, **kw)
    if compiler.dialect.name == "postgresql":
        ddl += " CASCADE"
    return ddl


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _create_tables(conn) -> None:
    for table in LIFECYCLE_TABLES:
        conn.execute(CreateTable(table, if_not_exists=True))
        for index in sorted(table.indexes, key=lambda ix: ix.name):
            conn.execute(CreateIndex(index, if_not_exists=True))


def _seed_default_catalogue(conn) -> None:
    for phase in DEFAULT_PHASES:
        phase_id = conn.execute(
            insert(lifecycle_phases).returning(lifecycle_phases.c.id),
            {
                "name": phase["name"],
                "description": phase["description"],
                "display_order": phase["display_order"],
                "is_active": True,
            },
        ).scalar_one()
        conn.execute(
            insert(lifecycle_items),
            [
                {
                    "phase_id": phase_id,
                    "name": item["name"],
                    "item_type": item["item_type"],
                    "is_required": item["is_required"],
                    "display_order": item["display_order"],
                    "config": item["config"],
                    "is_active": True,
                }
                for item in phase["items"]
            ],
        )


def install(tenant_id: str, engine=None) -> dict:
    """Provision the lifecycle tables for a tenant and seed the default catalogue.

    Args:
        tenant_id: Tenant namespace. Must pass the allow-list.
        engine: Optional engine override.

    Returns:
        {"success": True, "message": str, "installed_at": ISO-8601 str}

    Raises:
        TenantIdentifierError: Invalid tenant id; nothing was executed.
        ProvisioningError: "Installation failed: ..." wrapping the cause.
    """
    tenant_id = validate_tenant_id(tenant_id)
    try:
        with tenant_connection(tenant_id, engine=engine, create_namespace=True) as conn:
            _create_tables(conn)
            phase_count = conn.execute(
                select(func.count()).select_from(lifecycle_phases)
            ).scalar_one()
            seeded = phase_count == 0
            if seeded:
                _seed_default_catalogue(conn)
    except Exception as exc:
        logger.exception("Lifecycle install failed tenant=%s", tenant_id)
        raise ProvisioningError("Installation", exc) from exc

    if seeded:
        message = (
            "Model Lifecycle plugin installed successfully. "
            f"Seeded {len(DEFAULT_PHASES)} default phases."
        )
    else:
        message = "Model Lifecycle plugin installed successfully. Existing phases preserved."
    logger.info("Lifecycle installed tenant=%s seeded=%s", tenant_id, seeded)
    return {"success": True, "message": message, "installed_at": _now_iso()}


def uninstall(tenant_id: str, engine=None) -> dict:
    """Drop every lifecycle table of a tenant. Safe to repeat.

    Raises:
        TenantIdentifierError: Invalid tenant id; nothing was executed.
        ProvisioningError: "Uninstallation failed: ..." wrapping the cause.
    """
    tenant_id = validate_tenant_id(tenant_id)
    try:
        with tenant_connection(tenant_id, engine=engine) as conn:
            for table in reversed(LIFECYCLE_TABLES):
                conn.execute(DropTableCascade(table, if_exists=True))
    except Exception as exc:
        logger.exception("Lifecycle uninstall failed tenant=%s", tenant_id)
        raise ProvisioningError("Uninstallation", exc) from exc

    logger.info("Lifecycle uninstalled tenant=%s", tenant_id)
    return {
        "success": True,
        "message": "Model Lifecycle plugin uninstalled successfully. All lifecycle tables dropped.",
        "uninstalled_at": _now_iso(),
    }


def validate_config(config) -> dict:
    """The plugin carries no settings of its own; any mapping is accepted."""
    if config is not None and not isinstance(config, dict):
        return {"valid": False, "errors": ["Configuration must be an object"]}
    return {"valid": True, "errors": []}
