"""
Model Lifecycle — Change History.

Append-only audit trail of entity-scoped mutations. Writers receive the
caller's open tenant connection so each entry commits or rolls back with
the mutation it describes.
"""

import logging

from sqlalchemy import insert, select

from app.models.lifecycle import history_to_dict, lifecycle_change_history
from app.tenant import tenant_connection

logger = logging.getLogger(__name__)

CHANGE_TYPES = {
    "value_updated",
    "file_added",
    "file_removed",
    "approver_added",
    "approval_decision",
}

MAX_HISTORY_LIMIT = 1000


def record_change(
    conn,
    *,
    tracked_entity_id: int,
    item_id: int | None,
    change_type: str,
    changed_by: int | None,
    old_value=None,
    new_value=None,
) -> None:
    """Append one history entry on the caller's connection."""
    if change_type not in CHANGE_TYPES:
        raise ValueError(f"Unknown change_type {change_type!r}")
    conn.execute(
        insert(lifecycle_change_history),
        {
            "tracked_entity_id": tracked_entity_id,
            "item_id": item_id,
            "change_type": change_type,
            "changed_by": changed_by,
            "old_value": old_value,
            "new_value": new_value,
        },
    )


def list_history(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """Return history entries for one tracked entity, newest first."""
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    offset = max(offset, 0)
    h = lifecycle_change_history
    stmt = select(h).where(h.c.tracked_entity_id == tracked_entity_id)
    if item_id is not None:
        stmt = stmt.where(h.c.item_id == item_id)
    stmt = stmt.order_by(h.c.created_at.desc(), h.c.id.desc()).limit(limit).offset(offset)
    with tenant_connection(tenant_id) as conn:
        rows = conn.execute(stmt).all()
    return [history_to_dict(r) for r in rows]
