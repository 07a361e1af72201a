"""
Model Lifecycle — File Attachment Store.

Links externally owned files to the value row of a (tracked entity, item)
pair. Attaching to a pair without a value creates an empty anchor value in
the same transaction; detaching is always scoped by the pair, never by
file id alone.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select

from app.core.exceptions import ValidationError
from app.models.lifecycle import file_to_dict, lifecycle_item_files, lifecycle_values
from app.services.lifecycle_definition_service import get_active_item
from app.services.lifecycle_history_service import record_change
from app.services.lifecycle_item_types import holds_files
from app.tenant import tenant_connection
from app.utils.helpers import dialect_insert

logger = logging.getLogger(__name__)


def _parse_file_id(file_id) -> int:
    if isinstance(file_id, bool) or not isinstance(file_id, int) or file_id <= 0:
        raise ValidationError("fileId is required", details={"fileId": "must be a positive integer"})
    return file_id


def _anchor_value_id(conn, tracked_entity_id: int, item_id: int, user_id) -> int:
    """Create-or-get the value row id in one statement.

    The conflict branch rewrites item_id with itself so RETURNING yields the
    existing row's id; no visible column changes.
    """
    v = lifecycle_values
    now = datetime.now(timezone.utc)
    stmt = dialect_insert(conn, v).values(
        tracked_entity_id=tracked_entity_id,
        item_id=item_id,
        updated_by=user_id,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[v.c.tracked_entity_id, v.c.item_id],
        set_={"item_id": stmt.excluded.item_id},
    ).returning(v.c.id)
    return conn.execute(stmt).scalar_one()


def add_file(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int,
    file_id,
    user_id: int | None = None,
) -> dict:
    """Attach a file to an item of a tracked entity.

    Re-attaching the same file is a no-op that returns the existing link.

    Raises:
        ValidationError: Missing/invalid fileId, or the item's maxFiles is reached.
        NotFoundError: Item missing or inactive.
    """
    file_id = _parse_file_id(file_id)
    f = lifecycle_item_files

    with tenant_connection(tenant_id) as conn:
        item = get_active_item(conn, item_id)
        value_id = _anchor_value_id(conn, tracked_entity_id, item_id, user_id)

        existing = conn.execute(
            select(f).where(f.c.value_id == value_id, f.c.file_id == file_id)
        ).first()
        if existing is not None:
            return file_to_dict(existing)

        max_files = (item.config or {}).get("maxFiles")
        if holds_files(item.item_type) and max_files:
            attached = conn.execute(
                select(func.count()).select_from(f).where(f.c.value_id == value_id)
            ).scalar_one()
            if attached >= max_files:
                raise ValidationError(
                    f"Item accepts at most {max_files} files",
                    details={"fileId": f"maxFiles={max_files} reached"},
                )

        stmt = dialect_insert(conn, f).values(
            value_id=value_id,
            file_id=file_id,
            created_at=datetime.now(timezone.utc),
        )
        row = conn.execute(
            stmt.on_conflict_do_nothing(index_elements=[f.c.value_id, f.c.file_id]).returning(*f.c)
        ).first()
        if row is None:
            # Concurrent attach of the same file won the race
            row = conn.execute(
                select(f).where(f.c.value_id == value_id, f.c.file_id == file_id)
            ).one()
        else:
            record_change(
                conn,
                tracked_entity_id=tracked_entity_id,
                item_id=item_id,
                change_type="file_added",
                changed_by=user_id,
                new_value={"file_id": file_id},
            )
    logger.info(
        "File attached entity=%s item=%s file=%s tenant=%s",
        tracked_entity_id, item_id, file_id, tenant_id,
    )
    return file_to_dict(row)


def remove_file(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int,
    file_id: int,
    user_id: int | None = None,
) -> dict:
    """Detach a file from the value of one (tracked entity, item) pair.

    Returns:
        {"success": True, "removed": bool}; removed is False when the file
        was not attached to this pair.
    """
    v, f = lifecycle_values, lifecycle_item_files
    value_id = (
        select(v.c.id)
        .where(v.c.tracked_entity_id == tracked_entity_id, v.c.item_id == item_id)
        .scalar_subquery()
    )
    with tenant_connection(tenant_id) as conn:
        removed = conn.execute(
            delete(f)
            .where(f.c.file_id == file_id, f.c.value_id == value_id)
            .returning(f.c.id)
        ).first()
        if removed is not None:
            record_change(
                conn,
                tracked_entity_id=tracked_entity_id,
                item_id=item_id,
                change_type="file_removed",
                changed_by=user_id,
                old_value={"file_id": file_id},
            )
    if removed is not None:
        logger.info(
            "File detached entity=%s item=%s file=%s tenant=%s",
            tracked_entity_id, item_id, file_id, tenant_id,
        )
    return {"success": True, "removed": removed is not None}
