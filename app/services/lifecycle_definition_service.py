"""
Model Lifecycle — Definition Store.

CRUD and explicit reordering for the configurable catalogue: Phases and
the typed Items they own. Every public function opens exactly one tenant
transaction and owns its commit.

Updates follow PATCH semantics over a field allow-list: only keys present
in the payload are written, and a payload with none of them raises
NoFieldsToUpdateError instead of issuing a no-op write.

Deletes are hard deletes; the schema's cascading foreign keys remove the
Items, Values and file attachments beneath. Setting ``is_active`` to false
retires a row while keeping its data.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, bindparam, delete, func, insert, select, update

from app.core.exceptions import ConflictError, NoFieldsToUpdateError, NotFoundError, ValidationError
from app.models.lifecycle import (
    item_to_dict,
    lifecycle_items,
    lifecycle_phases,
    lifecycle_values,
    phase_to_dict,
)
from app.services.lifecycle_item_types import parse_item_type, validate_item_config
from app.tenant import tenant_connection

logger = logging.getLogger(__name__)

PHASE_UPDATABLE_FIELDS = ("name", "description", "display_order", "is_active")
ITEM_UPDATABLE_FIELDS = (
    "name", "description", "item_type", "is_required",
    "display_order", "config", "is_active",
)

MAX_NAME_LENGTH = 255


# ──────────────────────────────────────────────────────────────────────────────
# Field checks
# ──────────────────────────────────────────────────────────────────────────────

def _check_fields(data: dict) -> dict:
    """Field-level errors for the shared phase/item attributes present in data."""
    errors = {}
    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            errors["name"] = "must be a non-empty string"
        elif len(name) > MAX_NAME_LENGTH:
            errors["name"] = f"must be <= {MAX_NAME_LENGTH} chars"
    if "description" in data and data["description"] is not None and not isinstance(data["description"], str):
        errors["description"] = "must be a string or null"
    if "display_order" in data:
        order = data["display_order"]
        if not isinstance(order, int) or isinstance(order, bool):
            errors["display_order"] = "must be an integer"
    for flag in ("is_active", "is_required"):
        if flag in data and not isinstance(data[flag], bool):
            errors[flag] = "must be a boolean"
    return errors


def _raise_if(errors: dict, message: str) -> None:
    if errors:
        raise ValidationError(message, details=errors)


def _parse_ordered_ids(ordered_ids) -> list[int]:
    if not isinstance(ordered_ids, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in ordered_ids
    ):
        raise ValidationError(
            "orderedIds must be a list of integers",
            details={"orderedIds": "must be a list of integers"},
        )
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError(
            "orderedIds must not contain duplicates",
            details={"orderedIds": "duplicate ids"},
        )
    return ordered_ids


def _reorder_params(ordered_ids: list[int], **extra) -> list[dict]:
    now = datetime.now(timezone.utc)
    return [
        {"b_id": row_id, "b_order": position, "b_now": now, **extra}
        for position, row_id in enumerate(ordered_ids, start=1)
    ]


# ──────────────────────────────────────────────────────────────────────────────
# Catalogue read
# ──────────────────────────────────────────────────────────────────────────────

def list_config(tenant_id: str, include_inactive: bool = False) -> list[dict]:
    """Return phases ordered by display_order, each with its ordered items.

    Two queries regardless of catalogue size: one for phases, one for all of
    their items.
    """
    p, i = lifecycle_phases, lifecycle_items
    phase_stmt = select(p).order_by(p.c.display_order.asc(), p.c.id.asc())
    if not include_inactive:
        phase_stmt = phase_stmt.where(p.c.is_active.is_(True))

    with tenant_connection(tenant_id) as conn:
        phase_rows = conn.execute(phase_stmt).all()
        phase_ids = [row.id for row in phase_rows]
        item_rows = []
        if phase_ids:
            item_stmt = (
                select(i)
                .where(i.c.phase_id.in_(phase_ids))
                .order_by(i.c.display_order.asc(), i.c.id.asc())
            )
            if not include_inactive:
                item_stmt = item_stmt.where(i.c.is_active.is_(True))
            item_rows = conn.execute(item_stmt).all()

    items_by_phase: dict[int, list[dict]] = {pid: [] for pid in phase_ids}
    for row in item_rows:
        items_by_phase[row.phase_id].append(item_to_dict(row))

    result = []
    for row in phase_rows:
        phase = phase_to_dict(row)
        phase["items"] = items_by_phase[row.id]
        result.append(phase)
    return result


def get_active_item(conn, item_id: int):
    """Fetch an active item on an open tenant connection.

    Raises:
        NotFoundError: If the item does not exist or is inactive.
    """
    row = conn.execute(
        select(lifecycle_items).where(
            lifecycle_items.c.id == item_id,
            lifecycle_items.c.is_active.is_(True),
        )
    ).first()
    if row is None:
        raise NotFoundError(resource="Item", resource_id=item_id)
    return row


# ──────────────────────────────────────────────────────────────────────────────
# Phases
# ──────────────────────────────────────────────────────────────────────────────

def create_phase(tenant_id: str, data: dict) -> dict:
    """Create a phase; display_order defaults to max(existing) + 1.

    Raises:
        ValidationError: If name is missing or a supplied field is malformed.
    """
    errors = _check_fields(data)
    if "name" not in data:
        errors["name"] = "is required"
    _raise_if(errors, "Invalid phase")

    p = lifecycle_phases
    with tenant_connection(tenant_id) as conn:
        display_order = data.get("display_order")
        if display_order is None:
            display_order = conn.execute(
                select(func.coalesce(func.max(p.c.display_order), 0) + 1)
            ).scalar_one()
        row = conn.execute(
            insert(p).returning(*p.c),
            {
                "name": data["name"],
                "description": data.get("description") or None,
                "display_order": display_order,
                "is_active": data.get("is_active", True),
            },
        ).one()
    logger.info("Phase created id=%s tenant=%s", row.id, tenant_id)
    return phase_to_dict(row)


def update_phase(tenant_id: str, phase_id: int, data: dict) -> dict:
    """Apply a partial update to a phase.

    Raises:
        NoFieldsToUpdateError: If no updatable field is present.
        ValidationError: If a supplied field is malformed.
        NotFoundError: If the phase does not exist.
    """
    changes = {k: data[k] for k in PHASE_UPDATABLE_FIELDS if k in data}
    if not changes:
        raise NoFieldsToUpdateError("Phase")
    _raise_if(_check_fields(changes), "Invalid phase")

    p = lifecycle_phases
    changes["updated_at"] = datetime.now(timezone.utc)
    with tenant_connection(tenant_id) as conn:
        row = conn.execute(
            update(p).where(p.c.id == phase_id).values(**changes).returning(*p.c)
        ).first()
    if row is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id, tenant_id=tenant_id)
    logger.info("Phase updated id=%s tenant=%s fields=%s", phase_id, tenant_id, sorted(changes))
    return phase_to_dict(row)


def delete_phase(tenant_id: str, phase_id: int) -> None:
    """Delete a phase and, by cascade, its items, values and attachments.

    Raises:
        NotFoundError: If the phase does not exist.
    """
    p = lifecycle_phases
    with tenant_connection(tenant_id) as conn:
        deleted = conn.execute(
            delete(p).where(p.c.id == phase_id).returning(p.c.id)
        ).first()
    if deleted is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id, tenant_id=tenant_id)
    logger.info("Phase deleted id=%s tenant=%s", phase_id, tenant_id)


def reorder_phases(tenant_id: str, ordered_ids) -> None:
    """Assign display_order 1..n following list position, in one transaction.

    Ids that match no phase are ignored.
    """
    ordered_ids = _parse_ordered_ids(ordered_ids)
    if not ordered_ids:
        return
    p = lifecycle_phases
    stmt = (
        update(p)
        .where(p.c.id == bindparam("b_id"))
        .values(display_order=bindparam("b_order"), updated_at=bindparam("b_now"))
    )
    with tenant_connection(tenant_id) as conn:
        conn.execute(stmt, _reorder_params(ordered_ids))
    logger.info("Phases reordered tenant=%s count=%s", tenant_id, len(ordered_ids))


# ──────────────────────────────────────────────────────────────────────────────
# Items
# ──────────────────────────────────────────────────────────────────────────────

def _require_phase(conn, tenant_id: str, phase_id: int) -> None:
    exists = conn.execute(
        select(lifecycle_phases.c.id).where(lifecycle_phases.c.id == phase_id)
    ).first()
    if exists is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id, tenant_id=tenant_id)


def create_item(tenant_id: str, phase_id: int, data: dict) -> dict:
    """Create an item under a phase; display_order defaults to max + 1 within the phase.

    item_type defaults to "text"; config is checked against the type.

    Raises:
        ValidationError: Missing name, unknown item_type or malformed config.
        NotFoundError: If the parent phase does not exist.
    """
    errors = _check_fields(data)
    if "name" not in data:
        errors["name"] = "is required"
    _raise_if(errors, "Invalid item")
    item_type = parse_item_type(data.get("item_type") or "text")
    config = validate_item_config(item_type, data.get("config"))

    i = lifecycle_items
    with tenant_connection(tenant_id) as conn:
        _require_phase(conn, tenant_id, phase_id)
        display_order = data.get("display_order")
        if display_order is None:
            display_order = conn.execute(
                select(func.coalesce(func.max(i.c.display_order), 0) + 1)
                .where(i.c.phase_id == phase_id)
            ).scalar_one()
        row = conn.execute(
            insert(i).returning(*i.c),
            {
                "phase_id": phase_id,
                "name": data["name"],
                "description": data.get("description") or None,
                "item_type": item_type.value,
                "is_required": data.get("is_required", False),
                "display_order": display_order,
                "config": config,
                "is_active": data.get("is_active", True),
            },
        ).one()
    logger.info("Item created id=%s phase=%s tenant=%s type=%s", row.id, phase_id, tenant_id, row.item_type)
    return item_to_dict(row)


def _has_values(conn, item_id: int) -> bool:
    v = lifecycle_values
    return conn.execute(select(v.c.id).where(v.c.item_id == item_id).limit(1)).first() is not None


def update_item(tenant_id: str, item_id: int, data: dict) -> dict:
    """Apply a partial update to an item.

    When item_type or config changes, the resulting (type, config) pair is
    validated as a whole. The type is frozen once any tracked entity holds
    a value for the item.

    Raises:
        NoFieldsToUpdateError: If no updatable field is present.
        ValidationError: If a supplied field is malformed.
        NotFoundError: If the item does not exist.
        ConflictError: If item_type changes while values exist.
    """
    changes = {k: data[k] for k in ITEM_UPDATABLE_FIELDS if k in data}
    if not changes:
        raise NoFieldsToUpdateError("Item")
    _raise_if(_check_fields(changes), "Invalid item")

    i = lifecycle_items
    with tenant_connection(tenant_id) as conn:
        if "item_type" in changes or "config" in changes:
            current = conn.execute(select(i.c.item_type, i.c.config).where(i.c.id == item_id)).first()
            if current is None:
                raise NotFoundError(resource="Item", resource_id=item_id, tenant_id=tenant_id)
            item_type = parse_item_type(changes.get("item_type", current.item_type))
            if item_type.value != current.item_type and _has_values(conn, item_id):
                raise ConflictError(
                    "Item", "item_type", item_type.value,
                    message=f"Cannot change item_type of item {item_id} while values exist",
                )
            changes["item_type"] = item_type.value
            changes["config"] = validate_item_config(item_type, changes.get("config", current.config))
        changes["updated_at"] = datetime.now(timezone.utc)
        row = conn.execute(
            update(i).where(i.c.id == item_id).values(**changes).returning(*i.c)
        ).first()
    if row is None:
        raise NotFoundError(resource="Item", resource_id=item_id, tenant_id=tenant_id)
    logger.info("Item updated id=%s tenant=%s fields=%s", item_id, tenant_id, sorted(changes))
    return item_to_dict(row)


def delete_item(tenant_id: str, item_id: int) -> None:
    """Delete an item and, by cascade, its values and attachments.

    Raises:
        NotFoundError: If the item does not exist.
    """
    i = lifecycle_items
    with tenant_connection(tenant_id) as conn:
        deleted = conn.execute(
            delete(i).where(i.c.id == item_id).returning(i.c.id)
        ).first()
    if deleted is None:
        raise NotFoundError(resource="Item", resource_id=item_id, tenant_id=tenant_id)
    logger.info("Item deleted id=%s tenant=%s", item_id, tenant_id)


def reorder_items(tenant_id: str, phase_id: int, ordered_ids) -> None:
    """Assign display_order 1..n to the items of one phase, in one transaction.

    Ids that belong to another phase are left untouched.

    Raises:
        NotFoundError: If the phase does not exist.
    """
    ordered_ids = _parse_ordered_ids(ordered_ids)
    i = lifecycle_items
    stmt = (
        update(i)
        .where(and_(i.c.id == bindparam("b_id"), i.c.phase_id == bindparam("b_phase")))
        .values(display_order=bindparam("b_order"), updated_at=bindparam("b_now"))
    )
    with tenant_connection(tenant_id) as conn:
        _require_phase(conn, tenant_id, phase_id)
        if ordered_ids:
            conn.execute(stmt, _reorder_params(ordered_ids, b_phase=phase_id))
    logger.info("Items reordered phase=%s tenant=%s count=%s", phase_id, tenant_id, len(ordered_ids))
