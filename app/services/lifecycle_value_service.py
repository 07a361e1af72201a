"""
Model Lifecycle — Value Store.

One typed value per (tracked entity, item) pair, written with a single
INSERT ... ON CONFLICT DO UPDATE and read back as the full lifecycle tree
of a tracked entity.

Approval items carry a small per-approver state machine inside
``value_json``:

    (absent) ──add_approver──▶ pending ──decide_approval──▶ approved
                                        └─────────────────▶ rejected

approved and rejected are terminal. Each transition is written to the
change history in the same transaction as the value.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.lifecycle import (
    file_to_dict,
    item_to_dict,
    lifecycle_item_files,
    lifecycle_items,
    lifecycle_phases,
    lifecycle_values,
    phase_to_dict,
    value_to_dict,
)
from app.services.lifecycle_definition_service import get_active_item
from app.services.lifecycle_history_service import record_change
from app.services.lifecycle_item_types import (
    ApprovalStatus,
    ItemType,
    approval_status,
    validate_value_payload,
)
from app.tenant import tenant_connection
from app.utils.helpers import dialect_insert

logger = logging.getLogger(__name__)


def write_value(conn, tracked_entity_id: int, item_id: int, value_text, value_json, user_id):
    """Upsert the value row on an open tenant connection and return it.

    Both typed fields are always overwritten; a missing field clears it.
    """
    v = lifecycle_values
    now = datetime.now(timezone.utc)
    stmt = dialect_insert(conn, v).values(
        tracked_entity_id=tracked_entity_id,
        item_id=item_id,
        value_text=value_text,
        value_json=value_json,
        updated_by=user_id,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[v.c.tracked_entity_id, v.c.item_id],
        set_={
            "value_text": stmt.excluded.value_text,
            "value_json": stmt.excluded.value_json,
            "updated_by": stmt.excluded.updated_by,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(*v.c)
    return conn.execute(stmt).one()


def _current_value(conn, tracked_entity_id: int, item_id: int, for_update: bool = False):
    v = lifecycle_values
    stmt = select(v).where(v.c.tracked_entity_id == tracked_entity_id, v.c.item_id == item_id)
    if for_update:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).first()


def _snapshot(row) -> dict | None:
    if row is None:
        return None
    return {"value_text": row.value_text, "value_json": row.value_json}


# ──────────────────────────────────────────────────────────────────────────────
# Upsert
# ──────────────────────────────────────────────────────────────────────────────

def upsert_value(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int,
    data: dict,
    user_id: int | None = None,
) -> dict:
    """Create or overwrite the value of one item for one tracked entity.

    Args:
        data: {"value_text"?: str | None, "value_json"?: any}. Absent keys
            are written as NULL.

    On approval items the list may add pending approvers and drop pending
    ones; decided entries must come back unchanged. Decisions go through
    ``decide_approval``.

    Raises:
        NotFoundError: If the item does not exist or is inactive.
        ValidationError: If the payload does not fit the item's type.
        ConflictError: If an approval payload alters a decided entry or
            introduces a decision.
    """
    value_text = data.get("value_text")
    value_json = data.get("value_json")

    with tenant_connection(tenant_id) as conn:
        item = get_active_item(conn, item_id)
        validate_value_payload(item.item_type, item.config, value_text, value_json)
        previous = _current_value(conn, tracked_entity_id, item_id, for_update=True)
        if item.item_type == ItemType.APPROVAL.value:
            _check_approval_rewrite(_stored_approvals(item, previous), value_json or [])
        row = write_value(conn, tracked_entity_id, item_id, value_text, value_json, user_id)
        record_change(
            conn,
            tracked_entity_id=tracked_entity_id,
            item_id=item_id,
            change_type="value_updated",
            changed_by=user_id,
            old_value=_snapshot(previous),
            new_value=_snapshot(row),
        )
    logger.info(
        "Value upserted entity=%s item=%s tenant=%s user=%s",
        tracked_entity_id, item_id, tenant_id, user_id,
    )
    return value_to_dict(row)


# ──────────────────────────────────────────────────────────────────────────────
# Read path
# ──────────────────────────────────────────────────────────────────────────────

def get_lifecycle(tenant_id: str, tracked_entity_id: int) -> list[dict]:
    """Return the active catalogue annotated with one entity's values and files.

    Phases and items are ordered by display_order. Each item carries
    ``value`` (the value dict with a ``files`` list) or None.

    Per phase this issues exactly three queries: the phase's items, the
    entity's values for those items, and the files of those values.
    """
    p, i, v, f = lifecycle_phases, lifecycle_items, lifecycle_values, lifecycle_item_files

    with tenant_connection(tenant_id) as conn:
        phase_rows = conn.execute(
            select(p)
            .where(p.c.is_active.is_(True))
            .order_by(p.c.display_order.asc(), p.c.id.asc())
        ).all()

        phases = []
        for phase_row in phase_rows:
            item_rows = conn.execute(
                select(i)
                .where(i.c.phase_id == phase_row.id, i.c.is_active.is_(True))
                .order_by(i.c.display_order.asc(), i.c.id.asc())
            ).all()

            value_rows = conn.execute(
                select(v)
                .join(i, v.c.item_id == i.c.id)
                .where(v.c.tracked_entity_id == tracked_entity_id, i.c.phase_id == phase_row.id)
            ).all()

            files_by_value: dict[int, list[dict]] = {}
            value_ids = [row.id for row in value_rows]
            if value_ids:
                file_rows = conn.execute(
                    select(f).where(f.c.value_id.in_(value_ids)).order_by(f.c.created_at.asc(), f.c.id.asc())
                ).all()
                for file_row in file_rows:
                    files_by_value.setdefault(file_row.value_id, []).append(file_to_dict(file_row))

            value_by_item = {}
            for value_row in value_rows:
                value = value_to_dict(value_row)
                value["files"] = files_by_value.get(value_row.id, [])
                value_by_item[value_row.item_id] = value

            phase = phase_to_dict(phase_row)
            phase["items"] = []
            for item_row in item_rows:
                item = item_to_dict(item_row)
                item["value"] = value_by_item.get(item_row.id)
                phase["items"].append(item)
            phases.append(phase)

    return phases


# ──────────────────────────────────────────────────────────────────────────────
# Approval sub-workflow
# ──────────────────────────────────────────────────────────────────────────────

def _approval_item(conn, item_id: int):
    item = get_active_item(conn, item_id)
    if item.item_type != ItemType.APPROVAL.value:
        raise ValidationError(
            "Item is not an approval item",
            details={"item_type": f"expected 'approval', got {item.item_type!r}"},
        )
    return item


def _stored_approvals(item, row) -> list[dict]:
    """Approver entries held by ``row``, checked against the approval shape."""
    if row is None:
        return []
    try:
        validate_value_payload(ItemType.APPROVAL, item.config, row.value_text, row.value_json)
    except ValidationError as exc:
        raise ConflictError(
            "Value", "value_json", None,
            message=f"Stored value of item {item.id} is not an approver list",
        ) from exc
    return [dict(entry) for entry in row.value_json or []]


def _check_approval_rewrite(stored: list[dict], incoming: list[dict]) -> None:
    incoming_by_user = {entry["userId"]: entry for entry in incoming}
    for entry in stored:
        if not ApprovalStatus(entry["status"]).is_terminal:
            continue
        replacement = incoming_by_user.get(entry["userId"]) or {}
        if (replacement.get("status"), replacement.get("date")) != (entry["status"], entry.get("date")):
            raise ConflictError(
                "Approver", "status", entry["status"],
                message=f"Approver {entry['userId']} already {entry['status']}",
            )
    decided = {entry["userId"] for entry in stored if ApprovalStatus(entry["status"]).is_terminal}
    for entry in incoming:
        if entry["userId"] not in decided and ApprovalStatus(entry["status"]).is_terminal:
            raise ConflictError(
                "Approver", "status", entry["status"],
                message=f"Approver {entry['userId']} must be decided through the approvals route",
            )


def _approval_result(row, item) -> dict:
    data = value_to_dict(row)
    data["approval_status"] = approval_status(
        row.value_json, (item.config or {}).get("requiredApprovers")
    )
    return data


def add_approver(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int,
    approver_id,
    user_id: int | None = None,
) -> dict:
    """Add a pending approver to an approval item.

    Raises:
        ValidationError: Item is not an approval item, or bad approver id.
        ConflictError: The approver is already listed.
        NotFoundError: Item missing or inactive.
    """
    if not isinstance(approver_id, int) or isinstance(approver_id, bool) or approver_id <= 0:
        raise ValidationError("userId is required", details={"userId": "must be a positive integer"})

    with tenant_connection(tenant_id) as conn:
        item = _approval_item(conn, item_id)
        entries = _stored_approvals(item, _current_value(conn, tracked_entity_id, item_id, for_update=True))
        if any(entry["userId"] == approver_id for entry in entries):
            raise ConflictError("Approver", "userId", approver_id)
        entry = {"userId": approver_id, "status": ApprovalStatus.PENDING.value}
        entries.append(entry)
        row = write_value(conn, tracked_entity_id, item_id, None, entries, user_id)
        record_change(
            conn,
            tracked_entity_id=tracked_entity_id,
            item_id=item_id,
            change_type="approver_added",
            changed_by=user_id,
            new_value=entry,
        )
    logger.info(
        "Approver added entity=%s item=%s approver=%s tenant=%s",
        tracked_entity_id, item_id, approver_id, tenant_id,
    )
    return _approval_result(row, item)


def decide_approval(
    tenant_id: str,
    tracked_entity_id: int,
    item_id: int,
    approver_id: int,
    status,
    user_id: int | None = None,
) -> dict:
    """Move one approver from pending to approved or rejected.

    Raises:
        ValidationError: Status is not approved/rejected, or not an approval item.
        NotFoundError: Item missing/inactive, or approver not listed.
        ConflictError: The approver already decided.
    """
    try:
        decision = ApprovalStatus(status)
    except ValueError:
        decision = None
    if decision is None or not decision.is_terminal:
        raise ValidationError(
            "Invalid approval decision",
            details={"status": "must be 'approved' or 'rejected'"},
        )

    with tenant_connection(tenant_id) as conn:
        item = _approval_item(conn, item_id)
        entries = _stored_approvals(item, _current_value(conn, tracked_entity_id, item_id, for_update=True))
        entry = next((e for e in entries if e["userId"] == approver_id), None)
        if entry is None:
            raise NotFoundError(resource="Approver", resource_id=approver_id, tenant_id=tenant_id)
        if ApprovalStatus(entry["status"]).is_terminal:
            raise ConflictError(
                "Approver", "status", entry["status"],
                message=f"Approver {approver_id} already {entry['status']}",
            )
        entry["status"] = decision.value
        entry["date"] = datetime.now(timezone.utc).isoformat()
        row = write_value(conn, tracked_entity_id, item_id, None, entries, user_id)
        record_change(
            conn,
            tracked_entity_id=tracked_entity_id,
            item_id=item_id,
            change_type="approval_decision",
            changed_by=user_id,
            old_value={"userId": approver_id, "status": ApprovalStatus.PENDING.value},
            new_value={"userId": approver_id, "status": decision.value},
        )
    logger.info(
        "Approval decided entity=%s item=%s approver=%s status=%s tenant=%s",
        tracked_entity_id, item_id, approver_id, decision.value, tenant_id,
    )
    return _approval_result(row, item)
