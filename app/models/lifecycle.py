"""
Model Lifecycle domain tables.

Tables (all created inside the tenant namespace):
    - model_lifecycle_phases:          ordered stages of the workflow
    - model_lifecycle_items:           typed fields belonging to one phase
    - model_lifecycle_values:          one value per (tracked entity, item)
    - model_lifecycle_item_files:      file attachments of a value
    - model_lifecycle_change_history:  append-only audit trail

Tables are declared without a schema. Every statement runs through
``app.tenant.tenant_connection`` which maps the ``None`` schema onto the
validated tenant namespace via ``schema_translate_map``.

Tracked entities, users and files are owned by the host platform; only
their ids are stored here.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

lifecycle_metadata = MetaData()


def _utcnow():
    return datetime.now(timezone.utc)


def _json_column_type():
    # JSONB on PostgreSQL; None is stored as SQL NULL, not JSON 'null'
    return JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


# ── Phases ───────────────────────────────────────────────────────────────

lifecycle_phases = Table(
    "model_lifecycle_phases",
    lifecycle_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("display_order", Integer, nullable=False, default=0),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    Index("idx_model_lifecycle_phases_display_order", "display_order"),
)

# ── Items ────────────────────────────────────────────────────────────────

lifecycle_items = Table(
    "model_lifecycle_items",
    lifecycle_metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "phase_id",
        Integer,
        ForeignKey("model_lifecycle_phases.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("item_type", String(50), nullable=False, default="text"),
    Column("is_required", Boolean, nullable=False, default=False),
    Column("display_order", Integer, nullable=False, default=0),
    Column("config", _json_column_type(), nullable=False, default=dict),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    Index("idx_model_lifecycle_items_phase_id", "phase_id"),
)

# ── Values ───────────────────────────────────────────────────────────────

lifecycle_values = Table(
    "model_lifecycle_values",
    lifecycle_metadata,
    Column("id", Integer, primary_key=True),
    Column("tracked_entity_id", Integer, nullable=False),
    Column(
        "item_id",
        Integer,
        ForeignKey("model_lifecycle_items.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("value_text", Text),
    Column("value_json", _json_column_type()),
    Column("updated_by", Integer),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    UniqueConstraint("tracked_entity_id", "item_id", name="uq_model_lifecycle_values_entity_item"),
    Index("idx_model_lifecycle_values_entity_id", "tracked_entity_id"),
    Index("idx_model_lifecycle_values_entity_item", "tracked_entity_id", "item_id"),
)

# ── File attachments ─────────────────────────────────────────────────────

lifecycle_item_files = Table(
    "model_lifecycle_item_files",
    lifecycle_metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "value_id",
        Integer,
        ForeignKey("model_lifecycle_values.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("file_id", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    UniqueConstraint("value_id", "file_id", name="uq_model_lifecycle_item_files_value_file"),
    Index("idx_model_lifecycle_item_files_value_id", "value_id"),
)

# ── Change history (append-only) ─────────────────────────────────────────

lifecycle_change_history = Table(
    "model_lifecycle_change_history",
    lifecycle_metadata,
    Column("id", Integer, primary_key=True),
    Column("tracked_entity_id", Integer, nullable=False),
    Column("item_id", Integer),
    Column("change_type", String(50), nullable=False),
    Column("changed_by", Integer),
    Column("old_value", _json_column_type()),
    Column("new_value", _json_column_type()),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Index("idx_model_lifecycle_change_history_entity", "tracked_entity_id", "created_at"),
)

# Creation order; uninstall walks it backwards.
LIFECYCLE_TABLES = (
    lifecycle_phases,
    lifecycle_items,
    lifecycle_values,
    lifecycle_item_files,
    lifecycle_change_history,
)


def _iso(value):
    return value.isoformat() if value else None


def phase_to_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "display_order": row.display_order,
        "is_active": bool(row.is_active),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def item_to_dict(row) -> dict:
    return {
        "id": row.id,
        "phase_id": row.phase_id,
        "name": row.name,
        "description": row.description,
        "item_type": row.item_type,
        "is_required": bool(row.is_required),
        "display_order": row.display_order,
        "config": row.config or {},
        "is_active": bool(row.is_active),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def value_to_dict(row) -> dict:
    return {
        "id": row.id,
        "tracked_entity_id": row.tracked_entity_id,
        "item_id": row.item_id,
        "value_text": row.value_text,
        "value_json": row.value_json,
        "updated_by": row.updated_by,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def file_to_dict(row) -> dict:
    return {
        "id": row.id,
        "value_id": row.value_id,
        "file_id": row.file_id,
        "created_at": _iso(row.created_at),
    }


def history_to_dict(row) -> dict:
    return {
        "id": row.id,
        "tracked_entity_id": row.tracked_entity_id,
        "item_id": row.item_id,
        "change_type": row.change_type,
        "changed_by": row.changed_by,
        "old_value": row.old_value,
        "new_value": row.new_value,
        "created_at": _iso(row.created_at),
    }
