"""
Lifecycle Item Type Registry

Closed set of item types. Each type declares the shape of its ``config``
and of the value payload (``value_text`` / ``value_json``) it accepts, so
validation happens once at the service boundary instead of as string
comparisons scattered through handlers.

    text / textarea   value_text: str
    documents         files only (no scalar payload)
    people            value_json: [{"userId": int, "role"?: str}]
    classification    value_json: {"level": str}
    checklist         value_json: [{"label": str, "checked": bool}]
    approval          value_json: [{"userId": int, "status": pending|approved|rejected, "date"?: str}]

Usage:
    from app.services.lifecycle_item_types import validate_item_config
    config = validate_item_config("classification", {"levels": ["Low", "High"]})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class ItemType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    DOCUMENTS = "documents"
    PEOPLE = "people"
    CLASSIFICATION = "classification"
    CHECKLIST = "checklist"
    APPROVAL = "approval"


class ApprovalStatus(str, Enum):
    """Per-approver state. PENDING moves to exactly one terminal state."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ApprovalStatus.PENDING


# ═════════════════════════════════════════════════════════════════════════════
# Primitive checks
# ═════════════════════════════════════════════════════════════════════════════

def _is_str(value) -> bool:
    return isinstance(value, str)


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _is_user_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_str_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


_CONFIG_CHECK_MESSAGES = {
    _is_str: "must be a string",
    _is_count: "must be a non-negative integer",
    _is_str_list: "must be a list of strings",
}


# ═════════════════════════════════════════════════════════════════════════════
# Value validators (one per variant)
# ═════════════════════════════════════════════════════════════════════════════

def _validate_text(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_json is not None:
        errors["value_json"] = "not accepted for text items"
    if value_text is not None:
        if not isinstance(value_text, str):
            errors["value_text"] = "must be a string"
        elif config.get("maxLength") and len(value_text) > config["maxLength"]:
            errors["value_text"] = f"exceeds maxLength={config['maxLength']}"
    return errors


def _validate_documents(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_text is not None:
        errors["value_text"] = "documents items hold files only"
    if value_json is not None:
        errors["value_json"] = "documents items hold files only"
    return errors


def _validate_people(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_text is not None:
        errors["value_text"] = "not accepted for people items"
    if value_json is None:
        return errors
    if not isinstance(value_json, list):
        errors["value_json"] = "must be a list of {userId, role?}"
        return errors
    roles = config.get("roles") or []
    seen = set()
    for idx, entry in enumerate(value_json):
        if not isinstance(entry, dict) or not _is_user_id(entry.get("userId")):
            errors[f"value_json[{idx}]"] = "userId must be a positive integer"
            continue
        if entry["userId"] in seen:
            errors[f"value_json[{idx}]"] = f"duplicate userId {entry['userId']}"
        seen.add(entry["userId"])
        role = entry.get("role")
        if role is not None and (not _is_str(role) or (roles and role not in roles)):
            errors[f"value_json[{idx}].role"] = f"must be one of {roles}" if roles else "must be a string"
    max_people = config.get("maxPeople")
    if max_people and len(value_json) > max_people:
        errors["value_json"] = f"exceeds maxPeople={max_people}"
    return errors


def _validate_classification(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_text is not None:
        errors["value_text"] = "not accepted for classification items"
    if value_json is None:
        return errors
    if not isinstance(value_json, dict) or not _is_str(value_json.get("level")):
        errors["value_json"] = "must be {level: str}"
        return errors
    levels = config.get("levels") or []
    if levels and value_json["level"] not in levels:
        errors["value_json.level"] = f"must be one of {levels}"
    return errors


def _validate_checklist(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_text is not None:
        errors["value_text"] = "not accepted for checklist items"
    if value_json is None:
        return errors
    if not isinstance(value_json, list):
        errors["value_json"] = "must be a list of {label, checked}"
        return errors
    for idx, entry in enumerate(value_json):
        if (
            not isinstance(entry, dict)
            or not _is_str(entry.get("label"))
            or not isinstance(entry.get("checked"), bool)
        ):
            errors[f"value_json[{idx}]"] = "must be {label: str, checked: bool}"
    return errors


def _validate_approval(config: dict, value_text, value_json) -> dict:
    errors = {}
    if value_text is not None:
        errors["value_text"] = "not accepted for approval items"
    if value_json is None:
        return errors
    if not isinstance(value_json, list):
        errors["value_json"] = "must be a list of {userId, status, date?}"
        return errors
    allowed = [s.value for s in ApprovalStatus]
    seen = set()
    for idx, entry in enumerate(value_json):
        if not isinstance(entry, dict) or not _is_user_id(entry.get("userId")):
            errors[f"value_json[{idx}]"] = "userId must be a positive integer"
            continue
        if entry["userId"] in seen:
            errors[f"value_json[{idx}]"] = f"duplicate approver {entry['userId']}"
        seen.add(entry["userId"])
        if entry.get("status") not in allowed:
            errors[f"value_json[{idx}].status"] = f"must be one of {allowed}"
        if entry.get("date") is not None and not _is_str(entry["date"]):
            errors[f"value_json[{idx}].date"] = "must be an ISO-8601 string"
    return errors


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ItemTypeSpec:
    """Config keys and value validator of one item type."""
    item_type: ItemType
    config_fields: dict[str, Callable[[Any], bool]] = field(default_factory=dict)
    validate_value: Callable[[dict, Any, Any], dict] = _validate_text
    holds_files: bool = False


ITEM_TYPE_SPECS: dict[ItemType, ItemTypeSpec] = {
    ItemType.TEXT: ItemTypeSpec(
        ItemType.TEXT,
        {"placeholder": _is_str, "maxLength": _is_count},
        _validate_text,
    ),
    ItemType.TEXTAREA: ItemTypeSpec(
        ItemType.TEXTAREA,
        {"placeholder": _is_str, "maxLength": _is_count},
        _validate_text,
    ),
    ItemType.DOCUMENTS: ItemTypeSpec(
        ItemType.DOCUMENTS,
        {"maxFiles": _is_count, "allowedTypes": _is_str_list},
        _validate_documents,
        holds_files=True,
    ),
    ItemType.PEOPLE: ItemTypeSpec(
        ItemType.PEOPLE,
        {"maxPeople": _is_count, "roles": _is_str_list},
        _validate_people,
    ),
    ItemType.CLASSIFICATION: ItemTypeSpec(
        ItemType.CLASSIFICATION,
        {"levels": _is_str_list},
        _validate_classification,
    ),
    ItemType.CHECKLIST: ItemTypeSpec(
        ItemType.CHECKLIST,
        {"defaultItems": _is_str_list},
        _validate_checklist,
    ),
    ItemType.APPROVAL: ItemTypeSpec(
        ItemType.APPROVAL,
        {"requiredApprovers": _is_count},
        _validate_approval,
    ),
}


def parse_item_type(raw) -> ItemType:
    """Map a raw string onto the closed ItemType set.

    Raises:
        ValidationError: For any value outside the set.
    """
    try:
        return ItemType(raw)
    except ValueError:
        allowed = [t.value for t in ItemType]
        raise ValidationError(
            f"Unknown item_type {raw!r}",
            details={"item_type": f"must be one of {allowed}"},
        ) from None


def validate_item_config(item_type, config) -> dict:
    """Check a config mapping against the keys its item type declares.

    Unknown keys are kept untouched; declared keys must have the declared
    shape. ``None`` normalises to an empty config.

    Returns:
        The config dict to persist.

    Raises:
        ValidationError: If the type is unknown or a declared key is malformed.
    """
    spec = ITEM_TYPE_SPECS[parse_item_type(item_type)]
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValidationError("config must be an object", details={"config": "must be an object"})

    errors = {}
    for key, check in spec.config_fields.items():
        if key in config and config[key] is not None and not check(config[key]):
            errors[f"config.{key}"] = _CONFIG_CHECK_MESSAGES.get(check, "invalid")
    if errors:
        raise ValidationError(f"Invalid config for {spec.item_type.value} item", details=errors)
    return config


def validate_value_payload(item_type, config, value_text, value_json) -> None:
    """Check a value payload against its item's type and config.

    ``None`` for both fields is always accepted (clears the value).

    Raises:
        ValidationError: With field-level details when the payload does not
            match the variant's shape.
    """
    spec = ITEM_TYPE_SPECS[parse_item_type(item_type)]
    errors = spec.validate_value(config or {}, value_text, value_json)
    if errors:
        raise ValidationError(f"Invalid value for {spec.item_type.value} item", details=errors)


def holds_files(item_type) -> bool:
    return ITEM_TYPE_SPECS[parse_item_type(item_type)].holds_files


# ═════════════════════════════════════════════════════════════════════════════
# Approval aggregate
# ═════════════════════════════════════════════════════════════════════════════

def approval_status(entries: list[dict] | None, required: int | None = None) -> str:
    """Derive the overall state of an approval item.

    ``rejected`` as soon as one approver rejected; ``approved`` once at least
    ``required`` approvers approved (all listed approvers when ``required``
    is not configured); ``pending`` otherwise. Never persisted.
    """
    entries = entries or []
    statuses = [e.get("status") for e in entries]
    if ApprovalStatus.REJECTED.value in statuses:
        return ApprovalStatus.REJECTED.value
    approved = statuses.count(ApprovalStatus.APPROVED.value)
    needed = required if required else len(entries)
    if needed and approved >= needed:
        return ApprovalStatus.APPROVED.value
    return ApprovalStatus.PENDING.value
