"""
Definition store — phase and item CRUD, PATCH semantics, reorder, cascade.
"""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ConflictError, NoFieldsToUpdateError, NotFoundError, ValidationError
from app.models.lifecycle import lifecycle_item_files, lifecycle_values
from app.services import lifecycle_definition_service as definitions
from app.services import lifecycle_file_service as files
from app.services import lifecycle_value_service as values
from app.tenant import tenant_connection


def _count(tenant, table):
    with tenant_connection(tenant) as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar_one()


# ═══════════════════════════════════════════════════════════════
#  Phases
# ═══════════════════════════════════════════════════════════════


class TestPhases:
    def test_create_defaults_order_to_max_plus_one(self, empty_catalogue):
        first = definitions.create_phase(empty_catalogue, {"name": "One"})
        second = definitions.create_phase(empty_catalogue, {"name": "Two"})
        assert first["display_order"] == 1
        assert second["display_order"] == 2
        assert second["is_active"] is True

    def test_create_after_seed(self, tenant):
        phase = definitions.create_phase(tenant, {"name": "Retirement"})
        assert phase["display_order"] == 7

    def test_create_with_explicit_order(self, empty_catalogue):
        phase = definitions.create_phase(empty_catalogue, {"name": "Late", "display_order": 40})
        assert phase["display_order"] == 40

    def test_create_requires_name(self, empty_catalogue):
        with pytest.raises(ValidationError) as exc_info:
            definitions.create_phase(empty_catalogue, {"description": "x"})
        assert "name" in exc_info.value.details

    def test_update_only_supplied_fields(self, tenant, phase):
        updated = definitions.update_phase(tenant, phase["id"], {"description": "New"})
        assert updated["description"] == "New"
        assert updated["name"] == phase["name"]

    def test_update_ignores_unknown_fields(self, tenant, phase):
        updated = definitions.update_phase(tenant, phase["id"], {"name": "X", "id": 999})
        assert updated["id"] == phase["id"]

    def test_update_without_fields(self, tenant, phase):
        with pytest.raises(NoFieldsToUpdateError):
            definitions.update_phase(tenant, phase["id"], {"colour": "red"})

    def test_update_missing_phase(self, tenant):
        with pytest.raises(NotFoundError):
            definitions.update_phase(tenant, 9999, {"name": "Ghost"})

    def test_update_rejects_bad_types(self, tenant, phase):
        with pytest.raises(ValidationError):
            definitions.update_phase(tenant, phase["id"], {"is_active": "no"})

    def test_deactivated_phase_hidden_unless_requested(self, tenant, phase):
        definitions.update_phase(tenant, phase["id"], {"is_active": False})
        assert definitions.list_config(tenant) == []
        listed = definitions.list_config(tenant, include_inactive=True)
        assert [p["id"] for p in listed] == [phase["id"]]

    def test_delete_missing_phase(self, tenant):
        with pytest.raises(NotFoundError):
            definitions.delete_phase(tenant, 9999)

    def test_delete_cascades_to_values_and_files(self, tenant, phase, text_item, documents_item):
        values.upsert_value(tenant, 1, text_item["id"], {"value_text": "abc"})
        files.add_file(tenant, 1, documents_item["id"], 55)
        assert _count(tenant, lifecycle_values) == 2
        assert _count(tenant, lifecycle_item_files) == 1

        definitions.delete_phase(tenant, phase["id"])

        assert _count(tenant, lifecycle_values) == 0
        assert _count(tenant, lifecycle_item_files) == 0

    def test_reorder(self, empty_catalogue):
        ids = [definitions.create_phase(empty_catalogue, {"name": n})["id"] for n in ("A", "B", "C")]
        a, b, c = ids
        definitions.reorder_phases(empty_catalogue, [c, a, b])
        order = {p["id"]: p["display_order"] for p in definitions.list_config(empty_catalogue)}
        assert order == {c: 1, a: 2, b: 3}
        assert [p["id"] for p in definitions.list_config(empty_catalogue)] == [c, a, b]

    def test_reorder_ignores_unknown_ids(self, empty_catalogue):
        a = definitions.create_phase(empty_catalogue, {"name": "A"})["id"]
        definitions.reorder_phases(empty_catalogue, [9999, a])
        assert definitions.list_config(empty_catalogue)[0]["display_order"] == 2

    @pytest.mark.parametrize("bad", [None, "1,2", [1, "2"], [1, 1]])
    def test_reorder_rejects_bad_lists(self, tenant, bad):
        with pytest.raises(ValidationError):
            definitions.reorder_phases(tenant, bad)


# ═══════════════════════════════════════════════════════════════
#  Items
# ═══════════════════════════════════════════════════════════════


class TestItems:
    def test_create_defaults(self, tenant, phase):
        item = definitions.create_item(tenant, phase["id"], {"name": "Notes"})
        assert item["item_type"] == "text"
        assert item["config"] == {}
        assert item["is_required"] is False
        assert item["display_order"] == 1

    def test_order_is_per_phase(self, tenant, phase, text_item):
        other = definitions.create_phase(tenant, {"name": "Other"})
        item = definitions.create_item(tenant, other["id"], {"name": "First"})
        assert item["display_order"] == 1
        second = definitions.create_item(tenant, phase["id"], {"name": "Second"})
        assert second["display_order"] == text_item["display_order"] + 1

    def test_create_requires_phase(self, tenant, empty_catalogue):
        with pytest.raises(NotFoundError):
            definitions.create_item(tenant, 9999, {"name": "Orphan"})

    def test_create_rejects_unknown_type(self, tenant, phase):
        with pytest.raises(ValidationError):
            definitions.create_item(tenant, phase["id"], {"name": "X", "item_type": "dropdown"})

    def test_create_rejects_bad_config(self, tenant, phase):
        with pytest.raises(ValidationError):
            definitions.create_item(
                tenant, phase["id"],
                {"name": "X", "item_type": "classification", "config": {"levels": "High"}},
            )

    def test_nested_in_config(self, tenant, phase, text_item, documents_item):
        config = definitions.list_config(tenant)
        assert [i["id"] for i in config[0]["items"]] == [text_item["id"], documents_item["id"]]

    def test_update_fields(self, tenant, text_item):
        updated = definitions.update_item(tenant, text_item["id"], {"is_required": False, "name": "Renamed"})
        assert updated["is_required"] is False
        assert updated["name"] == "Renamed"
        assert updated["item_type"] == "text"

    def test_type_change_revalidates_existing_config(self, tenant, phase):
        item = definitions.create_item(
            tenant, phase["id"], {"name": "Count", "item_type": "text", "config": {"maxLength": 10}},
        )
        updated = definitions.update_item(tenant, item["id"], {"item_type": "textarea"})
        assert updated["config"] == {"maxLength": 10}
        with pytest.raises(ValidationError):
            definitions.update_item(tenant, item["id"], {"config": {"maxLength": "ten"}})

    def test_type_frozen_once_values_exist(self, tenant, phase):
        item = definitions.create_item(
            tenant, phase["id"],
            {"name": "Risk", "item_type": "classification", "config": {"levels": ["Low", "High"]}},
        )
        values.upsert_value(tenant, 3, item["id"], {"value_json": {"level": "High"}})
        with pytest.raises(ConflictError):
            definitions.update_item(tenant, item["id"], {"item_type": "approval"})
        # same type and config edits stay allowed
        updated = definitions.update_item(
            tenant, item["id"], {"item_type": "classification", "config": {"levels": ["Low", "Mid", "High"]}},
        )
        assert updated["config"]["levels"] == ["Low", "Mid", "High"]

        definitions.delete_item(tenant, item["id"])
        fresh = definitions.create_item(tenant, phase["id"], {"name": "Risk", "item_type": "classification"})
        assert definitions.update_item(tenant, fresh["id"], {"item_type": "approval"})["item_type"] == "approval"

    def test_update_without_fields(self, tenant, text_item):
        with pytest.raises(NoFieldsToUpdateError):
            definitions.update_item(tenant, text_item["id"], {})

    def test_update_missing_item(self, tenant):
        with pytest.raises(NotFoundError):
            definitions.update_item(tenant, 9999, {"name": "Ghost"})
        with pytest.raises(NotFoundError):
            definitions.update_item(tenant, 9999, {"item_type": "text"})

    def test_inactive_items_hidden(self, tenant, phase, text_item):
        definitions.update_item(tenant, text_item["id"], {"is_active": False})
        assert definitions.list_config(tenant)[0]["items"] == []
        assert len(definitions.list_config(tenant, include_inactive=True)[0]["items"]) == 1

    def test_delete(self, tenant, text_item):
        values.upsert_value(tenant, 3, text_item["id"], {"value_text": "x"})
        definitions.delete_item(tenant, text_item["id"])
        assert _count(tenant, lifecycle_values) == 0
        with pytest.raises(NotFoundError):
            definitions.delete_item(tenant, text_item["id"])

    def test_reorder_scoped_to_phase(self, tenant, phase, text_item, documents_item):
        other = definitions.create_phase(tenant, {"name": "Other"})
        foreign = definitions.create_item(tenant, other["id"], {"name": "Foreign"})

        definitions.reorder_items(tenant, phase["id"], [documents_item["id"], foreign["id"], text_item["id"]])

        config = {p["id"]: p for p in definitions.list_config(tenant)}
        orders = {i["id"]: i["display_order"] for i in config[phase["id"]]["items"]}
        assert orders == {documents_item["id"]: 1, text_item["id"]: 3}
        assert config[other["id"]]["items"][0]["display_order"] == 1

    def test_reorder_missing_phase(self, tenant):
        with pytest.raises(NotFoundError):
            definitions.reorder_items(tenant, 9999, [1])
