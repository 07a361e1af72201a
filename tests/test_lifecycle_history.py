"""
Change history — entries written by value and file mutations, listing filters.
"""

import pytest
from sqlalchemy import func, select

from app.models.lifecycle import lifecycle_change_history
from app.services import lifecycle_definition_service as definitions
from app.services import lifecycle_file_service as files
from app.services import lifecycle_value_service as values
from app.services.lifecycle_history_service import list_history, record_change
from app.tenant import tenant_connection

ENTITY = 31


class TestRecording:
    def test_value_update_records_old_and_new(self, tenant, text_item):
        values.upsert_value(tenant, ENTITY, text_item["id"], {"value_text": "a"}, user_id=7)
        values.upsert_value(tenant, ENTITY, text_item["id"], {"value_text": "b"}, user_id=8)
        latest, first = list_history(tenant, ENTITY)
        assert first["old_value"] is None
        assert first["new_value"] == {"value_text": "a", "value_json": None}
        assert latest["old_value"] == {"value_text": "a", "value_json": None}
        assert latest["new_value"] == {"value_text": "b", "value_json": None}
        assert latest["changed_by"] == 8
        assert latest["change_type"] == "value_updated"

    def test_file_changes_recorded(self, tenant, documents_item):
        files.add_file(tenant, ENTITY, documents_item["id"], 5, user_id=7)
        files.add_file(tenant, ENTITY, documents_item["id"], 5, user_id=7)
        files.remove_file(tenant, ENTITY, documents_item["id"], 5, user_id=7)
        files.remove_file(tenant, ENTITY, documents_item["id"], 5, user_id=7)
        entries = list_history(tenant, ENTITY)
        assert [e["change_type"] for e in entries] == ["file_removed", "file_added"]
        assert entries[0]["old_value"] == {"file_id": 5}
        assert entries[1]["new_value"] == {"file_id": 5}

    def test_failed_mutation_leaves_no_entry(self, tenant, text_item):
        with pytest.raises(Exception):
            values.upsert_value(tenant, ENTITY, text_item["id"], {"value_json": {"bad": True}})
        assert list_history(tenant, ENTITY) == []

    def test_catalogue_changes_not_recorded(self, tenant, phase, text_item):
        definitions.update_item(tenant, text_item["id"], {"name": "Renamed"})
        definitions.reorder_phases(tenant, [phase["id"]])
        with tenant_connection(tenant) as conn:
            count = conn.execute(
                select(func.count()).select_from(lifecycle_change_history)
            ).scalar_one()
        assert count == 0

    def test_unknown_change_type_rejected(self, tenant):
        with tenant_connection(tenant) as conn:
            with pytest.raises(ValueError):
                record_change(
                    conn, tracked_entity_id=1, item_id=None, change_type="deleted", changed_by=None,
                )


class TestListing:
    def test_filters_and_paging(self, tenant, text_item, documents_item):
        for n in range(3):
            values.upsert_value(tenant, ENTITY, text_item["id"], {"value_text": str(n)})
        files.add_file(tenant, ENTITY, documents_item["id"], 1)
        values.upsert_value(tenant, ENTITY + 1, text_item["id"], {"value_text": "other"})

        assert len(list_history(tenant, ENTITY)) == 4
        assert len(list_history(tenant, ENTITY, item_id=text_item["id"])) == 3
        page = list_history(tenant, ENTITY, limit=2, offset=1)
        assert len(page) == 2
        assert page[0]["new_value"] == {"value_text": "2", "value_json": None}

    def test_limit_is_clamped(self, tenant, text_item):
        values.upsert_value(tenant, ENTITY, text_item["id"], {"value_text": "x"})
        assert len(list_history(tenant, ENTITY, limit=0)) == 1
        assert len(list_history(tenant, ENTITY, limit=10_000, offset=-5)) == 1
