"""
Model Lifecycle — HTTP API Tests
End-to-end through the Flask blueprint: headers, status codes, error mapping.
"""

import pytest

from app.services import lifecycle_definition_service as definitions

API = "/api/v1/plugins/model-lifecycle"


def _get(client, url, headers):
    return client.get(API + url, headers=headers)


def _post(client, url, headers, data=None):
    return client.post(API + url, json=data or {}, headers=headers)


def _put(client, url, headers, data=None):
    return client.put(API + url, json=data or {}, headers=headers)


def _delete(client, url, headers):
    return client.delete(API + url, headers=headers)


# ═══════════════════════════════════════════════════════════════
#  Catalogue
# ═══════════════════════════════════════════════════════════════


class TestConfigApi:
    def test_fresh_install_config(self, client, headers):
        res = _get(client, "/config", headers)
        assert res.status_code == 200
        phases = res.get_json()
        assert len(phases) == 6
        assert [p["display_order"] for p in phases] == sorted(p["display_order"] for p in phases)
        for phase in phases:
            orders = [i["display_order"] for i in phase["items"]]
            assert orders == sorted(orders)

    def test_include_inactive_flag(self, client, headers, tenant):
        phase_id = definitions.list_config(tenant)[0]["id"]
        _put(client, f"/phases/{phase_id}", headers, {"is_active": False})
        assert len(_get(client, "/config", headers).get_json()) == 5
        assert len(_get(client, "/config?includeInactive=true", headers).get_json()) == 6

    def test_phase_crud(self, client, headers):
        res = _post(client, "/phases", headers, {"name": "Retirement", "description": "End of life"})
        assert res.status_code == 201
        phase = res.get_json()
        assert phase["display_order"] == 7

        res = _put(client, f"/phases/{phase['id']}", headers, {"name": "Decommission"})
        assert res.status_code == 200
        assert res.get_json()["name"] == "Decommission"

        res = _delete(client, f"/phases/{phase['id']}", headers)
        assert res.status_code == 200
        assert res.get_json() == {"success": True}

        res = _delete(client, f"/phases/{phase['id']}", headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_update_without_fields(self, client, headers, tenant):
        phase_id = definitions.list_config(tenant)[0]["id"]
        res = _put(client, f"/phases/{phase_id}", headers, {"unknown": 1})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_NO_FIELDS_TO_UPDATE"
        assert body["error"] == "No fields to update"

    def test_validation_error_details(self, client, headers):
        res = _post(client, "/phases", headers, {"name": ""})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "name" in body["details"]

    def test_reorder_phases(self, client, headers, empty_catalogue):
        ids = [_post(client, "/phases", headers, {"name": n}).get_json()["id"] for n in "ABC"]
        res = _put(client, "/phases/reorder", headers, {"orderedIds": [ids[2], ids[0], ids[1]]})
        assert res.status_code == 200
        listed = _get(client, "/config", headers).get_json()
        assert [p["id"] for p in listed] == [ids[2], ids[0], ids[1]]
        assert [p["display_order"] for p in listed] == [1, 2, 3]

    def test_item_crud_and_reorder(self, client, headers, phase):
        res = _post(client, f"/phases/{phase['id']}/items", headers,
                    {"name": "Risk tier", "item_type": "classification",
                     "config": {"levels": ["Low", "High"]}})
        assert res.status_code == 201
        first = res.get_json()
        second = _post(client, f"/phases/{phase['id']}/items", headers, {"name": "Notes"}).get_json()

        res = _put(client, f"/phases/{phase['id']}/items/reorder", headers,
                   {"orderedIds": [second["id"], first["id"]]})
        assert res.status_code == 200
        items = _get(client, "/config", headers).get_json()[0]["items"]
        assert [i["id"] for i in items] == [second["id"], first["id"]]

        res = _put(client, f"/items/{first['id']}", headers, {"is_required": True})
        assert res.get_json()["is_required"] is True

        assert _delete(client, f"/items/{first['id']}", headers).status_code == 200
        assert _put(client, f"/items/{first['id']}", headers, {"name": "x"}).status_code == 404

    def test_unknown_item_type(self, client, headers, phase):
        res = _post(client, f"/phases/{phase['id']}/items", headers, {"name": "X", "item_type": "slider"})
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
#  Tracked entity
# ═══════════════════════════════════════════════════════════════


class TestEntityApi:
    def test_upsert_then_read_then_progress(self, client, headers, tenant):
        item_id = _get(client, "/models/12/lifecycle", headers).get_json()[0]["items"][1]["id"]
        before = _get(client, "/models/12/lifecycle/progress", headers).get_json()

        res = _put(client, f"/models/12/lifecycle/items/{item_id}", headers, {"value_text": "abc"})
        assert res.status_code == 200
        assert res.get_json()["updated_by"] == 7

        tree = _get(client, "/models/12/lifecycle", headers).get_json()
        item = next(i for i in tree[0]["items"] if i["id"] == item_id)
        assert item["value"]["value_text"] == "abc"
        assert item["value"]["files"] == []

        after = _get(client, "/models/12/lifecycle/progress", headers).get_json()
        assert after["filled_items"] == before["filled_items"] + 1
        assert 0 < after["completion_percentage"] < 100

    def test_file_attach_and_detach(self, client, headers, documents_item):
        url = f"/models/3/lifecycle/items/{documents_item['id']}/files"
        res = _post(client, url, headers, {"fileId": 88})
        assert res.status_code == 201
        assert res.get_json()["file_id"] == 88

        res = _post(client, url, headers, {})
        assert res.status_code == 400

        res = _delete(client, f"{url}/88", headers)
        assert res.status_code == 200
        assert res.get_json()["removed"] is True

    def test_approvals(self, client, headers, approval_item):
        base = f"/models/3/lifecycle/items/{approval_item['id']}/approvals"
        res = _post(client, base, headers, {"userId": 4})
        assert res.status_code == 201
        assert _post(client, base, headers, {"userId": 4}).status_code == 409

        res = _put(client, f"{base}/4", headers, {"status": "approved"})
        assert res.status_code == 200
        assert res.get_json()["value_json"][0]["status"] == "approved"

        res = _put(client, f"{base}/4", headers, {"status": "rejected"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_approval_rewrite_through_upsert_is_conflict(self, client, headers, approval_item):
        base = f"/models/3/lifecycle/items/{approval_item['id']}"
        _post(client, f"{base}/approvals", headers, {"userId": 5})
        _put(client, f"{base}/approvals/5", headers, {"status": "approved"})
        res = _put(client, base, headers, {"value_json": [{"userId": 5, "status": "pending"}]})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_item_type_change_with_values_is_conflict(self, client, headers, phase):
        item = _post(client, f"/phases/{phase['id']}/items", headers,
                     {"name": "Risk", "item_type": "classification"}).get_json()
        _put(client, f"/models/3/lifecycle/items/{item['id']}", headers, {"value_json": {"level": "High"}})
        res = _put(client, f"/items/{item['id']}", headers, {"item_type": "approval"})
        assert res.status_code == 409
        res = _post(client, f"/models/3/lifecycle/items/{item['id']}/approvals", headers, {"userId": 3})
        assert res.status_code == 400

    def test_history(self, client, headers, text_item):
        _put(client, f"/models/3/lifecycle/items/{text_item['id']}", headers, {"value_text": "a"})
        _put(client, f"/models/3/lifecycle/items/{text_item['id']}", headers, {"value_text": "b"})
        res = _get(client, f"/models/3/lifecycle/history?itemId={text_item['id']}&limit=1", headers)
        assert res.status_code == 200
        entries = res.get_json()
        assert len(entries) == 1
        assert entries[0]["new_value"]["value_text"] == "b"
        assert entries[0]["changed_by"] == 7

    def test_invalid_payload_for_type(self, client, headers, text_item):
        res = _put(client, f"/models/3/lifecycle/items/{text_item['id']}", headers, {"value_json": [1]})
        assert res.status_code == 400
        assert "value_json" in res.get_json()["details"]

    def test_missing_item(self, client, headers):
        res = _put(client, "/models/3/lifecycle/items/99999", headers, {"value_text": "x"})
        assert res.status_code == 404


# ═══════════════════════════════════════════════════════════════
#  Request handling
# ═══════════════════════════════════════════════════════════════


class TestRequestHandling:
    @pytest.mark.parametrize("bad_tenant", ["acme;drop", "ac me", "o'brien", "x" * 31])
    def test_invalid_tenant_rejected(self, client, headers, bad_tenant):
        res = _get(client, "/config", {**headers, "X-Tenant-ID": bad_tenant})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_TENANT_INVALID"

    def test_default_tenant_when_header_missing(self, client, monkeypatch):
        monkeypatch.delenv("TENANT_ID", raising=False)
        res = client.get(API + "/config")
        assert res.status_code == 200
        assert len(res.get_json()) == 6

    def test_unknown_route(self, client, headers):
        res = _get(client, "/nowhere", headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_wrong_method(self, client, headers):
        res = client.patch(API + "/config", json={}, headers=headers)
        assert res.status_code == 405
        assert res.get_json()["code"] == "ERR_METHOD_NOT_ALLOWED"

    def test_non_json_body_rejected(self, client, headers):
        res = client.post(API + "/phases", data="name=x", headers=headers,
                          content_type="text/plain")
        assert res.status_code == 415

    def test_body_must_be_object(self, client, headers):
        res = client.post(API + "/phases", json=["x"], headers=headers)
        assert res.status_code == 400

    def test_malformed_json_body(self, client, headers, tenant):
        phase_id = definitions.list_config(tenant)[0]["id"]
        res = client.put(API + f"/phases/{phase_id}", data='{"name": "x"', headers=headers,
                         content_type="application/json")
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "body" in body["details"]

    @pytest.mark.parametrize("url", [
        "/models/99999999999999999999/lifecycle/progress",
        "/models/2147483648/lifecycle",
    ])
    def test_id_out_of_integer_range(self, client, headers, url):
        res = _get(client, url, headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_unexpected_error_is_500(self, client, headers, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(definitions, "list_config", boom)
        res = _get(client, "/config", headers)
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_INTERNAL"

    def test_request_id_header(self, client, headers):
        res = _get(client, "/config", {**headers, "X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"
