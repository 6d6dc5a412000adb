from fastapi.testclient import TestClient

from tablekit.services.tables import TableRegistry
from tablekit.services.tables.signing import KIND_ACTION, KIND_BULK_ACTION
from tests.conftest import callback_body, csrf_headers
from tests.models import User


def _callback_url(kind, name, record=None):
    return TableRegistry.get("users").find_operation(kind, name).callback(record).url


def test_render_table(client, users):
    resp = client.get("/tables/users", params={"search": "ali"})

    assert resp.status_code == 200
    body = resp.json()
    assert [row["name"] for row in body["data"]] == ["Alice"]
    assert body["search"] == "ali"
    assert body["primaryKey"] == "id"
    assert body["pagination"]["from"] == 1
    assert body["pagination"]["links"][1]["url"] == "/tables/users?search=ali&page=1"
    assert [action["name"] for action in body["bulkActions"]] == ["touch_all", "bulk_delete"]
    assert "archive" in body["data"][0]["_actions"]


def test_render_table_sort_and_filters(client, users):
    resp = client.get(
        "/tables/users",
        params={"sort": "name", "direction": "desc", "filters[status]": "active"},
    )

    body = resp.json()
    assert [row["name"] for row in body["data"]] == ["Charlie", "Alice"]
    assert body["sort"] == {"name": "desc"}
    assert body["filters"] == {"status": "active"}


def test_render_table_caps_per_page(client, users):
    resp = client.get("/tables/users", params={"per_page": "5000"})

    assert resp.json()["pagination"]["per_page"] == 100


def test_render_unregistered_table_is_404(client):
    resp = client.get("/tables/nope")

    assert resp.status_code == 404
    assert resp.json()["message"] == "Unregistered tableKey"


def test_safe_request_receives_csrf_cookie(client):
    from tablekit.main import app

    with TestClient(app) as fresh:
        resp = fresh.get("/health")

    assert resp.status_code == 200
    assert "csrf_token" in resp.cookies


def test_action_requires_csrf_header(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "archive", users["alice"])

    resp = client.post(url, json=callback_body(url), headers={"Accept": "application/json"})

    assert resp.status_code == 403
    assert resp.json()["code"] == "csrf_failed"
    assert registered_tables == []


def test_action_returns_json_envelope(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "archive", users["alice"])

    resp = client.post(url, json=callback_body(url), headers=csrf_headers(Accept="application/json"))

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "redirect_url": "/", "message": "User archived"}
    assert registered_tables == [("archive", users["alice"].id)]


def test_action_redirects_back_without_json_accept(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "archive", users["alice"])

    resp = client.post(
        url,
        json=callback_body(url),
        headers=csrf_headers(Referer="http://testserver/users"),
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "http://testserver/users"


def test_inertia_requests_get_redirects(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "ping", users["alice"])

    resp = client.post(
        url,
        json=callback_body(url),
        headers=csrf_headers(Accept="application/json", **{"X-Inertia": "true"}),
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/"


def test_bodyless_action_redirects_without_error(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "ping", users["bob"])

    resp = client.post(url, json=callback_body(url), headers=csrf_headers(), follow_redirects=False)

    assert resp.status_code == 303
    assert registered_tables == []


def test_header_action_redirect_is_forwarded(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "export")

    resp = client.post(url, json=callback_body(url), headers=csrf_headers(Accept="application/json"))

    assert resp.json() == {"success": True, "redirect_url": "/exports/users.csv"}


def test_bulk_action_with_extra_params(client, users, registered_tables):
    url = _callback_url(KIND_BULK_ACTION, "touch_all")
    ids = [users["alice"].id, users["charlie"].id, 404]

    resp = client.post(
        url,
        json=callback_body(url, records=ids, note="weekly"),
        headers=csrf_headers(Accept="application/json"),
    )

    assert resp.status_code == 200
    assert ("touch_all", sorted(ids[:2])) in registered_tables
    assert ("touch_all_params", {"note": "weekly"}) in registered_tables


def test_tampered_record_is_forbidden(client, users, registered_tables, db_session):
    url = _callback_url(KIND_ACTION, "delete", users["alice"])
    tampered = url.replace(f"record={users['alice'].id}", f"record={users['bob'].id}")

    resp = client.post(
        tampered, json=callback_body(tampered), headers=csrf_headers(Accept="application/json")
    )

    assert resp.status_code == 403
    assert resp.json()["message"] == "Forbidden"
    assert db_session.get(User, users["bob"].id) is not None


def test_missing_signature_is_forbidden(client, users, registered_tables):
    url = _callback_url(KIND_ACTION, "archive", users["alice"])
    unsigned = url.split("&signature=")[0]

    resp = client.post(
        unsigned, json=callback_body(url), headers=csrf_headers(Accept="application/json")
    )

    assert resp.status_code == 403


def test_invalid_body_is_rejected_with_field_details(client, users, registered_tables):
    url = _callback_url(KIND_BULK_ACTION, "touch_all")
    body = callback_body(url, records="everything")
    del body["name"]

    resp = client.post(url, json=body, headers=csrf_headers(Accept="application/json"))

    assert resp.status_code == 422
    payload = resp.json()
    assert payload["code"] == "validation_error"
    locations = {tuple(error["loc"]) for error in payload["details"]}
    assert ("body", "name") in locations
    assert any(location[:2] == ("body", "records") for location in locations)
    assert registered_tables == []
