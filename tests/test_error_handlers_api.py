from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from tablekit.errors import register_error_handlers
from tablekit.services.tables import TableConfigurationError


def _build_app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/http-403")
    def http_403():
        raise HTTPException(status_code=403, detail="Forbidden")

    @app.get("/http-dict")
    def http_dict():
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Already exists", "details": {"id": 1}},
            headers={"X-Reason": "duplicate"},
        )

    @app.get("/misconfigured")
    def misconfigured():
        raise TableConfigurationError("BulkAction 'purge' must have an authorize() method")

    @app.get("/crash")
    def crash():
        raise RuntimeError("boom")

    @app.get("/needs-int")
    def needs_int(value: int):
        return {"value": value}

    return app


def test_http_exception_returns_json() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/http-403", headers={"x-request-id": "req-1"})
    assert resp.status_code == 403
    assert "application/json" in resp.headers.get("content-type", "")
    assert resp.json() == {
        "code": "http_403",
        "message": "Forbidden",
        "details": None,
        "request_id": "req-1",
    }


def test_http_exception_dict_detail_and_headers() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/http-dict")
    assert resp.status_code == 409
    assert resp.headers["x-reason"] == "duplicate"
    body = resp.json()
    assert body["code"] == "conflict"
    assert body["message"] == "Already exists"
    assert body["details"] == {"id": 1}
    assert body["request_id"] == "unknown"


def test_unknown_route_returns_json_404() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/missing")
    assert resp.status_code == 404
    assert resp.json()["code"] == "http_404"


def test_validation_error_returns_field_details() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/needs-int", params={"value": "abc"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "validation_error"
    assert body["details"][0]["loc"] == ["query", "value"]
    assert body["details"][0]["input"] == "abc"


def test_table_configuration_error_is_opaque_500() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/misconfigured")
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "table_configuration_error"
    assert "authorize" not in body["message"]


def test_unhandled_exception_returns_internal_error() -> None:
    client = TestClient(_build_app(), raise_server_exceptions=False)
    resp = client.get("/crash")
    assert resp.status_code == 500
    assert resp.json()["code"] == "internal_error"
