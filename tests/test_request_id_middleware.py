from __future__ import annotations

from fastapi.testclient import TestClient

from finance_api.main import app


def test_preserves_incoming_request_id_header():
    incoming_id = "req-quote-123"
    resp = TestClient(app).get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_and_duration_when_missing():
    resp = TestClient(app).get("/health")

    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_error_body_carries_request_id(client):
    resp = client.get("/v1/market/quote/not$valid", headers={"X-Request-ID": "req-err-1"})

    assert resp.status_code == 400
    assert resp.headers["X-Request-ID"] == "req-err-1"
    assert resp.json()["error"]["request_id"] == "req-err-1"
