from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_health_reports_environment():
    resp = client.get("/health")

    assert resp.json() == {"status": "ok", "env": "testing"}


def test_rejected_requests_still_carry_request_id():
    incoming_id = "rejected-req-1"
    resp = client.post(
        "/v1/rag/search",
        json={"query": "math"},
        headers={"X-API-Key": "test-api-key-123", "X-Request-ID": incoming_id},
    )

    assert resp.status_code == 401
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_app_errors_echo_request_id_in_body():
    incoming_id = "blank-notes-req"
    resp = client.post(
        "/v1/observations/enhance",
        json={
            "raw_notes": "   ",
            "observation_type": "FORMAL",
            "teacher": {"name": "Ms. Rivera"},
        },
        headers={
            "X-API-Key": "test-api-key-123",
            "X-Request-ID": incoming_id,
            "X-User-Id": "u1",
            "X-User-Role": "EVALUATOR",
            "X-School-Id": "school-1",
        },
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["request_id"] == incoming_id
