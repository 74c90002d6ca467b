"""
Stats sync API tests

Runs the FastAPI app against an in-memory SQLite database.
"""
import pytest
from fastapi.testclient import TestClient

from posture_coach import auth
from posture_coach.main import app


@pytest.fixture
def client(sqlite_engine):
    return TestClient(app)


@pytest.fixture
def headers():
    return {"Authorization": f"Bearer {auth.create_jwt_token('42')}"}


def push(client, headers, **overrides):
    payload = {
        "date_key": "2026-06-10",
        "total_ms": 10000,
        "good_ms": 7000,
        "bad_ms": 3000,
        "streak_ms": 5000,
        "alerts": 1
    }
    payload.update(overrides)
    return client.post("/api/stats/update", json=payload, headers=headers)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


def test_update_then_fetch(client, headers):
    response = push(client, headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = client.get("/api/stats/2026-06-10", headers=headers)
    data = response.json()

    assert response.status_code == 200
    assert data["subject_id"] == "42"
    assert data["total_ms"] == 10000
    assert data["longest_streak_ms"] == 5000
    assert data["summary"]["quality_score"] == 70


def test_streak_keeps_max_while_other_fields_overwrite(client, headers):
    push(client, headers, streak_ms=5000, alerts=1)
    push(client, headers, total_ms=20000, good_ms=8000, bad_ms=4000, streak_ms=2000, alerts=3)

    data = client.get("/api/stats/2026-06-10", headers=headers).json()

    assert data["total_ms"] == 20000
    assert data["alert_count"] == 3
    assert data["longest_streak_ms"] == 5000


def test_subjects_are_isolated(client, headers):
    push(client, headers)
    other = {"Authorization": f"Bearer {auth.create_jwt_token('99')}"}

    assert client.get("/api/stats/2026-06-10", headers=other).status_code == 404


def test_history_lists_newest_first(client, headers):
    push(client, headers, date_key="2026-06-09")
    push(client, headers, date_key="2026-06-10")

    data = client.get("/api/stats", headers=headers).json()

    assert data["total_days"] == 2
    assert [day["date_key"] for day in data["days"]] == ["2026-06-10", "2026-06-09"]


def test_invalid_token_is_rejected(client):
    response = push(client, {"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_missing_token_is_rejected(client):
    response = client.get("/api/stats/2026-06-10")
    assert response.status_code in (401, 403)


def test_inconsistent_snapshot_is_rejected(client, headers):
    response = push(client, headers, good_ms=9000, bad_ms=2000)
    assert response.status_code == 400


def test_bad_date_key_is_rejected(client, headers):
    assert push(client, headers, date_key="2026-13-45").status_code == 400
    assert client.get("/api/stats/yesterday", headers=headers).status_code == 400


def test_negative_values_fail_validation(client, headers):
    assert push(client, headers, total_ms=-1).status_code == 422
