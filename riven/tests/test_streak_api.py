from datetime import datetime, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from riven.core.clock import FixedClock
from riven.core.config import settings
from riven.core.database import get_db
from riven.features.streaks.gateway import InMemoryStreakGateway
from riven.features.streaks.service import StreakRegistry, get_streak_registry
from riven.main import app


@pytest.fixture
def api_clock():
    return FixedClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return {}


@pytest.fixture
def tokens():
    return {}


@pytest.fixture
def client(api_clock, store, tokens, sqlite_db):
    SessionLocal, _ = sqlite_db

    def gateway_factory(user_id, token):
        tokens[user_id] = token
        return InMemoryStreakGateway(user_id, store)

    registry = StreakRegistry(
        gateway_factory=gateway_factory,
        clock=api_clock,
    )

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_streak_registry] = lambda: registry
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_streak_routes_require_a_user(client):
    resp = client.get("/v1/streaks/current")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_fresh_user_snapshot(client):
    resp = client.get("/v1/streaks/current", headers={"X-User-Id": "alice"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["streak"]["currentStreak"] == 0
    assert body["streak"]["status"] == "broken"
    assert body["streak"]["loaded"] is True
    assert body["garden"]["stage"]["name"] == "Barren Plot"


def test_study_flow_grows_garden(client, api_clock, store):
    headers = {"X-User-Id": "alice"}
    for _ in range(3):
        resp = client.post("/v1/streaks/study", headers=headers)
        assert resp.status_code == 200
        api_clock.advance(days=1)

    body = client.get("/v1/streaks/current", headers=headers).json()
    assert body["streak"]["currentStreak"] == 3
    assert body["streak"]["longestStreak"] == 3
    assert body["garden"]["stage"]["index"] == 2
    assert body["garden"]["daysUntilNextStage"] == 4
    assert store["alice"]["currentStreak"] == 3


def test_check_and_reset(client, api_clock, store):
    headers = {"X-User-Id": "bob"}
    client.post("/v1/streaks/study", headers=headers)
    api_clock.advance(hours=49)

    resp = client.post("/v1/streaks/check", headers=headers)
    body = resp.json()
    assert body["broken"] is True
    assert body["streak"]["currentStreak"] == 0
    assert body["streak"]["pastStreaks"][0]["streak"] == 1

    resp = client.post("/v1/streaks/reset", headers=headers)
    assert resp.json()["streak"]["pastStreaks"] == []
    assert resp.json()["streak"]["longestStreak"] == 0


def test_logout_keeps_stored_streak(client, store):
    headers = {"X-User-Id": "carol"}
    client.post("/v1/streaks/study", headers=headers)

    resp = client.post("/v1/streaks/logout", headers=headers)
    assert resp.json() == {"ended": True}
    assert store["carol"]["currentStreak"] == 1

    body = client.get("/v1/streaks/current", headers=headers).json()
    assert body["streak"]["currentStreak"] == 1

    assert client.post("/v1/streaks/logout", headers={"X-User-Id": "nobody"}).json() == {"ended": False}


def test_bearer_token_identifies_user(client, tokens, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "riven-test-secret-0123456789abcdef")
    token = jwt.encode({"sub": "dave"}, "riven-test-secret-0123456789abcdef", algorithm="HS256")
    resp = client.post("/v1/streaks/study", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["streak"]["currentStreak"] == 1
    assert tokens["dave"] == token

    bad = jwt.encode({"sub": "dave"}, "some-other-secret-0123456789abcdef", algorithm="HS256")
    resp = client.get("/v1/streaks/current", headers={"Authorization": f"Bearer {bad}"})
    assert resp.status_code == 401


def test_garden_endpoints(client):
    stages = client.get("/v1/garden/stages").json()["stages"]
    assert len(stages) == 11
    assert stages[-1]["minDays"] == 1000

    body = client.get("/v1/garden/stage", params={"streak": 365}).json()
    assert body["stage"]["name"] == "Eternal Eden"
    assert body["nextStage"]["name"] == "Celestial Eden"


def test_garden_stage_rejects_negative(client):
    resp = client.get("/v1/garden/stage", params={"streak": -2})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"

    resp = client.get("/v1/garden/stage", params={"streak": "lots"})
    assert resp.status_code == 400


def test_streak_blob_endpoints(client):
    headers = {"X-User-Id": "erin"}
    assert client.get("/api/auth/streak", headers=headers).json() == {}

    blob = {"currentStreak": 4, "longestStreak": 9, "pastStreaks": []}
    resp = client.put("/api/auth/streak", headers=headers, json={"streakData": blob})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Streak data saved"}
    assert client.get("/api/auth/streak", headers=headers).json() == blob

    assert client.get("/api/auth/streak").status_code == 401
