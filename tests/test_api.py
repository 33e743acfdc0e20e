from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from bloodbridge.main import app
from bloodbridge.models.matching import UrgencyLevel
from bloodbridge.models.user import UserPublic
from bloodbridge.routers.auth import get_current_user
from bloodbridge.routers.matching import get_engine

from .conftest import InMemoryRequestStore, make_donor, make_request


def _user(role: str) -> UserPublic:
    return UserPublic(_id="64b000000000000000000001", email="staff@bloodbridge.org", name="Staff", role=role)


@pytest.fixture
def client(build_engine):
    store = InMemoryRequestStore({"req-1": make_request(urgency=UrgencyLevel.LOW)})
    engine = build_engine([make_donor("near", km=5.0), make_donor("far", km=18.0)], store=store)
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_current_user] = lambda: _user("admin")
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_compatibility_lookup(client):
    response = client.get("/matching/compatibility/AB-")

    assert response.status_code == 200
    assert response.json() == ["A-", "AB-", "B-", "O-"]


def test_unknown_blood_group_is_rejected(client):
    assert client.get("/matching/compatibility/C+").status_code == 422


def test_match_request(client):
    response = client.post("/matching/requests/req-1/match")

    assert response.status_code == 200
    body = response.json()
    assert [match["donorId"] for match in body] == ["near"]
    assert body[0]["availability"]["isAvailable"] is True


def test_expand_search(client):
    response = client.post("/matching/requests/req-1/expand", json={"radius_km": 25})

    assert response.status_code == 200
    assert [match["donorId"] for match in response.json()] == ["near", "far"]


def test_expand_search_validates_radius(client):
    assert client.post("/matching/requests/req-1/expand", json={"radius_km": 0}).status_code == 422


def test_missing_request_is_404(client):
    assert client.post("/matching/requests/nope/match").status_code == 404


def test_metrics_for_admin(client):
    response = client.get("/matching/metrics")

    assert response.status_code == 200
    assert response.json()["total_matches"] == 0


def test_donor_cannot_trigger_matching(client):
    app.dependency_overrides[get_current_user] = lambda: _user("donor")

    assert client.post("/matching/requests/req-1/match").status_code == 403
    assert client.get("/matching/metrics").status_code == 403


def test_missing_token_is_401(client):
    del app.dependency_overrides[get_current_user]

    assert client.get("/matching/compatibility/O-").status_code == 401
