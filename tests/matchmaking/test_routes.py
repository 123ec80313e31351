import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from duelqueue.main import app
from duelqueue.presentation.routes.matchmaking import get_matchmaking_service

BASE = "/api/v1/matchmaking"


@pytest.fixture
def client(service):
    app.dependency_overrides[get_matchmaking_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    # Remove the override after the test
    app.dependency_overrides.clear()


def test_join_queue(client, ratings):
    ratings["a"] = 1500

    response = client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["in_queue"] is True
    assert data["rating"] == 1500
    assert data["mode"] == "ranked"


def test_join_queue_default_mode(client):
    response = client.post(f"{BASE}/queue", json={"user_id": "a"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["mode"] == "ranked"


def test_join_queue_unknown_mode(client):
    response = client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "blitz"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert "Unknown mode" in response.json()["detail"]


def test_join_queue_other_mode_conflict(client):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})

    response = client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "casual"})

    assert response.status_code == status.HTTP_409_CONFLICT


def test_join_schedules_a_tick(client, store):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
    client.post(f"{BASE}/queue", json={"user_id": "b", "mode": "ranked"})

    # The background tick after the second join pairs both players
    response = client.get(f"{BASE}/queue/a")

    assert response.json()["in_queue"] is False
    assert len(store) == 0


def test_unexpected_join_error(client, service):
    service.join_queue = AsyncMock(side_effect=RuntimeError("boom"))

    response = client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "An unexpected error occurred"


def test_leave_queue(client):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})

    first = client.delete(f"{BASE}/queue/a")
    second = client.delete(f"{BASE}/queue/a")

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["removed"] is True
    assert second.status_code == status.HTTP_200_OK
    assert second.json()["removed"] is False


def test_leave_queue_while_being_paired(client, store):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
    asyncio.run(store.try_claim("a"))

    response = client.delete(f"{BASE}/queue/a")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert "being set up" in response.json()["detail"]


def test_queue_status_not_queued(client):
    response = client.get(f"{BASE}/queue/nobody")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "in_queue": False,
        "user_id": "nobody",
        "mode": None,
        "rating": None,
        "position": None,
        "queue_size": None,
        "queued_at": None,
        "wait_seconds": None,
        "allowed_range": None,
        "tier": None,
        "estimated_wait_seconds": None,
    }


def test_wait_returns_match(client):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
    client.post(f"{BASE}/queue", json={"user_id": "b", "mode": "ranked"})

    response = client.get(f"{BASE}/queue/a/wait", params={"timeout": 1})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "matched"
    assert data["opponent_id"] == "b"


def test_wait_still_searching(client):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})

    response = client.get(f"{BASE}/queue/a/wait", params={"timeout": 0.01})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"user_id": "a", "status": "searching"}


def test_wait_without_search(client):
    response = client.get(f"{BASE}/queue/nobody/wait", params={"timeout": 0.01})

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_wait_after_timeout(client, clock):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
    clock.advance(300)
    client.post(f"{BASE}/run")

    response = client.get(f"{BASE}/queue/a/wait", params={"timeout": 0.01})

    assert response.status_code == status.HTTP_408_REQUEST_TIMEOUT


def test_wait_rejects_negative_timeout(client):
    response = client.get(f"{BASE}/queue/a/wait", params={"timeout": -1})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_stats(client):
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "casual"})

    response = client.get(f"{BASE}/stats")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total_in_queue"] == 1
    assert data["modes"]["casual"]["queue_size"] == 1


def test_manual_tick(client, clock, ratings):
    ratings["a"] = 1000
    ratings["b"] = 1400
    client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
    client.post(f"{BASE}/queue", json={"user_id": "b", "mode": "ranked"})
    clock.advance(125)

    response = client.post(f"{BASE}/run")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert len(data["committed"]) == 1
    assert "ranked" in data["modes"]


def test_websocket_receives_match_notification(client, service):
    from duelqueue.presentation.websocket import manager

    service.broker.notify_player = manager.send_notification
    with client.websocket_connect(f"{BASE}/ws/a") as websocket:
        client.post(f"{BASE}/queue", json={"user_id": "a", "mode": "ranked"})
        client.post(f"{BASE}/queue", json={"user_id": "b", "mode": "ranked"})

        message = websocket.receive_json()

    assert message["status"] == "match_found"
    assert message["opponent_id"] == "b"
