# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest
from fastapi.testclient import TestClient

from config import AppConfig
from orchestrator.manager import ConnectionManager
from server.app import create_app


async def _never(_: float) -> None:
    # Timelines park here so HTTP assertions see a stable CONNECTING state
    await asyncio.get_running_loop().create_future()


@pytest.fixture
def client():
    manager = ConnectionManager(sleep=_never, republish_interval_ms=60_000)
    app = create_app(AppConfig(), manager=manager)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_strategies(client):
    body = client.get("/strategies").json()

    assert body["default"] == "fast"
    assert [s["name"] for s in body["strategies"]] == ["fast", "secure"]
    assert body["strategies"][1]["total_duration_ms"] == 5_000


def test_connect_and_state(client):
    response = client.post("/connect", json={"node_id": "node-1", "strategy": "secure"})

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "state": {"state": "CONNECTING", "node_id": "node-1", "progress": 0.2},
    }

    state = client.get("/state").json()
    assert state["strategy"] == "secure"
    assert state["state"]["state"] == "CONNECTING"

    current = client.get("/sessions/current").json()["session"]
    assert current["node_id"] == "node-1"
    assert current["is_active"] is True


def test_connect_defaults_to_fast(client):
    response = client.post("/connect", json={"node_id": "node-1"})

    assert response.status_code == 200
    assert client.get("/state").json()["strategy"] == "fast"


def test_second_connect_conflicts(client):
    client.post("/connect", json={"node_id": "node-1", "strategy": "fast"})

    response = client.post("/connect", json={"node_id": "node-2", "strategy": "fast"})

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ALREADY_CONNECTING"
    assert body["message"] == "Already connecting"
    assert body["state"]["node_id"] == "node-1"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"node_id": "node-1", "strategy": "turbo"}, "Invalid strategy: turbo. Must be 'fast' or 'secure'"),
        ({"node_id": "", "strategy": "fast"}, "Node id must not be empty"),
    ],
)
def test_invalid_connect_is_bad_request(client, payload, message):
    response = client.post("/connect", json=payload)

    assert response.status_code == 400
    assert response.json()["message"] == message
    assert client.get("/state").json()["state"] == {"state": "DISCONNECTED"}


def test_disconnect_when_disconnected_conflicts(client):
    response = client.post("/disconnect")

    assert response.status_code == 409
    assert response.json()["error"] == "NOT_CONNECTED"
    assert response.json()["message"] == "Already disconnected"


def test_disconnect_cancels_and_closes_session(client):
    client.post("/connect", json={"node_id": "node-1", "strategy": "fast"})

    response = client.post("/disconnect")

    assert response.status_code == 200
    assert response.json()["state"] == {"state": "DISCONNECTED"}

    sessions = client.get("/sessions").json()["sessions"]
    assert len(sessions) == 1
    assert sessions[0]["is_active"] is False
    assert client.get("/sessions/current").json() == {"session": None}


def test_state_stream(client):
    with client.websocket_connect("/ws/state") as ws:
        assert ws.receive_json() == {"state": "DISCONNECTED"}

        client.post("/connect", json={"node_id": "node-1", "strategy": "fast"})
        frame = ws.receive_json()

        assert frame["state"] == "CONNECTING"
        assert frame["node_id"] == "node-1"
        assert frame["progress"] == pytest.approx(1 / 3)
