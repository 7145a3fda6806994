"""
API Endpoint tests.

Tests cover:
- POST /api/generate-session - Session requests and validation errors
- GET /api/sessions, /api/health, /healthz, / - Read-only endpoints
- GET /download/{filename} - Downloads from the sessions directory
- GET /api/events - SSE observer stream
- WebSocket /ws - Session requests and notification forwarding

The app is built with injected modules over a fake protocol connector.
"""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import IDENTIFIER, FakeConnector, RecordingGateway
from sessiongen.config.provider import APIConfig
from sessiongen.main import ServiceBundle, create_app, stream_events
from sessiongen.modules.credentials import ArtifactDelivery
from sessiongen.modules.notifications import NotificationType
from sessiongen.modules.session import CoordinatorSettings, SessionCoordinator, SessionStore
from sessiongen.modules.storage import SessionStorage


# =============================================================================
# Test App Setup
# =============================================================================


@pytest.fixture
def api_config():
    return APIConfig(
        port=3000,
        host="127.0.0.1",
        debug=False,
        environment="test",
        frontend_url=None,
        cors_origins=["http://localhost:3000"],
    )


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def services(tmp_path, connector):
    store = SessionStore()
    gateway = RecordingGateway()
    storage = SessionStorage(tmp_path / "sessions")
    coordinator = SessionCoordinator(
        store=store,
        connector=connector,
        gateway=gateway,
        storage=storage,
        delivery=ArtifactDelivery(message_gap=0),
        settings=CoordinatorSettings(pairing_delay=60, stabilize_delay=60, reconnect_delay=60),
    )
    return ServiceBundle(
        store=store,
        gateway=gateway,
        coordinator=coordinator,
        storage=storage,
        download_cleanup_delay=60,
    )


@pytest.fixture
def client(services, api_config):
    app = create_app(services=services, api_config=api_config)
    with TestClient(app) as client:
        yield client


# =============================================================================
# Session Endpoints
# =============================================================================


def test_generate_session_accepted(client, services):
    response = client.post("/api/generate-session", json={"phoneNumber": "+1 (555) 123-4567"})

    assert response.status_code == 200
    assert response.json() == {
        "accepted": True,
        "identifier": IDENTIFIER,
        "message": "Session generation started",
    }
    assert services.store.has(IDENTIFIER)

    sessions = client.get("/api/sessions").json()
    assert sessions == {"sessions": [{"identifier": IDENTIFIER, "connected": False}], "count": 1}


def test_generate_session_invalid_number(client, services, connector):
    response = client.post("/api/generate-session", json={"phoneNumber": "123"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid phone number format"}
    assert len(services.store) == 0
    assert connector.connections == []


def test_generate_session_missing_number(client):
    response = client.post("/api/generate-session", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Phone number is required"}


def test_generate_session_without_body(client, services):
    response = client.post("/api/generate-session")

    assert response.status_code == 400
    assert response.json() == {"error": "Phone number is required"}
    assert len(services.store) == 0


def test_generate_session_connection_failure(client, connector):
    connector.fail = True

    response = client.post("/api/generate-session", json={"phoneNumber": IDENTIFIER})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate session"}


def test_repeat_request_replaces_session(client, services, connector):
    client.post("/api/generate-session", json={"phoneNumber": IDENTIFIER})
    client.post("/api/generate-session", json={"phoneNumber": IDENTIFIER})

    assert client.get("/api/sessions").json()["count"] == 1
    assert connector.connections[0].closed


# =============================================================================
# Health/Monitoring Endpoints
# =============================================================================


def test_health(client):
    client.post("/api/generate-session", json={"phoneNumber": IDENTIFIER})

    data = client.get("/api/health").json()

    assert data["status"] == "OK"
    assert data["activeSessionCount"] == 1
    assert data["environment"] == "test"
    assert data["allowedOrigins"] == ["http://localhost:3000"]
    assert data["frontendUrl"] == "Not configured"
    assert "timestamp" in data


def test_healthz_and_root(client):
    assert client.get("/healthz").json() == {"status": "ok"}

    root = client.get("/").json()
    assert root["status"] == "OK"
    assert root["environment"] == "test"


def test_services_not_initialized(api_config):
    app = create_app(services=None, api_config=api_config)
    # Without the context manager the lifespan never runs
    client = TestClient(app)

    assert client.get("/api/sessions").status_code == 503


# =============================================================================
# Downloads
# =============================================================================


def test_download_file(client, services):
    target = services.storage.base_dir / "creds_15551234567.json"
    target.write_text('{"foo":"bar"}')

    response = client.get("/download/creds_15551234567.json")

    assert response.status_code == 200
    assert response.json() == {"foo": "bar"}


def test_download_missing_file(client):
    assert client.get("/download/missing.json").status_code == 404


# =============================================================================
# WebSocket
# =============================================================================


def test_websocket_rejects_invalid_number(client, services):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "generateSession", "phoneNumber": "12"})
        message = websocket.receive_json()

    assert message["event"] == "error"
    assert message["data"] == {"message": "Invalid phone number format", "identifier": "12"}
    assert len(services.store) == 0


def test_websocket_malformed_message(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        message = websocket.receive_json()

    assert message["event"] == "error"
    assert message["data"]["message"] == "Malformed message"


def test_websocket_generate_session_forwards_notifications(client, services):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "generateSession", "phoneNumber": IDENTIFIER})
        message = websocket.receive_json()

    assert message["event"] == "connectionStatus"
    assert message["data"] == {"identifier": IDENTIFIER, "status": "initializing"}
    assert services.store.has(IDENTIFIER)


# =============================================================================
# Server-Sent Events
# =============================================================================


class ObserverRequest:
    """Stands in for the SSE request; reports a disconnect once told to."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


@pytest.mark.asyncio
async def test_event_stream_forwards_notifications(services):
    response = await stream_events(ObserverRequest(), services)
    events = response.body_iterator

    first = await events.__anext__()
    assert first["event"] == "connected"
    assert json.loads(first["data"]) == {"status": "connected"}
    assert services.gateway.subscriber_count == 1

    await services.gateway.emit(
        NotificationType.CONNECTION_STATUS, {"identifier": IDENTIFIER, "status": "connecting"}
    )
    frame = await events.__anext__()

    assert frame["event"] == "connectionStatus"
    assert json.loads(frame["data"]) == {"identifier": IDENTIFIER, "status": "connecting"}

    await events.aclose()
    assert services.gateway.subscriber_count == 0


@pytest.mark.asyncio
async def test_event_stream_releases_subscription_on_disconnect(services):
    request = ObserverRequest()
    response = await stream_events(request, services)
    events = response.body_iterator
    await events.__anext__()

    request.disconnected = True
    await services.gateway.emit(
        NotificationType.ERROR, {"identifier": IDENTIFIER, "message": "boom"}
    )

    with pytest.raises(StopAsyncIteration):
        await events.__anext__()
    assert services.gateway.subscriber_count == 0
