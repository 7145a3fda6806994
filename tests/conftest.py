"""
Shared pytest fixtures for Sessiongen tests.

This module provides common fixtures including:
- FakeConnection / FakeConnector: scriptable protocol connections
- RecordingGateway: broadcast gateway that keeps every emitted event
- Redis mocks for the pub/sub notification backend
- A coordinator wired with zero delays
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sessiongen.modules.credentials import ArtifactDelivery
from sessiongen.modules.notifications import BroadcastGateway, NotificationType
from sessiongen.modules.protocol.interfaces import (
    ConnectionState,
    ConnectionUpdate,
    DisconnectReason,
)
from sessiongen.modules.session import CoordinatorSettings, SessionCoordinator, SessionStore
from sessiongen.modules.storage import SessionStorage


# =============================================================================
# Protocol Fakes
# =============================================================================

class FakeConnection:
    """
    Protocol connection driven by the test.

    Usage:
        connection = connector.latest
        connection.open()                          # emit "open"
        connection.drop(DisconnectReason.LOGGED_OUT)  # emit "close"
    """

    def __init__(self, identifier: str, storage_path: Path, registered: bool = False):
        self.identifier = identifier
        self.storage_path = storage_path
        self._registered = registered
        self._queue: asyncio.Queue = asyncio.Queue()
        self.sent: List[Tuple[str, str]] = []
        self.pairing_codes: List[str] = []
        self.saves = 0
        self.closed = False
        self.fail_pairing = False
        self.fail_send_after: Optional[int] = None

    @property
    def registered(self) -> bool:
        return self._registered

    def push(self, update: ConnectionUpdate) -> None:
        self._queue.put_nowait(update)

    def open(self) -> None:
        self.push(ConnectionUpdate(connection=ConnectionState.OPEN))

    def drop(self, status_code: int = DisconnectReason.CONNECTION_LOST) -> None:
        self.push(
            ConnectionUpdate(
                connection=ConnectionState.CLOSE,
                status_code=int(status_code),
                error="dropped by test",
            )
        )

    async def updates(self):
        while True:
            update = await self._queue.get()
            if update is None:
                return
            yield update

    async def request_pairing_code(self, identifier: str, code: str) -> str:
        if self.fail_pairing:
            raise RuntimeError("pairing rejected")
        self.pairing_codes.append(code)
        return code

    async def send_text(self, identifier: str, text: str) -> None:
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise ConnectionError("send failed")
        self.sent.append((identifier, text))

    async def save_credentials(self) -> None:
        self.saves += 1

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)


class FakeConnector:
    """Connector handing out FakeConnections, each starting with a 'connecting' update."""

    def __init__(self):
        self.connections: List[FakeConnection] = []
        self.fail = False
        self.registered = False
        self.fail_pairing = False

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    async def connect(self, identifier: str, storage_path: Path) -> FakeConnection:
        if self.fail:
            raise ConnectionError("connector unavailable")
        connection = FakeConnection(identifier, storage_path, registered=self.registered)
        connection.fail_pairing = self.fail_pairing
        connection.push(ConnectionUpdate(connection=ConnectionState.CONNECTING))
        self.connections.append(connection)
        return connection


class RecordingGateway(BroadcastGateway):
    """BroadcastGateway that also keeps a log of every emitted event."""

    def __init__(self):
        super().__init__()
        self.events: List[Tuple[NotificationType, Dict[str, Any]]] = []

    async def emit(self, event, payload):
        self.events.append((NotificationType(event), dict(payload)))
        return await super().emit(event, payload)

    def of_type(self, event: NotificationType) -> List[Dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event]

    def statuses(self, identifier: str) -> List[str]:
        return [
            payload["status"]
            for payload in self.of_type(NotificationType.CONNECTION_STATUS)
            if payload["identifier"] == identifier
        ]

    def errors(self) -> List[str]:
        return [payload["message"] for payload in self.of_type(NotificationType.ERROR)]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Session Fixtures
# =============================================================================

IDENTIFIER = "15551234567"


@pytest.fixture
def sessions_dir(tmp_path):
    return tmp_path / "sessions"


@pytest.fixture
def storage(sessions_dir):
    return SessionStorage(sessions_dir)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def settings():
    """Lifecycle settings with every delay collapsed to zero."""
    return CoordinatorSettings(
        pairing_delay=0,
        stabilize_delay=0,
        retire_delay=0,
        reconnect_delay=0,
    )


@pytest_asyncio.fixture
async def coordinator(store, connector, gateway, storage, settings):
    """Coordinator over fakes; shut down after the test."""
    coordinator = SessionCoordinator(
        store=store,
        connector=connector,
        gateway=gateway,
        storage=storage,
        delivery=ArtifactDelivery(message_gap=0),
        settings=settings,
    )
    yield coordinator
    await coordinator.shutdown()


# =============================================================================
# Redis Mocking
# =============================================================================

@pytest.fixture
def mock_pubsub():
    """Mock Redis pubsub object."""
    pubsub = AsyncMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.close = AsyncMock()
    pubsub.get_message = AsyncMock(return_value=None)
    return pubsub


@pytest.fixture
def mock_redis(mock_pubsub):
    """Create a mock async Redis client for pub/sub operations."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.pubsub = MagicMock(return_value=mock_pubsub)
    redis.close = AsyncMock()
    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
