"""
Notification data models.

These models define the events broadcast to observers of session lifecycles.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """Event names observers can receive."""

    PAIRING_CODE = "pairingCode"
    CONNECTION_STATUS = "connectionStatus"
    SESSION_READY = "sessionReady"
    ERROR = "error"


class ConnectionStatus(str, Enum):
    """Values of the ``status`` field of connectionStatus events."""

    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    RECONNECTING = "reconnecting"
    CONNECTED = "connected"
    LOGGED_OUT = "logged_out"


class Notification(BaseModel):
    """A single broadcast event."""

    event: NotificationType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def identifier(self) -> str:
        return self.data.get("identifier", "")

    def to_message(self) -> Dict[str, Any]:
        """Wire representation shared by SSE, WebSocket and Redis channels."""
        return {
            "event": self.event.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_message())

    @classmethod
    def from_json(cls, raw: str) -> "Notification":
        message = json.loads(raw)
        return cls(
            event=NotificationType(message["event"]),
            data=message.get("data") or {},
            timestamp=message.get("timestamp") or datetime.now(UTC),
        )
