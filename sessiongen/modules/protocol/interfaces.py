"""Protocol connection interfaces following Black Box Design principles."""

from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol


class ConnectionState(str, Enum):
    """Connection states reported by the protocol layer."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


class DisconnectReason(IntEnum):
    """Status codes attached to a closed connection."""

    LOGGED_OUT = 401
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


@dataclass(frozen=True)
class ConnectionUpdate:
    """
    One event from a connection's update stream.

    ``connection`` is None for updates that only carry a credentials change.
    """

    connection: Optional[ConnectionState] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    credentials_updated: bool = False

    @property
    def is_logout(self) -> bool:
        """True when the connection closed because the device logged out."""
        return (
            self.connection == ConnectionState.CLOSE
            and self.status_code == DisconnectReason.LOGGED_OUT
        )


class ProtocolConnection(Protocol):
    """A live protocol connection, exclusively owned by one session record."""

    @property
    def registered(self) -> bool:
        """Whether the persisted credentials are already paired with an account."""
        ...

    def updates(self) -> AsyncIterator[ConnectionUpdate]:
        """
        Stream of connection updates, in the order the protocol emits them.

        Exactly one consumer may iterate the stream. It ends when the
        connection is closed.
        """
        ...

    async def request_pairing_code(self, identifier: str, code: str) -> str:
        """Request pairing with a fixed, application-defined code."""
        ...

    async def send_text(self, identifier: str, text: str) -> None:
        """Send a text message to the account that owns ``identifier``."""
        ...

    async def save_credentials(self) -> None:
        """Persist the current credentials to the connection's storage path."""
        ...

    async def close(self) -> None:
        """Terminate the connection."""
        ...


class ProtocolConnector(Protocol):
    """Opens protocol connections scoped to a storage directory."""

    async def connect(self, identifier: str, storage_path: Path) -> ProtocolConnection:
        """
        Open a new connection.

        Args:
            identifier: Normalized client identifier
            storage_path: Directory holding this session's credential fragments

        Returns:
            The connection handle
        """
        ...


CredentialSaver = Callable[[], Awaitable[None]]
