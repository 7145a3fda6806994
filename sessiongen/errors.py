"""
Session error taxonomy.

Only IdentifierValidationError and ProtocolConnectionError ever reach the
caller of SessionCoordinator.start_session(). The remaining errors describe
soft failures: they are logged and surfaced through the notification gateway.
"""

from typing import Optional


class SessionError(Exception):
    """Base class for session lifecycle failures."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class IdentifierValidationError(SessionError, ValueError):
    """Missing or malformed client identifier; rejected before any session exists."""


class ProtocolConnectionError(SessionError):
    """The protocol connection could not be initialized."""


class PairingError(SessionError):
    """A pairing code could not be obtained. The session continues."""


class AssemblyError(SessionError):
    """Persisted credential fragments could not be read or merged."""


class DeliveryError(SessionError):
    """The artifact could not be sent over the session's own channel."""


class CleanupError(SessionError):
    """Teardown of a connection or directory failed. Always swallowed."""
