"""
Session Module - Black Box Interface

Purpose: Manage messaging session lifecycle
Interface: start_session(), list_sessions(), shutdown()
Hidden: Session store, state transitions, deferred work, eviction and retries

Replaceable with any coordinator honoring one session per identifier.
"""

from .coordinator import (
    CoordinatorSettings,
    SESSION_READY_MESSAGE,
    SessionCoordinator,
    SessionStateMachine,
)
from .identifiers import MIN_IDENTIFIER_LENGTH, normalize_identifier
from .store import SessionPhase, SessionRecord, SessionStore

__all__ = [
    "CoordinatorSettings",
    "MIN_IDENTIFIER_LENGTH",
    "SESSION_READY_MESSAGE",
    "SessionCoordinator",
    "SessionPhase",
    "SessionRecord",
    "SessionStateMachine",
    "SessionStore",
    "normalize_identifier",
]
