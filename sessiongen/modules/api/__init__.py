"""
API Module - Black Box Interface

Purpose: HTTP routing and module orchestration
Interface: REST, SSE and WebSocket endpoints
Hidden: Module initialization, request handling, error responses

The API module only orchestrates - it contains no business logic.
All logic is delegated to appropriate modules.
"""

from .models import (
    ClientMessage,
    CreateSessionRequest,
    CreateSessionResponse,
    HealthResponse,
    SessionListResponse,
    SessionSummary,
)

__all__ = [
    "ClientMessage",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "HealthResponse",
    "SessionListResponse",
    "SessionSummary",
]
