"""
Sessiongen API data models.

These models define the request and response bodies of the HTTP and
WebSocket surfaces.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Request Models (API Input)


class CreateSessionRequest(BaseModel):
    """Request to generate a session for a phone number."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(
        None,
        alias="phoneNumber",
        description="Phone number in any format; non-digits are stripped",
        max_length=64,
    )


class ClientMessage(BaseModel):
    """Message sent by an observer over the WebSocket channel."""

    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(..., description="Command name, e.g. 'generateSession'")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


# Response Models (API Output)


class CreateSessionResponse(BaseModel):
    """Response after a session request was accepted."""

    accepted: bool = True
    identifier: str
    message: str = "Session generation started"


class SessionSummary(BaseModel):
    """Public view of one session."""

    identifier: str
    connected: bool = False


class SessionListResponse(BaseModel):
    """All sessions currently held by the service."""

    sessions: List[SessionSummary]
    count: int


class HealthResponse(BaseModel):
    """Health report of the service."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = "OK"
    active_session_count: int = Field(..., serialization_alias="activeSessionCount")
    timestamp: str
    environment: str
    allowed_origins: List[str] = Field(default_factory=list, serialization_alias="allowedOrigins")
    frontend_url: str = Field("Not configured", serialization_alias="frontendUrl")
