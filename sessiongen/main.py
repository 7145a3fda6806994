#!/usr/bin/env python3
"""
Sessiongen - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the API server

All business logic is in the modules, following black box principles.
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import redis.asyncio as redis
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from sessiongen import __version__
from sessiongen.config.provider import APIConfig, ConfigProvider, EnvConfigProvider
from sessiongen.errors import IdentifierValidationError, ProtocolConnectionError
from sessiongen.logging_config import configure_logging, get_logging_config

# Import modules through their black box interfaces
from sessiongen.modules.api import (
    ClientMessage,
    CreateSessionRequest,
    CreateSessionResponse,
    HealthResponse,
    SessionListResponse,
    SessionSummary,
)
from sessiongen.modules.config import get_config
from sessiongen.modules.credentials import ArtifactDelivery
from sessiongen.modules.notifications import NotificationGateway, create_gateway
from sessiongen.modules.protocol import ConnectorFactory
from sessiongen.modules.session import CoordinatorSettings, SessionCoordinator, SessionStore
from sessiongen.modules.storage import SessionStorage

# Get configuration
config = get_config()

configure_logging(config.get("log_level"))
logger = logging.getLogger(__name__)

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()


@dataclass
class ServiceBundle:
    """Module instances wired together at startup."""
    store: SessionStore
    gateway: NotificationGateway
    coordinator: SessionCoordinator
    storage: SessionStorage
    redis_client: Optional[Any] = None
    download_cleanup_delay: float = 5.0

    async def close(self) -> None:
        await self.coordinator.shutdown()
        await self.gateway.close()
        if self.redis_client:
            await self.redis_client.close()


async def get_redis_client() -> redis.Redis:
    """Create Redis client from configuration."""
    redis_url = f"redis://{config.get('redis_host')}:{config.get('redis_port')}/{config.get('redis_db')}"

    return await redis.from_url(
        redis_url,
        password=config.get("redis_password"),
        encoding="utf-8",
        decode_responses=True,
    )


async def build_services() -> ServiceBundle:
    """Build all modules from configuration."""
    backend = config.get("notification_backend")
    redis_client = await get_redis_client() if backend == "redis" else None

    gateway = create_gateway(backend, redis_client)
    storage = SessionStorage(config.get("sessions_dir"))
    connector = ConnectorFactory.build(config.get("protocol_connector"))
    store = SessionStore()

    coordinator = SessionCoordinator(
        store=store,
        connector=connector,
        gateway=gateway,
        storage=storage,
        delivery=ArtifactDelivery(message_gap=config.get("message_gap")),
        settings=CoordinatorSettings.from_config(config),
    )

    return ServiceBundle(
        store=store,
        gateway=gateway,
        coordinator=coordinator,
        storage=storage,
        redis_client=redis_client,
        download_cleanup_delay=config.get("download_cleanup_delay"),
    )


router = APIRouter()


# Dependency injection helpers
def get_services(request: Request) -> ServiceBundle:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(503, "Service not initialized")
    return services


# Session Endpoints


@router.post("/api/generate-session", response_model=CreateSessionResponse)
async def generate_session(
    payload: Optional[CreateSessionRequest] = None,
    services: ServiceBundle = Depends(get_services),
):
    """
    Start generating a session for a phone number.

    Progress is reported through the notification channels (/api/events, /ws).

    Returns:
        200: Session generation started
        400: Missing or invalid phone number
        500: Connection could not be initialized
    """
    record = await services.coordinator.start_session(payload.phone_number if payload else None)
    return CreateSessionResponse(identifier=record.identifier)


@router.get("/api/sessions", response_model=SessionListResponse)
async def list_sessions(services: ServiceBundle = Depends(get_services)):
    """List sessions currently held by the service."""
    sessions = [SessionSummary(**summary) for summary in services.coordinator.list_sessions()]
    return SessionListResponse(sessions=sessions, count=len(sessions))


@router.get("/download/{filename}")
async def download_file(filename: str, services: ServiceBundle = Depends(get_services)):
    """
    Download a file from the sessions directory.

    The file is deleted shortly after it has been served.

    Returns:
        200: File content
        404: File not found
    """
    path = services.storage.resolve_download(filename)
    if path is None:
        raise HTTPException(404, "File not found")

    def schedule_removal() -> None:
        asyncio.get_running_loop().call_later(
            services.download_cleanup_delay, services.storage.remove_file, path
        )

    return FileResponse(path, filename=path.name, background=BackgroundTask(schedule_removal))


# Observer Endpoints


@router.get("/api/events")
async def stream_events(request: Request, services: ServiceBundle = Depends(get_services)):
    """
    SSE endpoint broadcasting session lifecycle notifications.

    Returns:
        SSE stream of pairingCode, connectionStatus, sessionReady and error events
    """
    subscription = await services.gateway.subscribe()
    logger.info(f"Observer {subscription.subscription_id} connected via SSE")

    async def event_generator():
        try:
            yield {
                "event": "connected",
                "data": json.dumps({"status": "connected"}),
            }
            async for notification in subscription:
                if await request.is_disconnected():
                    break
                yield {
                    "event": notification.event.value,
                    "data": json.dumps(notification.data),
                }
        except asyncio.CancelledError:
            logger.info(f"Observer {subscription.subscription_id} disconnecting")
        finally:
            await services.gateway.unsubscribe(subscription)
            logger.info(f"Observer {subscription.subscription_id} disconnected")

    return EventSourceResponse(event_generator())


@router.websocket("/ws")
async def observer_socket(websocket: WebSocket):
    """
    WebSocket observer channel.

    Forwards every notification and accepts
    {"event": "generateSession", "phoneNumber": "..."} requests.
    """
    services: Optional[ServiceBundle] = getattr(websocket.app.state, "services", None)
    if services is None:
        await websocket.close(code=1011, reason="Service not initialized")
        return

    await websocket.accept()
    client_id = str(uuid.uuid4())
    logger.info(f"Client connected: {client_id}")

    subscription = await services.gateway.subscribe()

    async def forward() -> None:
        async for notification in subscription:
            await websocket.send_json(notification.to_message())

    forwarder = asyncio.create_task(forward())
    try:
        while True:
            raw = await websocket.receive_text()
            await handle_client_message(websocket, services, raw)
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {client_id}")
    finally:
        forwarder.cancel()
        with suppress(asyncio.CancelledError):
            await forwarder
        await services.gateway.unsubscribe(subscription)


async def handle_client_message(websocket: WebSocket, services: ServiceBundle, raw: str) -> None:
    """Handle one message from a WebSocket observer; errors go to that socket only."""
    try:
        message = ClientMessage.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        await send_socket_error(websocket, None, "Malformed message")
        return

    if message.event != "generateSession":
        await send_socket_error(websocket, None, f"Unknown event: {message.event}")
        return

    try:
        await services.coordinator.start_session(message.phone_number)
    except IdentifierValidationError as e:
        await send_socket_error(websocket, e.identifier, e.message)
    except ProtocolConnectionError as e:
        logger.error(f"Error generating session: {e}")
        await send_socket_error(websocket, e.identifier, "Failed to generate session")


async def send_socket_error(websocket: WebSocket, identifier: Optional[str], message: str) -> None:
    data = {"message": message}
    if identifier:
        data["identifier"] = identifier
    await websocket.send_json(
        {"event": "error", "data": data, "timestamp": datetime.now(UTC).isoformat()}
    )


# Health/Monitoring Endpoints


@router.get("/")
async def root(request: Request):
    """Basic route for testing."""
    api_config: APIConfig = request.app.state.api_config
    return {
        "message": "Session Generator API is running",
        "status": "OK",
        "environment": api_config.environment,
        "version": __version__,
    }


@router.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for readiness/liveness probes.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@router.get("/api/health", response_model=HealthResponse)
async def health_check(request: Request, services: ServiceBundle = Depends(get_services)):
    """
    Health check endpoint with CORS info.

    Returns:
        200: Service healthy
        503: Service not initialized
    """
    api_config: APIConfig = request.app.state.api_config
    return HealthResponse(
        active_session_count=services.coordinator.active_count,
        timestamp=datetime.now(UTC).isoformat(),
        environment=api_config.environment,
        allowed_origins=api_config.cors_origins,
        frontend_url=api_config.frontend_url or "Not configured",
    )


# Error handlers


async def validation_error_handler(request, exc):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def connection_error_handler(request, exc):
    """Handle protocol connection initialization failures."""
    logger.error(f"Error generating session: {exc}")
    return JSONResponse(status_code=500, content={"error": "Failed to generate session"})


async def redis_error_handler(request, exc):
    """Handle Redis connection errors."""
    logger.error(f"Redis connection error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Notification backend unavailable"})


def create_app(
    services: Optional[ServiceBundle] = None, api_config: Optional[APIConfig] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built modules; built from configuration at startup when omitted
        api_config: API/CORS settings; read from the environment when omitted
    """
    api_config = api_config or config_provider.get_api_config()
    logger.info(f"Allowed origins: {api_config.cors_origins}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - initialize and cleanup resources.
        """
        logger.info("Starting Sessiongen API...")
        bundle = services or await build_services()
        app.state.services = bundle
        logger.info("Sessiongen API started successfully")

        yield

        logger.info("Shutting down Sessiongen API...")
        await bundle.close()
        app.state.services = None
        logger.info("Sessiongen API shutdown complete")

    app = FastAPI(
        title="Sessiongen API",
        description="Sessiongen - Messaging session generator",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.api_config = api_config
    app.state.services = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(router)

    app.add_exception_handler(ValueError, validation_error_handler)
    app.add_exception_handler(ProtocolConnectionError, connection_error_handler)
    app.add_exception_handler(redis.ConnectionError, redis_error_handler)
    return app


# Create FastAPI application
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "sessiongen.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )
