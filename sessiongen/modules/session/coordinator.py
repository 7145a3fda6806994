"""
Session Lifecycle Coordinator

Drives one session per identifier through

    REQUESTED -> CONNECTING -> AWAITING_PAIRING -> OPEN -> DELIVERING -> RETIRING -> CLOSED

with LOGGED_OUT and FAILED reachable from any non-terminal phase.

Each record's connection update stream has exactly one consumer, a
SessionStateMachine, so updates for an identifier are handled in order.
Deferred work (pairing request, stabilization, retirement) is owned by the
record: it is cancelled when the record is torn down and re-checks at fire
time that the record is still the store's current entry, so a superseded
record can never act on its successor.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from ...errors import (
    CleanupError,
    PairingError,
    ProtocolConnectionError,
    SessionError,
)
from ..credentials import ArtifactDelivery, CredentialAssembler
from ..notifications import ConnectionStatus, NotificationGateway, NotificationType
from ..protocol.interfaces import ConnectionState, ConnectionUpdate, ProtocolConnector
from ..storage import SessionStorage
from .identifiers import normalize_identifier
from .store import SessionPhase, SessionRecord, SessionStore

logger = logging.getLogger(__name__)

SESSION_READY_MESSAGE = "Session sent to your account! Check your messages."


@dataclass
class CoordinatorSettings:
    """Timings and constants of the session lifecycle (seconds)."""
    pairing_code: str = "SESSGEN1"
    pairing_delay: float = 3.0
    stabilize_delay: float = 3.0
    retire_delay: float = 10.0
    reconnect_delay: float = 5.0

    @classmethod
    def from_config(cls, config: Any) -> "CoordinatorSettings":
        return cls(
            pairing_code=config.get("pairing_code"),
            pairing_delay=config.get("pairing_delay"),
            stabilize_delay=config.get("stabilize_delay"),
            retire_delay=config.get("retire_delay"),
            reconnect_delay=config.get("reconnect_delay"),
        )


class SessionStateMachine:
    """Sole consumer of one record's connection updates."""

    def __init__(self, coordinator: "SessionCoordinator", record: SessionRecord):
        self._coordinator = coordinator
        self.record = record

    @property
    def identifier(self) -> str:
        return self.record.identifier

    @property
    def finished(self) -> bool:
        return self.record.phase.is_terminal

    async def handle(self, update: ConnectionUpdate) -> None:
        """Apply one connection update."""
        record = self.record
        if update.credentials_updated:
            await self._save_credentials()
        if update.connection is None:
            return

        if not self._coordinator.is_current(record):
            logger.debug(
                f"Ignoring {update.connection.value} for superseded session "
                f"{self.identifier} (generation {record.generation})"
            )
            return

        logger.info(f"Connection update for {self.identifier}: {update.connection.value}")

        if update.connection == ConnectionState.CONNECTING:
            if record.phase != SessionPhase.AWAITING_PAIRING:
                record.phase = SessionPhase.CONNECTING
            await self._coordinator.emit_status(self.identifier, ConnectionStatus.CONNECTING)
        elif update.connection == ConnectionState.OPEN:
            await self._on_open()
        elif update.connection == ConnectionState.CLOSE:
            await self._on_close(update)

    async def _save_credentials(self) -> None:
        saver = self.record.credential_saver
        if saver is None:
            return
        try:
            await saver()
        except Exception as e:
            logger.error(f"Error saving credentials for {self.identifier}: {e}")

    async def _on_open(self) -> None:
        record = self.record
        record.mark_connected()
        record.phase = SessionPhase.OPEN
        logger.info(f"Connected successfully for {self.identifier}")
        await self._coordinator.emit_status(self.identifier, ConnectionStatus.CONNECTED)
        self._coordinator.schedule(
            record, self._coordinator.settings.stabilize_delay, self.deliver, "deliver"
        )

    async def _on_close(self, update: ConnectionUpdate) -> None:
        logger.info(
            f"Connection closed for {self.identifier}: "
            f"status={update.status_code} error={update.error}"
        )
        if update.is_logout:
            await self._coordinator.emit_status(self.identifier, ConnectionStatus.LOGGED_OUT)
            await self._coordinator.discard(self.record, SessionPhase.LOGGED_OUT, purge=True)
            return

        await self._coordinator.emit_status(self.identifier, ConnectionStatus.RECONNECTING)
        await self._coordinator.discard(self.record, SessionPhase.CLOSED, purge=False)
        self._coordinator.schedule_retry(self.identifier)

    async def request_pairing_code(self) -> None:
        """Request a pairing code with the fixed application code."""
        settings = self._coordinator.settings
        try:
            code = await self.record.connection.request_pairing_code(
                self.identifier, settings.pairing_code
            )
        except Exception as e:
            logger.error(f"Error requesting pairing code for {self.identifier}: {e}")
            await self._coordinator.notify_error(
                PairingError("Failed to generate custom pairing code", self.identifier)
            )
            return

        if not self._coordinator.is_current(self.record):
            return
        logger.info(f"Pairing code generated for {self.identifier}: {code}")
        await self._coordinator.emit(
            NotificationType.PAIRING_CODE, self.identifier, code=code
        )

    async def deliver(self) -> None:
        """Assemble the artifact and send it through the session's own channel."""
        record = self.record
        coordinator = self._coordinator
        record.phase = SessionPhase.DELIVERING

        assembly = coordinator.assembler.assemble(record.storage_path)
        if not assembly.ok:
            record.phase = SessionPhase.OPEN
            await coordinator.notify_error(
                SessionError("Error creating session file", self.identifier)
            )
            return

        result = await coordinator.delivery.deliver(
            record.connection, self.identifier, assembly.payload
        )
        if not coordinator.is_current(record):
            return
        if not result.ok:
            record.phase = SessionPhase.OPEN
            logger.error(f"Delivery failed for {self.identifier}: {result.error}")
            await coordinator.notify_error(
                SessionError("Failed to send session via protocol channel", self.identifier)
            )
            return

        await coordinator.emit(
            NotificationType.SESSION_READY,
            self.identifier,
            message=SESSION_READY_MESSAGE,
            sessionSent=True,
        )
        coordinator.schedule(record, coordinator.settings.retire_delay, self.retire, "retire")

    async def retire(self) -> None:
        """Tear down a delivered session and purge its folder."""
        self.record.phase = SessionPhase.RETIRING
        logger.info(f"Retiring session for {self.identifier}")
        await self._coordinator.discard(self.record, SessionPhase.CLOSED, purge=True)


class SessionCoordinator:
    """
    Owns every session's lifecycle.

    Thread-safe for async operations: start_session() calls for the same
    identifier are serialized with a per-identifier asyncio lock, store
    mutations themselves never suspend.
    """

    def __init__(
        self,
        store: SessionStore,
        connector: ProtocolConnector,
        gateway: NotificationGateway,
        storage: SessionStorage,
        assembler: Optional[CredentialAssembler] = None,
        delivery: Optional[ArtifactDelivery] = None,
        settings: Optional[CoordinatorSettings] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            store: Session store (single instance per process)
            connector: Opens protocol connections
            gateway: Notification fan-out
            storage: Session folder layout
            assembler: Credential assembler
            delivery: Artifact delivery
            settings: Lifecycle timings
        """
        self.store = store
        self.connector = connector
        self.gateway = gateway
        self.storage = storage
        self.assembler = assembler or CredentialAssembler()
        self.delivery = delivery or ArtifactDelivery()
        self.settings = settings or CoordinatorSettings()

        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._retries: Dict[str, asyncio.Task] = {}

    # Caller-facing operations

    async def start_session(self, identifier: Optional[str]) -> SessionRecord:
        """
        Start (or restart) the session for an identifier.

        Returns as soon as the connection is registered; all further progress
        is driven by connection updates.

        Raises:
            IdentifierValidationError: Missing or malformed identifier
            ProtocolConnectionError: Folder creation or connection setup failed
        """
        identifier = normalize_identifier(identifier)
        self._cancel_retry(identifier)
        return await self._start(identifier)

    def list_sessions(self) -> List[dict]:
        return [record.to_summary() for record in self.store.records()]

    @property
    def active_count(self) -> int:
        return len(self.store)

    @property
    def pending_retries(self) -> int:
        return sum(1 for task in self._retries.values() if not task.done())

    def is_current(self, record: SessionRecord) -> bool:
        return self.store.is_current(record)

    async def shutdown(self) -> None:
        """Cancel pending retries and close every live session."""
        logger.info("Cleaning up sessions...")
        tasks = list(self._retries.values())
        self._retries.clear()
        self._locks.clear()
        self._lock_users.clear()
        for record in self.store.clear():
            record.phase = SessionPhase.CLOSED
            tasks.extend(record.tasks)
            record.cancel_tasks()
            await self._close_connection(record)

        current = asyncio.current_task()
        tasks = [task for task in tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Lifecycle internals

    @asynccontextmanager
    async def _identifier_lock(self, identifier: str) -> AsyncIterator[None]:
        """Serialize starts for one identifier; the lock is dropped once unused."""
        lock = self._locks.setdefault(identifier, asyncio.Lock())
        self._lock_users[identifier] = self._lock_users.get(identifier, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.get(identifier, 1) - 1
            if users > 0:
                self._lock_users[identifier] = users
            else:
                self._lock_users.pop(identifier, None)
                if self._locks.get(identifier) is lock:
                    del self._locks[identifier]

    async def _start(self, identifier: str) -> SessionRecord:
        async with self._identifier_lock(identifier):
            await self._evict(identifier)
            await self.emit_status(identifier, ConnectionStatus.INITIALIZING)

            try:
                storage_path = self.storage.ensure(identifier)
                connection = await self.connector.connect(identifier, storage_path)
            except Exception as e:
                logger.error(f"Error initializing connection for {identifier}: {e}")
                error = ProtocolConnectionError("Failed to initialize connection", identifier)
                self.storage.purge(self.storage.path_for(identifier))
                await self.notify_error(error)
                raise error from e

            record = SessionRecord(
                identifier=identifier,
                connection=connection,
                storage_path=storage_path,
                credential_saver=getattr(connection, "save_credentials", None),
                phase=SessionPhase.CONNECTING,
            )
            self.store.put(identifier, record)

        machine = SessionStateMachine(self, record)
        record.track(
            asyncio.create_task(self._consume(machine), name=f"session-updates-{identifier}")
        )

        if not connection.registered:
            record.phase = SessionPhase.AWAITING_PAIRING
            self.schedule(
                record, self.settings.pairing_delay, machine.request_pairing_code, "pairing"
            )

        logger.info(f"Session started for {identifier} (generation {record.generation})")
        return record

    async def _evict(self, identifier: str) -> None:
        existing = self.store.remove(identifier)
        if existing is None:
            return
        logger.info(
            f"Closing existing session for {identifier} (generation {existing.generation})"
        )
        existing.phase = SessionPhase.CLOSED
        existing.cancel_tasks()
        await self._close_connection(existing)

    async def _consume(self, machine: SessionStateMachine) -> None:
        record = machine.record
        try:
            async for update in record.connection.updates():
                try:
                    await machine.handle(update)
                except Exception as e:
                    logger.exception(f"Error handling connection update for {record.identifier}")
                    await self.notify_error(
                        SessionError(f"Error processing connection update: {e}", record.identifier)
                    )
                if machine.finished or not self.is_current(record):
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Connection update stream failed for {record.identifier}: {e}")

        if self.is_current(record) and not machine.finished:
            await self.notify_error(
                SessionError("Connection stream ended unexpectedly", record.identifier)
            )
            await self.discard(record, SessionPhase.FAILED, purge=True)

    def schedule(
        self,
        record: SessionRecord,
        delay: float,
        action: Callable[[], Awaitable[None]],
        label: str,
    ) -> asyncio.Task:
        """
        Run ``action`` after ``delay`` seconds on behalf of ``record``.

        The action is skipped if the record is no longer current when the
        delay elapses, and is cancelled outright when the record is torn down.
        """

        async def runner() -> None:
            await asyncio.sleep(delay)
            if not self.is_current(record):
                logger.debug(
                    f"Skipping {label} for {record.identifier}: "
                    f"generation {record.generation} is no longer current"
                )
                return
            try:
                await action()
            except Exception:
                logger.exception(f"Error during {label} for {record.identifier}")
                await self.notify_error(
                    SessionError("Error processing session", record.identifier)
                )

        return record.track(
            asyncio.create_task(runner(), name=f"{label}-{record.identifier}")
        )

    def schedule_retry(self, identifier: str) -> asyncio.Task:
        """Restart the session after the reconnect delay, unless a newer one exists by then."""
        self._cancel_retry(identifier)
        task = asyncio.create_task(
            self._retry_later(identifier), name=f"reconnect-{identifier}"
        )
        self._retries[identifier] = task

        def _forget(done: asyncio.Task) -> None:
            if self._retries.get(identifier) is done:
                del self._retries[identifier]

        task.add_done_callback(_forget)
        return task

    async def _retry_later(self, identifier: str) -> None:
        await asyncio.sleep(self.settings.reconnect_delay)
        if self.store.has(identifier):
            logger.info(f"Skipping reconnect for {identifier}: a newer session exists")
            return
        logger.info(f"Reconnecting session for {identifier}")
        try:
            await self._start(identifier)
        except SessionError as e:
            logger.error(f"Reconnect failed for {identifier}: {e}")

    def _cancel_retry(self, identifier: str) -> None:
        pending = self._retries.pop(identifier, None)
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()

    async def discard(self, record: SessionRecord, phase: SessionPhase, purge: bool) -> None:
        """
        Remove a record from the store and release what it owns.

        The storage folder is purged only if the record was still current,
        since a successor for the same identifier reuses the folder.
        """
        removed = self.store.remove(record.identifier, expected=record)
        record.phase = phase
        record.cancel_tasks()
        await self._close_connection(record)
        if purge and removed is not None:
            self.storage.purge(record.storage_path)

    async def _close_connection(self, record: SessionRecord) -> None:
        try:
            await record.connection.close()
        except Exception as e:
            error = CleanupError(f"Error closing connection: {e}", record.identifier)
            logger.error(f"{error.message} (session {record.identifier})")

    # Notifications

    async def emit(self, event: NotificationType, identifier: str, **fields: Any) -> None:
        await self.gateway.emit(event, {"identifier": identifier, **fields})

    async def emit_status(self, identifier: str, status: ConnectionStatus) -> None:
        await self.emit(NotificationType.CONNECTION_STATUS, identifier, status=status.value)

    async def notify_error(self, error: SessionError) -> None:
        logger.warning(f"Session error for {error.identifier}: {error.message}")
        await self.emit(NotificationType.ERROR, error.identifier or "", message=error.message)
