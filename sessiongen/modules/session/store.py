"""
Session Store

Process-wide mapping from client identifier to session record. It is the
single source of truth for whether an active or in-flight session exists.

Every method is synchronous so a mutation can never be interleaved with
another coroutine. Lifetime of an entry is controlled entirely by the
coordinator; the store has no TTL of its own.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..protocol.interfaces import CredentialSaver, ProtocolConnection

logger = logging.getLogger(__name__)

_generations = itertools.count(1)


class SessionPhase(str, Enum):
    """Lifecycle phase of a session record."""

    REQUESTED = "requested"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    DELIVERING = "delivering"
    RETIRING = "retiring"
    CLOSED = "closed"
    LOGGED_OUT = "logged_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.CLOSED, SessionPhase.LOGGED_OUT, SessionPhase.FAILED)


@dataclass(eq=False)
class SessionRecord:
    """
    One provisioned session.

    The record exclusively owns its connection, its storage directory and the
    deferred tasks scheduled on its behalf. ``generation`` is unique per
    record and lets deferred work tell a superseded record from its successor.
    """

    identifier: str
    connection: ProtocolConnection
    storage_path: Path
    credential_saver: Optional[CredentialSaver] = None
    connected: bool = False
    phase: SessionPhase = SessionPhase.REQUESTED
    generation: int = field(default_factory=lambda: next(_generations))
    tasks: Set[asyncio.Task] = field(default_factory=set)

    def mark_connected(self) -> None:
        """Flip ``connected`` on the first successful open."""
        if not self.connected:
            self.connected = True

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Take ownership of a background task."""
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def cancel_tasks(self) -> int:
        """
        Cancel every pending task owned by this record.

        The task running the caller is skipped so teardown can be invoked
        from inside the record's own deferred work.

        Returns:
            Number of tasks cancelled
        """
        current = asyncio.current_task()
        cancelled = 0
        for task in list(self.tasks):
            if task is current or task.done():
                continue
            task.cancel()
            cancelled += 1
        return cancelled

    def to_summary(self) -> dict:
        return {"identifier": self.identifier, "connected": self.connected}


class SessionStore:
    """In-memory session store keyed by normalized identifier."""

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}

    def has(self, identifier: str) -> bool:
        return identifier in self._records

    def get(self, identifier: str) -> Optional[SessionRecord]:
        return self._records.get(identifier)

    def put(self, identifier: str, record: SessionRecord) -> None:
        """
        Register a record.

        Raises:
            ValueError: If another record is still registered for the identifier
        """
        existing = self._records.get(identifier)
        if existing is not None and existing is not record:
            raise ValueError(f"Session for {identifier} already registered")
        self._records[identifier] = record

    def remove(
        self, identifier: str, expected: Optional[SessionRecord] = None
    ) -> Optional[SessionRecord]:
        """
        Remove the record for an identifier.

        Args:
            identifier: Normalized identifier
            expected: When given, remove only if this exact record is current

        Returns:
            The removed record, or None if nothing was removed
        """
        current = self._records.get(identifier)
        if current is None:
            return None
        if expected is not None and current is not expected:
            logger.debug(
                f"Skipping removal for {identifier}: generation {expected.generation} "
                f"superseded by {current.generation}"
            )
            return None
        return self._records.pop(identifier)

    def is_current(self, record: SessionRecord) -> bool:
        """Check that the record is still the registered one for its identifier."""
        return self._records.get(record.identifier) is record

    def records(self) -> List[SessionRecord]:
        """Snapshot of all records."""
        return list(self._records.values())

    def clear(self) -> List[SessionRecord]:
        """Remove and return every record."""
        records = list(self._records.values())
        self._records.clear()
        return records

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: str) -> bool:
        return self.has(identifier)
