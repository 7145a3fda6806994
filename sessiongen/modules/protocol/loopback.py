"""
Loopback Protocol Connector for Development

Simulates the behavior of a real messaging-protocol connection so the service
can run end to end without one:

- Emits ``connecting`` as soon as the connection is opened
- Reports unregistered credentials until a pairing code is requested
- Writes creds.json and a pre-key fragment, then emits ``open``
- Records outgoing messages in an outbox instead of sending them
"""

import asyncio
import json
import logging
import secrets
from datetime import UTC, datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .interfaces import ConnectionState, ConnectionUpdate, DisconnectReason

logger = logging.getLogger(__name__)

_CLOSED = object()


class LoopbackConnection:
    """In-process stand-in for a protocol connection."""

    def __init__(self, identifier: str, storage_path: Path, open_delay: float = 1.0):
        self.identifier = identifier
        self.storage_path = Path(storage_path)
        self.open_delay = open_delay
        self.outbox: List[Tuple[str, str]] = []
        self.pairing_requests: List[str] = []
        self._updates: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._streaming = False
        self._pending: Optional[asyncio.Task] = None
        self.creds: Dict = self._load_creds()

        self._updates.put_nowait(ConnectionUpdate(connection=ConnectionState.CONNECTING))
        if self.registered:
            self._pending = asyncio.create_task(self._open_later())

    @property
    def registered(self) -> bool:
        return bool(self.creds.get("registered"))

    @property
    def closed(self) -> bool:
        return self._closed

    def _load_creds(self) -> Dict:
        creds_path = self.storage_path / "creds.json"
        if not creds_path.is_file():
            return {}
        with open(creds_path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def updates(self) -> AsyncIterator[ConnectionUpdate]:
        if self._streaming:
            raise RuntimeError("Connection updates already have a consumer")
        self._streaming = True
        while True:
            update = await self._updates.get()
            if update is _CLOSED:
                break
            yield update

    async def request_pairing_code(self, identifier: str, code: str) -> str:
        if self._closed:
            raise ConnectionError("Connection closed")
        self.pairing_requests.append(code)
        logger.info(f"Loopback pairing requested for {identifier} with code {code}")
        self._pending = asyncio.create_task(self._complete_pairing())
        return f"{code[:4]}-{code[4:]}" if len(code) == 8 else code

    async def _complete_pairing(self) -> None:
        await asyncio.sleep(self.open_delay)
        if self._closed:
            return
        self.creds = {
            "registered": True,
            "me": {"id": f"{self.identifier}@loopback", "name": "Loopback"},
            "noiseKey": secrets.token_hex(32),
            "advSecretKey": secrets.token_urlsafe(32),
            "registrationId": secrets.randbelow(16380) + 1,
            "pairedAt": datetime.now(UTC).isoformat(),
        }
        await self.save_credentials()
        self._write_json("pre-key-1.json", {"keyId": 1, "public": secrets.token_hex(32)})
        self._updates.put_nowait(ConnectionUpdate(credentials_updated=True))
        self._updates.put_nowait(ConnectionUpdate(connection=ConnectionState.OPEN))

    async def _open_later(self) -> None:
        await asyncio.sleep(self.open_delay)
        if not self._closed:
            self._updates.put_nowait(ConnectionUpdate(connection=ConnectionState.OPEN))

    async def send_text(self, identifier: str, text: str) -> None:
        if self._closed:
            raise ConnectionError("Connection closed")
        self.outbox.append((identifier, text))
        logger.info(f"Loopback message to {identifier} ({len(text)} chars)")

    async def save_credentials(self) -> None:
        if self.creds:
            self._write_json("creds.json", self.creds)

    def _write_json(self, filename: str, data: Dict) -> None:
        self.storage_path.mkdir(parents=True, exist_ok=True)
        with open(self.storage_path / filename, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def disconnect(self, status_code: int = DisconnectReason.CONNECTION_LOST) -> None:
        """Simulate the remote side dropping the connection."""
        if self._closed:
            return
        self._updates.put_nowait(
            ConnectionUpdate(
                connection=ConnectionState.CLOSE,
                status_code=int(status_code),
                error="Loopback disconnect",
            )
        )
        self._shutdown()

    async def close(self) -> None:
        self._shutdown()

    def _shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._pending and not self._pending.done():
            self._pending.cancel()
        self._updates.put_nowait(_CLOSED)


class LoopbackConnector:
    """Connector handing out loopback connections."""

    def __init__(self, open_delay: float = 1.0):
        self.open_delay = open_delay
        self.connections: List[LoopbackConnection] = []

    async def connect(self, identifier: str, storage_path: Path) -> LoopbackConnection:
        connection = LoopbackConnection(identifier, storage_path, open_delay=self.open_delay)
        self.connections.append(connection)
        return connection
