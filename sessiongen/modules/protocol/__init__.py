"""
Protocol Module - Black Box Interface

Purpose: Boundary to the messaging protocol implementation
Interface: ProtocolConnector.connect(), ProtocolConnection, ConnectionUpdate
Hidden: Pairing-code exchange, encryption, wire framing

Any implementation satisfying the interfaces can be plugged in through
ConnectorFactory; the loopback connector simulates one for development.
"""

from .factory import ConnectorFactory
from .interfaces import (
    ConnectionState,
    ConnectionUpdate,
    CredentialSaver,
    DisconnectReason,
    ProtocolConnection,
    ProtocolConnector,
)
from .loopback import LoopbackConnection, LoopbackConnector

__all__ = [
    "ConnectionState",
    "ConnectionUpdate",
    "ConnectorFactory",
    "CredentialSaver",
    "DisconnectReason",
    "LoopbackConnection",
    "LoopbackConnector",
    "ProtocolConnection",
    "ProtocolConnector",
]
