"""
Artifact delivery over the session's own authenticated channel.

The artifact goes to the same principal that requested the session, as two
messages: human-readable instructions, then the raw artifact text.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..protocol.interfaces import ProtocolConnection
from ...errors import DeliveryError

logger = logging.getLogger(__name__)

INSTRUCTIONS_MESSAGE = (
    "*Session Generated Successfully*\n\n"
    "*Instructions:*\n"
    '1. Save the next message as "creds.json"\n'
    "2. Use it in your bot project\n"
    "3. Keep it secure and don't share it\n\n"
    "*Important:* This session is tied to this device. If you log out, "
    "you'll need to generate a new session.\n\n"
    "The creds.json content will be sent in the next message..."
)


@dataclass
class DeliveryResult:
    """Outcome of an artifact delivery."""
    ok: bool
    messages_sent: int = 0
    error: Optional[DeliveryError] = None


class ArtifactDelivery:
    """Sends the instructions and the artifact as two paced messages."""

    def __init__(self, message_gap: float = 2.0, instructions: str = INSTRUCTIONS_MESSAGE):
        """
        Args:
            message_gap: Seconds to wait between the two messages
            instructions: Text of the first message
        """
        self.message_gap = message_gap
        self.instructions = instructions

    async def deliver(
        self, connection: ProtocolConnection, identifier: str, payload: str
    ) -> DeliveryResult:
        """
        Deliver an artifact.

        Returns:
            DeliveryResult; failures are reported, never raised
        """
        sent = 0
        try:
            await connection.send_text(identifier, self.instructions)
            sent += 1
            logger.info(f"Instructions sent to {identifier}")

            await asyncio.sleep(self.message_gap)

            await connection.send_text(identifier, payload)
            sent += 1
            logger.info(f"Credentials sent to {identifier}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error sending session to {identifier}: {e}")
            return DeliveryResult(
                ok=False,
                messages_sent=sent,
                error=DeliveryError(f"Delivery failed after {sent} message(s): {e}", identifier),
            )

        return DeliveryResult(ok=True, messages_sent=sent)
