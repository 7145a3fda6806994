"""
Credentials Module - Black Box Interface

Purpose: Turn persisted protocol fragments into one artifact and deliver it
Interface: CredentialAssembler.assemble(), ArtifactDelivery.deliver()
Hidden: Fragment file naming, merge order, message pacing
"""

from .assembler import AssemblyResult, CredentialAssembler
from .delivery import ArtifactDelivery, DeliveryResult, INSTRUCTIONS_MESSAGE

__all__ = [
    "AssemblyResult",
    "CredentialAssembler",
    "ArtifactDelivery",
    "DeliveryResult",
    "INSTRUCTIONS_MESSAGE",
]
