"""
Credential Assembler

Merges the credential fragments persisted by the protocol layer into a single
exportable artifact:

    {...creds.json, "preKeys": {...}, "senderKeys": {...}, "timestamp": "..."}

Design Principles:
- Soft failure: read/parse errors produce a failed result, never an exception
- Tolerant: every fragment may be absent (empty object default)
- Deterministic: among several files sharing a prefix, the first one in
  sorted directory listing order wins
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ...errors import AssemblyError

logger = logging.getLogger(__name__)

CREDS_FILENAME = "creds.json"
PRE_KEY_PREFIX = "pre-key-"
SENDER_KEY_PREFIX = "sender-key-"


@dataclass
class AssemblyResult:
    """Outcome of assembling a session's credential fragments."""
    ok: bool
    artifact: Optional[Dict[str, Any]] = None
    payload: Optional[str] = None
    error: Optional[AssemblyError] = None


class CredentialAssembler:
    """Read-merge-serialize of a session folder."""

    def __init__(
        self,
        creds_filename: str = CREDS_FILENAME,
        pre_key_prefix: str = PRE_KEY_PREFIX,
        sender_key_prefix: str = SENDER_KEY_PREFIX,
    ):
        self.creds_filename = creds_filename
        self.pre_key_prefix = pre_key_prefix
        self.sender_key_prefix = sender_key_prefix

    def assemble(self, storage_path: Union[str, Path]) -> AssemblyResult:
        """
        Build the artifact for a session folder.

        Args:
            storage_path: Folder written by the protocol layer

        Returns:
            AssemblyResult; ``ok`` is False when any fragment is unreadable
        """
        storage_path = Path(storage_path)
        try:
            base = self._read_json(storage_path / self.creds_filename)

            # One listing for both scans; multiple pre-keys may accumulate over time
            files = sorted(os.listdir(storage_path))
            pre_key_file = self._first_with_prefix(files, self.pre_key_prefix)
            sender_key_file = self._first_with_prefix(files, self.sender_key_prefix)

            pre_keys = self._read_json(storage_path / pre_key_file) if pre_key_file else {}
            sender_keys = (
                self._read_json(storage_path / sender_key_file) if sender_key_file else {}
            )

            artifact = {
                **base,
                "preKeys": pre_keys,
                "senderKeys": sender_keys,
                "timestamp": datetime.now(UTC).isoformat(),
            }
            payload = json.dumps(artifact, separators=(",", ":"))
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error assembling credentials from {storage_path}: {e}")
            return AssemblyResult(
                ok=False,
                error=AssemblyError(f"Could not assemble credentials: {e}"),
            )

        return AssemblyResult(ok=True, artifact=artifact, payload=payload)

    @staticmethod
    def _first_with_prefix(files, prefix: str) -> Optional[str]:
        return next((name for name in files if name.startswith(prefix)), None)

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        """Parse a JSON object file; a missing file is an empty object."""
        if not path.is_file():
            return {}
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} does not contain a JSON object")
        return data
