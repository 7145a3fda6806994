"""
Storage Module - Black Box Interface

Purpose: Own the on-disk layout of per-session credential folders
Interface: path_for(), ensure(), purge(), resolve_download()
Hidden: Directory naming, recursive deletion, path-escape checks

The protocol layer writes fragment files inside these folders; this module
only creates, locates and removes them.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

SESSION_DIR_PREFIX = "session_"


class SessionStorage:
    """Filesystem layout for session folders."""

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize storage rooted at a base directory.

        Args:
            base_dir: Directory holding all session folders (created if absent)
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, identifier: str) -> Path:
        """Deterministic folder for an identifier."""
        return self.base_dir / f"{SESSION_DIR_PREFIX}{identifier}"

    def ensure(self, identifier: str) -> Path:
        """
        Create the identifier's folder if absent.

        Raises:
            OSError: If the folder cannot be created
        """
        path = self.path_for(identifier)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def purge(self, path: Union[str, Path]) -> bool:
        """
        Recursively delete a session folder.

        Best-effort: failures are logged and reported, never raised.

        Returns:
            True if the folder no longer exists
        """
        path = Path(path)
        if not path.exists():
            return True
        try:
            shutil.rmtree(path)
            logger.info(f"Removed session directory {path}")
            return True
        except OSError as e:
            logger.error(f"Error removing session directory {path}: {e}")
            return False

    def resolve_download(self, filename: str) -> Optional[Path]:
        """
        Resolve a downloadable file inside the base directory.

        Returns:
            The file path, or None if it does not exist or escapes the base dir
        """
        candidate = (self.base_dir / filename).resolve()
        if not candidate.is_relative_to(self.base_dir) or candidate == self.base_dir:
            logger.warning(f"Rejected download path outside sessions dir: {filename}")
            return None
        if not candidate.is_file():
            return None
        return candidate

    def remove_file(self, path: Union[str, Path]) -> None:
        """Delete a single file, logging failures."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")


__all__ = ["SessionStorage", "SESSION_DIR_PREFIX"]
