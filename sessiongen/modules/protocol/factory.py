"""
Protocol Connector Factory following Black Box Design principles.

This factory:
- Resolves the configured connector (built-in name or import path)
- Returns only the ProtocolConnector interface
"""

import importlib
import logging
from typing import Any

from .interfaces import ProtocolConnector
from .loopback import LoopbackConnector

logger = logging.getLogger(__name__)

BUILTIN_CONNECTORS = {
    "loopback": LoopbackConnector,
}


class ConnectorFactory:
    """Composition root for protocol connectors."""

    @staticmethod
    def build(name: str, **options: Any) -> ProtocolConnector:
        """
        Build a connector.

        Args:
            name: Built-in name ("loopback") or "package.module:factory"
            **options: Keyword arguments forwarded to the factory

        Returns:
            ProtocolConnector

        Raises:
            ValueError: If the name cannot be resolved
        """
        if name in BUILTIN_CONNECTORS:
            logger.info(f"Using built-in protocol connector: {name}")
            return BUILTIN_CONNECTORS[name](**options)

        module_name, _, attr = name.partition(":")
        if not module_name or not attr:
            raise ValueError(
                f"Invalid protocol connector '{name}'. "
                f"Use one of {sorted(BUILTIN_CONNECTORS)} or 'package.module:factory'."
            )

        try:
            module = importlib.import_module(module_name)
            factory = getattr(module, attr)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Cannot load protocol connector '{name}': {e}") from e

        logger.info(f"Using protocol connector from {name}")
        return factory(**options)
