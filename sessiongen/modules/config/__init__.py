"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), set_config(), load_from_env()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems (Consul, etcd, AWS Parameter Store).
"""

import os
from typing import Any, Dict

from dotenv import load_dotenv

# Configuration Contract: Required and Optional Keys

REQUIRED_CONFIG_KEYS = {
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "environment": "Deployment environment (development, production)",
    "sessions_dir": "Directory holding per-session credential folders",
    "pairing_code": "Fixed pairing code requested for unregistered sessions",
    "pairing_delay": "Seconds to wait before requesting a pairing code",
    "stabilize_delay": "Seconds to wait after open before assembling credentials",
    "message_gap": "Seconds between the instructions and credentials messages",
    "retire_delay": "Seconds after delivery before the session is torn down",
    "reconnect_delay": "Seconds before a dropped session is restarted",
    "download_cleanup_delay": "Seconds before a downloaded file is deleted",
    "protocol_connector": "Connector name ('loopback') or 'module:factory' path",
    "notification_backend": "Notification fan-out backend ('memory' or 'redis')",
}

OPTIONAL_CONFIG_KEYS = {
    "redis_host": {
        "description": "Redis server hostname (redis notification backend)",
        "default": "localhost",
    },
    "redis_port": {
        "description": "Redis server port number",
        "default": 6379,
    },
    "redis_db": {
        "description": "Redis database number",
        "default": 0,
    },
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "debug": {
        "description": "Enable debug mode",
        "default": False,
    },
}


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing
        """
        missing_keys = []
        for key in REQUIRED_CONFIG_KEYS:
            if key not in self._config or self._config[key] is None:
                missing_keys.append(key)

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        load_dotenv()

        # Redis port might be in tcp://host:port format from K8s
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        return {
            # API settings
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("PORT", os.getenv("API_PORT", "3000"))),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            "environment": os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development")),
            # Session settings
            "sessions_dir": os.getenv("SESSIONS_DIR", os.path.join(os.getcwd(), "sessions")),
            "pairing_code": os.getenv("PAIRING_CODE", "SESSGEN1"),
            "pairing_delay": float(os.getenv("PAIRING_DELAY", "3")),
            "stabilize_delay": float(os.getenv("STABILIZE_DELAY", "3")),
            "message_gap": float(os.getenv("MESSAGE_GAP", "2")),
            "retire_delay": float(os.getenv("RETIRE_DELAY", "10")),
            "reconnect_delay": float(os.getenv("RECONNECT_DELAY", "5")),
            "download_cleanup_delay": float(os.getenv("DOWNLOAD_CLEANUP_DELAY", "5")),
            "protocol_connector": os.getenv("PROTOCOL_CONNECTOR", "loopback"),
            # Notification settings
            "notification_backend": os.getenv("NOTIFICATION_BACKEND", "memory").lower(),
            "redis_host": os.getenv("REDIS_HOST", "localhost"),
            "redis_port": redis_port,
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['pairing_code'])
            'Fixed pairing code requested for unregistered sessions'
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


def reset_config() -> None:
    """Drop the cached singleton so the next get_config() re-reads the environment."""
    global _instance
    _instance = None


__all__ = ["get_config", "reset_config", "ConfigModule"]
