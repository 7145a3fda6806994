"""Typed configuration providers."""

from .provider import APIConfig, ConfigProvider, EnvConfigProvider

__all__ = ["APIConfig", "ConfigProvider", "EnvConfigProvider"]
