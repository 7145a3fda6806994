"""Configuration provider following Black Box Design principles."""
import logging
import os
from dataclasses import dataclass
from typing import Optional, Protocol, List

logger = logging.getLogger(__name__)

DEVELOPMENT_ORIGINS = [
    "http://localhost:3001",
    "http://localhost:3000",
    "http://127.0.0.1:3001",
    "http://127.0.0.1:5500",
    "http://127.0.0.1:3000",
]


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    environment: str
    frontend_url: Optional[str]
    cors_origins: List[str]

    @property
    def is_production(self) -> bool:
        """Check if the service runs in production mode."""
        return self.environment == "production"


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        environment = os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development"))
        frontend_url = os.getenv("FRONTEND_URL") or None

        if environment == "production":
            if not frontend_url:
                logger.warning("FRONTEND_URL not set in production environment")
            extra = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
            cors_origins = [origin for origin in [frontend_url, *extra] if origin]
        else:
            cors_origins = list(DEVELOPMENT_ORIGINS)

        return APIConfig(
            port=int(os.getenv("PORT", os.getenv("API_PORT", "3000"))),
            host=os.getenv("API_HOST", "0.0.0.0"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
            environment=environment,
            frontend_url=frontend_url,
            cors_origins=cors_origins,
        )
