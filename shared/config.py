"""
Shared configuration management for the feed coordination services.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="FEED_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Backend-as-a-service
    backend_url: str = Field(default="http://localhost:54321")
    backend_api_key: str = Field(default="local-anon-key")
    backend_timeout_seconds: float = Field(default=10.0)

    # Request coordination
    dedup_window_seconds: float = Field(default=1.0, gt=0)
    request_sweep_interval_seconds: float = Field(default=30.0, gt=0)
    entity_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    entity_cache_sweep_interval_seconds: float = Field(default=600.0, gt=0)

    # Feed
    feed_page_size: int = Field(default=20, gt=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
