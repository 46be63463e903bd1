"""
Shared configuration management for the Restaurant Directory.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RESTAURANTS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache
    cache_url: str = Field(default="redis://localhost:6379/0")
    use_cache: bool = Field(default=True)
    cache_key_prefix: str = Field(default="restaurants")
    cache_ttl_seconds: int = Field(default=300, ge=1)
    list_cache_ttl_seconds: int = Field(default=60, ge=1)
    cache_timeout_seconds: float = Field(default=0.25, gt=0)
    cache_failure_threshold: int = Field(default=5, ge=1)
    cache_recovery_timeout: float = Field(default=30.0, ge=0)

    # Durable store
    table_name: str = Field(default="Restaurants")
    aws_region: str = Field(default="us-east-1")
    dynamodb_endpoint_url: Optional[str] = Field(default=None)
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    store_max_attempts: int = Field(default=3, ge=1)
    store_retry_base_delay: float = Field(default=0.1, ge=0)

    # Ratings and list queries
    rating_update_attempts: int = Field(default=3, ge=1)
    min_rating_value: float = Field(default=0.0)
    max_rating_value: float = Field(default=5.0)
    default_list_limit: int = Field(default=10, ge=1)
    max_list_limit: int = Field(default=100, ge=1)


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
