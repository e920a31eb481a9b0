"""
Shared configuration management for the Eligibility Screening platform.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ELIGIBILITY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Reference data
    reference_data_dir: Optional[str] = Field(default=None, description="Directory holding reference data JSON files")
    asset_limit_default_cents: int = Field(default=200000, ge=0)

    # Caching
    rule_cache_ttl_minutes: int = Field(default=60, ge=1)

    # Repository boundary
    repository_timeout_seconds: float = Field(default=2.0, gt=0)
    repository_retry_attempts: int = Field(default=3, ge=1)
    repository_retry_base_delay: float = Field(default=0.05, ge=0)

    # Observability
    enable_metrics: bool = Field(default=True)


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
