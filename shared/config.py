"""
Shared configuration management for the rule acknowledgement gateway.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACK_GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Aggregator (authoritative acknowledgement store)
    aggregator_url: str = Field(default="http://localhost:8080/api/v1")
    aggregator_timeout_seconds: float = Field(default=10.0, gt=0)
    aggregator_failure_threshold: int = Field(default=3, ge=1)
    aggregator_recovery_timeout: float = Field(default=30.0, gt=0)

    # Per-request budget shared by every Aggregator call of one operation
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Authentication: "xrh" trusts x-rh-identity, "jwt" reads a bearer token
    auth_type: Literal["xrh", "jwt"] = Field(default="xrh")

    # HTTP surface
    api_prefix: str = Field(default="/api/v2")

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
