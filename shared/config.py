"""
Shared configuration management for Ping Fleet.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PINGFLEET_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Fleet identity
    machine_id: int = Field(default=1, ge=1, description="1-based ordinal of this ping instance")
    total_machines: int = Field(default=1, ge=1, description="Number of ping instances in the fleet")

    # Outbound rate limiting
    rps_limit: int = Field(default=2, ge=1)
    rate_limit_file: str = Field(default="rate-limit.lock")
    lock_timeout_seconds: float = Field(default=0.5, ge=0)

    # Pong service
    pong_service_url: str = Field(default="http://localhost:8081")
    request_timeout_seconds: float = Field(default=5.0, gt=0)
    simulated_work_seconds: float = Field(default=1.0, ge=0)

    # Scheduling
    scheduler_autostart: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_machine_in_fleet(self):
        if self.machine_id > self.total_machines:
            raise ValueError(
                f"machine_id {self.machine_id} is outside the fleet of {self.total_machines}"
            )
        return self


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: Optional[int] = None
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``port`` is only used when PINGFLEET_PORT (or an override) does not set one,
    so several ping instances can share a host.
    """
    config = ServiceConfig(service_name=service_name, **overrides)
    if config.port is None:
        config.port = port
    return config
