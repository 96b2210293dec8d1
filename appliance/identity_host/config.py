"""
Configuration management for the identity host.

All configuration comes from environment variables via pydantic-settings.
Every setting has a default matching the appliance deployment, so the host
runtime can start the application with no environment at all.

Invariants:
    - The environment switch is resolved once, before the service is assembled
    - The store path is a single absolute path (base directory + file name)
    - The listener port defaults to the fixed appliance port 7070
    - Secrets are never logged

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep env prefixes stable; appliances are configured out of band
"""

from __future__ import annotations

import logging
import secrets
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LISTEN_PORT = 7070
STORE_BASE_DIR = "/user"
STORE_FILE_NAME = "app.db"


class Environment(Enum):
    """Hosting environment, evaluated once at assembly time."""

    DEVELOPMENT = "Development"
    STAGING = "Staging"
    PRODUCTION = "Production"

    @classmethod
    def parse(cls, value: str) -> Environment:
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        names = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid environment '{value}'. Must be one of: {names}")

    @property
    def is_development(self) -> bool:
        return self is Environment.DEVELOPMENT


class StoreSettings(BaseSettings):
    """Persisted identity store configuration."""

    base_dir: str = Field(default=STORE_BASE_DIR, description="Directory holding the store file")
    file_name: str = Field(default=STORE_FILE_NAME, description="Store file name")
    provider: str = Field(default="sqlite3", description="DB-API module pinned as native provider")
    ensure_created: bool = Field(default=False, description="Create the store file before migrating")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    model_config = {"env_prefix": "IDENTITY_HOST_STORE_"}

    @property
    def path(self) -> Path:
        """Absolute path of the store file."""
        return Path(self.base_dir) / self.file_name

    @property
    def connection_string(self) -> str:
        return f"Data Source={self.path}"


class ListenerSettings(BaseSettings):
    """HTTP listener configuration."""

    port: int = Field(default=LISTEN_PORT, description="Listener TCP port")
    adapter_index: int = Field(default=0, description="Host network adapter to query")
    address: Optional[str] = Field(
        default=None,
        description="Report this address instead of querying the network interfaces",
    )

    model_config = {"env_prefix": "IDENTITY_HOST_LISTEN_"}


class IdentitySettings(BaseSettings):
    """Identity and cookie authentication configuration."""

    require_confirmed_account: bool = Field(default=True)
    cookie_secret: str = Field(default_factory=lambda: secrets.token_hex(32))
    cookie_max_age_seconds: int = Field(default=14 * 24 * 3600)

    model_config = {"env_prefix": "IDENTITY_HOST_IDENTITY_"}


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "IDENTITY_HOST_"}


class HostSettings(BaseSettings):
    """Complete identity host configuration.

    Attributes:
        environment: Hosting environment (Development, Staging, Production)
        store: Persisted store configuration
        listener: HTTP listener configuration
        identity: Identity configuration
        observability: Logging configuration
    """

    environment: Environment = Field(default=Environment.PRODUCTION)
    store: StoreSettings = Field(default_factory=StoreSettings)
    listener: ListenerSettings = Field(default_factory=ListenerSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = {"env_prefix": "IDENTITY_HOST_"}

    @field_validator("environment", mode="before")
    @classmethod
    def _parse_environment(cls, value: object) -> object:
        if isinstance(value, str):
            return Environment.parse(value)
        return value

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Host configuration loaded",
            extra={
                "environment": self.environment.value,
                "store_path": str(self.store.path),
                "store_provider": self.store.provider,
                "listen_port": self.listener.port,
                "address_override": self.listener.address,
                "log_level": self.observability.log_level,
            },
        )
