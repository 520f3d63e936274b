"""Configuration management for the MCP client library.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models import ClientInfo, ClientOptions


class ClientSettings(BaseSettings):
    """Defaults applied to every MCP client created without explicit options."""
    timeout: float = Field(default=30.0, gt=0, description="Per-exchange timeout in seconds")
    retries: int = Field(default=0, ge=0, description="Extra attempts on transport failure")
    retry_wait_min: float = Field(default=0.5, ge=0)
    retry_wait_max: float = Field(default=5.0, ge=0)
    client_name: str = Field(default="mcp-client")
    client_version: str = Field(default="1.0.0")
    endpoints: list[str] = Field(default_factory=list, description="Default MCP server URLs")

    model_config = SettingsConfigDict(
        env_prefix="MCP_CLIENT_",
        env_file=".env",
        extra="ignore"
    )

    def to_options(self) -> ClientOptions:
        """Build client options from these settings."""
        return ClientOptions(
            timeout=self.timeout,
            retries=self.retries,
            retry_wait_min=self.retry_wait_min,
            retry_wait_max=self.retry_wait_max,
            client_info=ClientInfo(name=self.client_name, version=self.client_version),
        )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    client: ClientSettings = Field(default_factory=ClientSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("MCP_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
