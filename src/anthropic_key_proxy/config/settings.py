"""Settings configuration for the key rotation proxy."""

from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from anthropic_key_proxy.core.logging import LOG_LEVELS
from anthropic_key_proxy.core.validators import (
    Port,
    PositiveTimeout,
    parse_comma_separated,
)


__all__ = [
    "Settings",
    "ConfigurationError",
    "get_settings",
]


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class Settings(BaseSettings):
    """
    Configuration settings for the key rotation proxy.

    Settings are loaded from environment variables and an optional .env file.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_keys: Annotated[list[str], NoDecode] = Field(
        description="Upstream API keys in rotation order (comma-separated in env)",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Interface to bind the proxy server to",
    )

    port: Port = Field(
        default=8080,
        description="Port to listen on",
    )

    upstream_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL every request is forwarded to",
    )

    api_key_header: str = Field(
        default="x-api-key",
        min_length=1,
        description="Header that carries the API key upstream",
    )

    # Per-attempt timeouts and connection pool
    request_timeout: PositiveTimeout = Field(
        default=200.0,
        description="Read/write/pool timeout in seconds for each upstream attempt",
    )

    connect_timeout: PositiveTimeout = Field(
        default=10.0,
        description="Connect timeout in seconds for each upstream attempt",
    )

    max_connections: int = Field(
        default=50,
        ge=1,
        description="Maximum concurrent upstream connections",
    )

    max_keepalive_connections: int = Field(
        default=10,
        ge=0,
        description="Maximum idle upstream connections kept alive",
    )

    keepalive_expiry: PositiveTimeout = Field(
        default=190.0,
        description="Seconds an idle upstream connection is kept",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(
        default=False,
        description="Emit logs as JSON lines",
    )

    @field_validator("api_keys", mode="before")
    @classmethod
    def validate_api_keys(cls, v: Any) -> list[str]:
        """Split comma-separated keys and reject an empty key list."""
        keys = parse_comma_separated(v)
        if not keys:
            raise ValueError("No API keys found in API_KEYS environment variable")
        return keys

    @field_validator("upstream_url")
    @classmethod
    def validate_upstream_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Upstream URL must be http(s): {v}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {LOG_LEVELS}")
        return level

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.host}:{self.port}"


def get_settings(**overrides: Any) -> Settings:
    """Load settings from the environment.

    Args:
        **overrides: Values taking precedence over the environment (CLI flags)

    Returns:
        Settings: Configured Settings instance

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    cleaned = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**cleaned)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration error: {e}") from e
