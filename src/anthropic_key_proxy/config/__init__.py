"""Configuration module for the key rotation proxy."""

from .settings import ConfigurationError, Settings, get_settings


__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
]
