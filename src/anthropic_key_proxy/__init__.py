"""Anthropic Key Proxy - reverse proxy with API key rotation on rate limits."""

from ._version import __version__


__all__ = ["__version__"]
