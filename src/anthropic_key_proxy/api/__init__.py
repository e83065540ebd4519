"""API layer for the key rotation proxy."""

from anthropic_key_proxy.api.app import create_app, get_app
from anthropic_key_proxy.api.dependencies import ProxyRouterDep, get_proxy_router


__all__ = [
    "ProxyRouterDep",
    "create_app",
    "get_app",
    "get_proxy_router",
]
