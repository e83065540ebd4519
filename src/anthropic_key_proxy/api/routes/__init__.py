"""API routes for the key rotation proxy."""

from anthropic_key_proxy.api.routes.proxy import router as proxy_router


__all__ = [
    "proxy_router",
]
