"""Services for the key rotation proxy."""

from anthropic_key_proxy.services.proxy_router import ProxyRouter


__all__ = ["ProxyRouter"]
