"""API middleware for the key rotation proxy."""

from anthropic_key_proxy.api.middleware.errors import setup_error_handlers
from anthropic_key_proxy.api.middleware.logging import AccessLogMiddleware
from anthropic_key_proxy.api.middleware.request_id import RequestIDMiddleware


__all__ = [
    "AccessLogMiddleware",
    "RequestIDMiddleware",
    "setup_error_handlers",
]
