"""FastAPI dependencies for the proxy API."""

from typing import Annotated

from fastapi import Depends, Request

from anthropic_key_proxy.exceptions import ErrorType, ProxyError
from anthropic_key_proxy.services.proxy_router import ProxyRouter


def get_proxy_router(request: Request) -> ProxyRouter:
    """Get the proxy router created during application startup.

    Raises:
        ProxyError: If the router has not been initialized
    """
    router = getattr(request.app.state, "proxy_router", None)
    if router is None:
        raise ProxyError(
            "Proxy router not initialized",
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            status_code=503,
        )
    return router  # type: ignore[no-any-return]


ProxyRouterDep = Annotated[ProxyRouter, Depends(get_proxy_router)]
