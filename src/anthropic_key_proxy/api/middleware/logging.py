"""Access logging middleware for structured HTTP request/response logging."""

import asyncio
import time
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp


logger = structlog.get_logger(__name__)


def _extract_request_id(request: Request) -> str | None:
    """Extract request ID from request state if available."""
    request_id = getattr(request.state, "request_id", None)
    return str(request_id) if request_id is not None else None


def _extract_context_metadata(request: Request) -> dict[str, Any]:
    """Attempt count and key index recorded by the proxy router."""
    context = getattr(request.state, "context", None)
    if context is None:
        return {}
    return {
        key: context.metadata[key]
        for key in ("attempts", "key_index")
        if key in context.metadata
    }


def _extract_rate_limit_info(response: Response) -> dict[str, Any]:
    """Extract upstream rate limit headers from response."""
    rate_limit_info: dict[str, Any] = {}

    for header_name, header_value in response.headers.items():
        header_lower = header_name.lower()
        if header_lower.startswith(("x-ratelimit-", "anthropic-ratelimit-")):
            rate_limit_info[header_lower] = header_value
        elif header_lower == "request-id":
            rate_limit_info["upstream_request_id"] = header_value

    return rate_limit_info


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Middleware for structured access logging with request/response details."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request and log access details.

        Args:
            request: The incoming HTTP request
            call_next: The next middleware/handler in the chain

        Returns:
            The HTTP response

        """
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = str(request.url.path)
        query = str(request.url.query) if request.url.query else None

        response: Response | None = None
        error_message: str | None = None

        try:
            response = await call_next(request)
        except (Exception, asyncio.CancelledError) as e:
            error_message = str(e)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if response is not None:
                logger.info(
                    "request_complete",
                    request_id=_extract_request_id(request) or "unknown",
                    method=method,
                    path=path,
                    query=query,
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                    client_ip=client_ip,
                    **_extract_context_metadata(request),
                    **_extract_rate_limit_info(response),
                )
            else:
                logger.error(
                    "request_error",
                    request_id=_extract_request_id(request),
                    method=method,
                    path=path,
                    query=query,
                    duration_ms=round(duration_ms, 2),
                    client_ip=client_ip,
                    error_message=error_message or "No response generated",
                )

        return response
