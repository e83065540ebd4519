"""Request ID middleware for generating and tracking request IDs."""

import shortuuid
import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from anthropic_key_proxy.core.request_context import RequestContext


logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware for generating request IDs and initializing request context.

    The ID is bound into structlog's context variables so rotation and
    upstream failure logs for one request can be correlated. No header is
    added to the response; upstream headers pass through untouched.
    """

    def __init__(self, app: ASGIApp):
        """Initialize the request ID middleware.

        Args:
            app: The ASGI application

        """
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request and add request ID/context.

        Args:
            request: The incoming HTTP request
            call_next: The next middleware/handler in the chain

        Returns:
            The HTTP response

        """
        request_id = request.headers.get("x-request-id") or shortuuid.uuid()

        ctx = RequestContext(
            request_id=request_id,
            method=request.method,
            path=str(request.url.path),
        )

        request.state.request_id = request_id
        request.state.context = ctx

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            return await call_next(request)
