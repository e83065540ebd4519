"""Error handling for the proxy API.

Exhaustion of all API keys is the only error the proxy synthesizes towards
callers, rendered as plain text. Other proxy errors use a JSON envelope.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette import status
from structlog import get_logger

from anthropic_key_proxy.exceptions import KeysExhaustedError, ProxyError


logger = get_logger(__name__)


def _build_error_response(
    status_code: int, error_type: str, message: str
) -> JSONResponse:
    """Build standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application."""
    logger.debug("error_handlers_setup_start")

    @app.exception_handler(KeysExhaustedError)
    async def keys_exhausted_handler(
        request: Request, exc: KeysExhaustedError
    ) -> PlainTextResponse:
        """Answer with the fixed exhaustion message."""
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Handle ProxyError subclasses using their built-in attributes."""
        error_type = (
            exc.error_type.value
            if hasattr(exc.error_type, "value")
            else str(exc.error_type)
        )

        logger.error(
            type(exc).__name__,
            error_type=error_type,
            error_message=str(exc),
            status_code=exc.status_code,
            request_method=request.method,
            request_url=str(request.url.path),
        )

        return _build_error_response(exc.status_code, error_type, str(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle all other unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            error_type="unhandled_exception",
            error_message=str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=True,
        )

        return _build_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_server_error",
            "An internal server error occurred",
        )

    logger.debug("error_handlers_setup_completed")
