"""FastAPI application factory for the key rotation proxy."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from structlog import get_logger

from anthropic_key_proxy import __version__
from anthropic_key_proxy.api.lifecycle import (
    LifecycleComponent,
    execute_shutdown_sequence,
    execute_startup_sequence,
    initialize_http_client_startup,
    initialize_proxy_router_startup,
    log_server_start,
    shutdown_http_client,
    shutdown_proxy_router,
)
from anthropic_key_proxy.api.middleware.errors import setup_error_handlers
from anthropic_key_proxy.api.middleware.logging import AccessLogMiddleware
from anthropic_key_proxy.api.middleware.request_id import RequestIDMiddleware
from anthropic_key_proxy.api.routes.proxy import router as proxy_router
from anthropic_key_proxy.config.settings import Settings, get_settings
from anthropic_key_proxy.core.logging import setup_logging


logger = get_logger(__name__)


LIFECYCLE_COMPONENTS: list[LifecycleComponent] = [
    {
        "name": "Upstream Client",
        "startup": initialize_http_client_startup,
        "shutdown": shutdown_http_client,
    },
    {
        "name": "Proxy Router",
        "startup": initialize_proxy_router_startup,
        "shutdown": shutdown_proxy_router,
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager using component-based approach."""
    settings: Settings = app.state.settings

    log_server_start(settings)
    await execute_startup_sequence(LIFECYCLE_COMPONENTS, app, settings)

    yield

    logger.debug("server_stop")
    await execute_shutdown_sequence(LIFECYCLE_COMPONENTS, app)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. If None, uses get_settings().

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigurationError: If settings are loaded here and are invalid,
            e.g. no API keys configured.
    """
    if settings is None:
        settings = get_settings()

    if not structlog.is_configured():
        setup_logging(json_logs=settings.json_logs, log_level_name=settings.log_level)

    # Every path belongs to the upstream API, so no docs routes are mounted
    app = FastAPI(
        title="Anthropic Key Proxy",
        description="Reverse proxy rotating API keys on upstream rate limits",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    setup_error_handlers(app)

    # Middleware order is reversed: request ID runs first, then access log
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(proxy_router)

    return app


def get_app() -> FastAPI:
    """Get the FastAPI application instance.

    Used as the uvicorn application factory.

    Returns:
        FastAPI application instance.

    """
    return create_app()
