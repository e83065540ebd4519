"""Application lifecycle management helpers."""

from collections.abc import Awaitable, Callable

import httpx
from fastapi import FastAPI
from structlog import get_logger
from typing_extensions import TypedDict

from anthropic_key_proxy.config.settings import Settings
from anthropic_key_proxy.rotation import CredentialSet, RotationCursor
from anthropic_key_proxy.services.proxy_router import ProxyRouter


logger = get_logger(__name__)


class LifecycleComponent(TypedDict):
    name: str
    startup: Callable[[FastAPI, Settings], Awaitable[None]] | None
    shutdown: Callable[[FastAPI], Awaitable[None]] | None


def _component_slug(component: LifecycleComponent) -> str:
    return component["name"].lower().replace(" ", "_")


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared upstream client with pool limits and timeouts."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            keepalive_expiry=settings.keepalive_expiry,
        ),
        follow_redirects=False,
    )


async def initialize_http_client_startup(app: FastAPI, settings: Settings) -> None:
    """Create the upstream client unless one was provided on app state."""
    if getattr(app.state, "http_client", None) is not None:
        app.state.owns_http_client = False
        logger.debug("http_client_provided")
        return

    app.state.http_client = create_http_client(settings)
    app.state.owns_http_client = True
    logger.debug(
        "http_client_created",
        max_connections=settings.max_connections,
        request_timeout=settings.request_timeout,
    )


async def shutdown_http_client(app: FastAPI) -> None:
    """Close the upstream client if this application created it."""
    client: httpx.AsyncClient | None = getattr(app.state, "http_client", None)
    if client is not None and getattr(app.state, "owns_http_client", False):
        await client.aclose()
        app.state.http_client = None


async def initialize_proxy_router_startup(app: FastAPI, settings: Settings) -> None:
    """Build the key rotation state and the router sharing it."""
    credentials = CredentialSet.from_keys(settings.api_keys)
    cursor = RotationCursor(credentials)
    app.state.proxy_router = ProxyRouter(
        client=app.state.http_client,
        cursor=cursor,
        upstream_url=settings.upstream_url,
        api_key_header=settings.api_key_header,
    )
    logger.info(
        "proxy_router_initialized",
        key_count=len(credentials),
        upstream_url=settings.upstream_url,
        api_key_header=settings.api_key_header,
    )


async def shutdown_proxy_router(app: FastAPI) -> None:
    app.state.proxy_router = None


async def run_startup_component(
    component: LifecycleComponent,
    app: FastAPI,
    settings: Settings,
) -> None:
    """Execute a single startup component.

    Every component is required, so failures are logged and re-raised to
    abort startup.

    Args:
        component: Lifecycle component definition
        app: FastAPI application instance
        settings: Application settings
    """
    if not component["startup"]:
        return

    try:
        logger.debug(f"starting_{_component_slug(component)}")
        await component["startup"](app, settings)
    except (OSError, RuntimeError, ValueError) as e:
        logger.error(
            f"{_component_slug(component)}_startup_failed",
            error=str(e),
            component=component["name"],
        )
        raise


async def run_shutdown_component(component: LifecycleComponent, app: FastAPI) -> None:
    """Execute a single shutdown component with error handling.

    Args:
        component: Lifecycle component definition
        app: FastAPI application instance
    """
    if not component["shutdown"]:
        return

    try:
        logger.debug(f"stopping_{_component_slug(component)}")
        await component["shutdown"](app)
    except (OSError, RuntimeError) as e:
        logger.error(
            f"{_component_slug(component)}_shutdown_failed",
            error=str(e),
            component=component["name"],
        )


async def execute_startup_sequence(
    components: list[LifecycleComponent],
    app: FastAPI,
    settings: Settings,
) -> None:
    """Execute all startup components in order."""
    for component in components:
        await run_startup_component(component, app, settings)


async def execute_shutdown_sequence(
    components: list[LifecycleComponent],
    app: FastAPI,
) -> None:
    """Execute all shutdown components in reverse order."""
    for component in reversed(components):
        await run_shutdown_component(component, app)


def log_server_start(settings: Settings) -> None:
    """Log server startup information.

    Args:
        settings: Application settings
    """
    logger.info(
        "server_start",
        host=settings.host,
        port=settings.port,
        url=settings.server_url,
        key_count=len(settings.api_keys),
    )
