"""Catch-all proxy endpoint forwarding every request upstream."""

from collections.abc import AsyncIterator

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from fastapi.routing import APIRoute
from starlette.routing import Match
from starlette.types import Receive, Scope, Send

from anthropic_key_proxy.api.dependencies import ProxyRouterDep
from anthropic_key_proxy.services.proxy_router import HOP_BY_HOP_HEADERS


class AnyMethodRoute(APIRoute):
    """Route that accepts every HTTP method, including non-standard ones.

    Starlette only reports a partial match when the path matches and the
    method does not, so promoting it to a full match and skipping the 405
    check in ``handle`` lets any method reach the endpoint.
    """

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match == Match.PARTIAL:
            match = Match.FULL
        return match, child_scope

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)


router = APIRouter(tags=["proxy"], route_class=AnyMethodRoute)


def extract_raw_path(request: Request) -> str:
    """Get the request path exactly as the client sent it (still percent-encoded)."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return str(raw_path.decode("latin-1"))
    return request.url.path


def build_downstream_headers(headers: httpx.Headers) -> list[tuple[bytes, bytes]]:
    """Upstream response headers as ASGI raw headers, duplicates preserved.

    Hop-by-hop headers are dropped since the ASGI server owns connection
    framing towards the client.
    """
    return [
        (name.lower(), value)
        for name, value in headers.raw
        if name.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
    ]


async def stream_upstream(response: httpx.Response) -> AsyncIterator[bytes]:
    """Pipe the upstream body through chunk by chunk without decoding it."""
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    finally:
        await response.aclose()


class UpstreamStreamingResponse(StreamingResponse):
    """Streams an upstream response back to the caller.

    The upstream response is closed once sending ends, however it ends: a
    finished body, an upstream failure, or a caller that went away before
    the first chunk.
    """

    def __init__(self, upstream: httpx.Response) -> None:
        super().__init__(stream_upstream(upstream), status_code=upstream.status_code)
        self.upstream = upstream
        self.raw_headers = build_downstream_headers(upstream.headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.upstream.aclose()


@router.api_route(
    "/{path:path}",
    response_model=None,
    include_in_schema=False,
)
async def proxy_request(
    request: Request,
    proxy_router: ProxyRouterDep,
) -> StreamingResponse:
    """Forward the request upstream with a rotating API key.

    Any method is accepted. The body is read once up front so every retried
    attempt sends the same bytes. GET requests never carry a body.
    """
    body = None if request.method == "GET" else await request.body()

    upstream = await proxy_router.handle(
        method=request.method,
        path=extract_raw_path(request),
        query=request.url.query,
        headers=httpx.Headers(request.headers.raw),
        body=body,
        ctx=getattr(request.state, "context", None),
    )

    return UpstreamStreamingResponse(upstream)
