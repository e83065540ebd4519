"""Proxy router forwarding requests upstream with API key rotation.

Every inbound request is tried once per configured key at most. A key that
hits a rate limit (429) or a transport failure rotates the shared cursor and
the request is re-sent with the next key. The first other response is handed
back still streaming; if no attempt produces one the request is exhausted.
"""

import httpx
import structlog
from starlette import status

from anthropic_key_proxy.core.request_context import RequestContext
from anthropic_key_proxy.exceptions import KeysExhaustedError
from anthropic_key_proxy.rotation.cursor import RotationCursor


logger = structlog.get_logger(__name__)


# Connection-level headers that are never forwarded (RFC 9110 section 7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Recomputed by the HTTP client for the outbound request
EXCLUDED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

# Defaults httpx adds to every request unless the caller sent them
CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "user-agent")


def build_upstream_headers(
    headers: httpx.Headers, api_key_header: str, api_key: str
) -> httpx.Headers:
    """Copy inbound headers for forwarding and set the API key header.

    Args:
        headers: Inbound request headers
        api_key_header: Name of the credential header (case-insensitive)
        api_key: Key to inject for this attempt

    Returns:
        Headers for the outbound request
    """
    forwarded = httpx.Headers(
        [
            (name, value)
            for name, value in headers.multi_items()
            if name.lower() not in EXCLUDED_REQUEST_HEADERS
        ]
    )
    forwarded[api_key_header] = api_key
    return forwarded


class ProxyRouter:
    """Routes requests to the upstream host, rotating keys on failure.

    The router owns no per-request state; the rotation cursor it holds is
    shared by all concurrent requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cursor: RotationCursor,
        upstream_url: str,
        api_key_header: str = "x-api-key",
    ) -> None:
        """Initialize the router.

        Args:
            client: Shared HTTP client for upstream requests
            cursor: Shared rotation cursor over the configured keys
            upstream_url: Base URL of the upstream API
            api_key_header: Header that carries the API key upstream
        """
        self.client = client
        self.cursor = cursor
        self.upstream_url = upstream_url.rstrip("/")
        self.api_key_header = api_key_header

    @property
    def key_count(self) -> int:
        return len(self.cursor.credentials)

    def build_url(self, path: str, query: str = "") -> str:
        """Upstream URL for an inbound path and raw query string."""
        url = f"{self.upstream_url}{path}"
        if query:
            url = f"{url}?{query}"
        return url

    def build_request(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: bytes | None,
        api_key: str,
    ) -> httpx.Request:
        """Build the outbound request for one attempt."""
        outbound_headers = build_upstream_headers(headers, self.api_key_header, api_key)
        request = self.client.build_request(
            method,
            url,
            headers=outbound_headers,
            content=body if method.upper() != "GET" else None,
        )
        for name in CLIENT_DEFAULT_HEADERS:
            if name not in outbound_headers and name in request.headers:
                del request.headers[name]
        return request

    async def handle(
        self,
        method: str,
        path: str,
        query: str,
        headers: httpx.Headers,
        body: bytes | None = None,
        ctx: RequestContext | None = None,
    ) -> httpx.Response:
        """Forward a request, rotating keys until a usable response arrives.

        Args:
            method: HTTP method
            path: Raw request path, forwarded unmodified
            query: Raw query string, forwarded unmodified
            headers: Inbound request headers
            body: Buffered request body; ignored for GET
            ctx: Optional request context receiving attempt metadata

        Returns:
            Upstream response with headers read and body still streaming.
            The caller must close it.

        Raises:
            KeysExhaustedError: If every attempt was rate limited or failed
        """
        url = self.build_url(path, query)
        attempts = 0

        for _ in range(self.key_count):
            key_index, api_key = self.cursor.current()
            attempts += 1
            request = self.build_request(method, url, headers, body, api_key)

            try:
                response = await self.client.send(request, stream=True)
            except httpx.TransportError as e:
                logger.warning(
                    "upstream_request_failed",
                    key_index=key_index,
                    attempt=attempts,
                    error=str(e) or type(e).__name__,
                )
                self.cursor.rotate()
                continue

            if response.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
                await response.aclose()
                logger.info(
                    "upstream_rate_limited",
                    key_index=key_index,
                    attempt=attempts,
                )
                self.cursor.rotate()
                continue

            logger.debug(
                "upstream_response_received",
                key_index=key_index,
                attempt=attempts,
                status_code=response.status_code,
            )
            if ctx is not None:
                ctx.add_metadata(attempts=attempts, key_index=key_index)
            return response

        if ctx is not None:
            ctx.add_metadata(attempts=attempts)
        logger.error("api_keys_exhausted", attempts=attempts, method=method, path=path)
        raise KeysExhaustedError(attempts)
