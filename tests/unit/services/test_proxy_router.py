"""Tests for the retry/rotation loop of ProxyRouter.

The upstream is an httpx.MockTransport driven by a scripted recorder, so
every forwarding attempt and the key it carried can be asserted.
"""

import asyncio
from unittest.mock import call, patch

import httpx
import pytest

from anthropic_key_proxy.core.request_context import RequestContext
from anthropic_key_proxy.exceptions import KeysExhaustedError
from anthropic_key_proxy.rotation import CredentialSet, RotationCursor
from anthropic_key_proxy.services.proxy_router import (
    ProxyRouter,
    build_upstream_headers,
)


UPSTREAM_URL = "https://upstream.test"


def make_router(keys: list[str], handler, start: int = 0) -> ProxyRouter:
    cursor = RotationCursor(CredentialSet.from_keys(keys), start=start)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProxyRouter(client=client, cursor=cursor, upstream_url=UPSTREAM_URL)


async def forward(
    router: ProxyRouter,
    method: str = "POST",
    body: bytes | None = b'{"model": "claude"}',
    headers: httpx.Headers | None = None,
    ctx: RequestContext | None = None,
) -> httpx.Response:
    return await router.handle(
        method=method,
        path="/v1/messages",
        query="",
        headers=headers or httpx.Headers({"content-type": "application/json"}),
        body=body,
        ctx=ctx,
    )


@pytest.mark.unit
class TestExhaustion:
    @pytest.mark.parametrize("count", [1, 2, 3, 5])
    @pytest.mark.parametrize("start_offset", [0, 1])
    async def test_always_rate_limited_tries_every_key_once(
        self, upstream, count: int, start_offset: int
    ) -> None:
        """N keys, upstream always 429: N attempts, cursor back at start."""
        start = start_offset % count
        recorder = upstream(429)
        keys = [f"k{i + 1}" for i in range(count)]
        router = make_router(keys, recorder, start=start)

        with pytest.raises(KeysExhaustedError) as exc_info:
            await forward(router)

        assert recorder.call_count == count
        assert sorted(recorder.keys_used) == sorted(keys)
        assert router.cursor.position == start
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "All API keys exhausted"
        assert exc_info.value.attempts == count

    async def test_single_key_always_rate_limited(self, upstream) -> None:
        recorder = upstream(429)
        router = make_router(["k1"], recorder)

        with pytest.raises(KeysExhaustedError):
            await forward(router)

        assert recorder.call_count == 1
        assert router.cursor.position == 0

    async def test_exhaustion_records_attempts_in_context(self, upstream) -> None:
        router = make_router(["k1", "k2"], upstream(429))
        ctx = RequestContext(request_id="req-1")

        with pytest.raises(KeysExhaustedError):
            await forward(router, ctx=ctx)

        assert ctx.metadata["attempts"] == 2


@pytest.mark.unit
class TestPassThrough:
    @pytest.mark.parametrize("status_code", [200, 201, 400, 401, 404, 500, 503])
    async def test_non_rate_limited_status_returned_on_first_attempt(
        self, upstream, status_code: int
    ) -> None:
        response_headers = {"x-upstream": "yes", "content-type": "application/json"}
        recorder = upstream(
            upstream.response(status_code, b"payload", response_headers)
        )
        router = make_router(["k1", "k2", "k3"], recorder)

        response = await forward(router)
        body = await response.aread()
        await response.aclose()

        assert recorder.call_count == 1
        assert response.status_code == status_code
        assert response.headers["x-upstream"] == "yes"
        assert body == b"payload"
        assert router.cursor.position == 0

    async def test_response_body_is_not_read_by_router(self, upstream) -> None:
        router = make_router(["k1"], upstream(200))

        response = await forward(router)

        assert not response.is_stream_consumed
        assert await response.aread() == b"status 200"
        await response.aclose()

    async def test_success_records_attempt_metadata(self, upstream) -> None:
        router = make_router(["k1", "k2", "k3"], upstream(429, 200))
        ctx = RequestContext(request_id="req-1")

        response = await forward(router, ctx=ctx)
        await response.aclose()

        assert ctx.metadata == {"attempts": 2, "key_index": 1}


@pytest.mark.unit
class TestRotation:
    @pytest.mark.parametrize("rate_limited", [1, 2, 3, 4])
    async def test_rate_limited_then_success(self, upstream, rate_limited: int) -> None:
        """K 429s then a non-429: K+1 attempts, cursor advanced by K."""
        recorder = upstream(*([429] * rate_limited), 200)
        keys = ["k1", "k2", "k3", "k4", "k5"]
        router = make_router(keys, recorder)

        response = await forward(router)
        await response.aclose()

        assert response.status_code == 200
        assert recorder.call_count == rate_limited + 1
        assert recorder.keys_used == keys[: rate_limited + 1]
        assert router.cursor.position == rate_limited

    async def test_scenario_two_keys_rate_limited(self, upstream) -> None:
        """k1 and k2 rate limited, k3 succeeds."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.headers["x-api-key"] in ("k1", "k2"):
                return upstream.response(429)
            return upstream.response(200, b"ok")

        router = make_router(["k1", "k2", "k3"], handler)

        with patch("anthropic_key_proxy.rotation.cursor.logger") as mock_logger:
            response = await forward(router)
            await response.aclose()

        assert response.status_code == 200
        assert mock_logger.info.call_args_list == [
            call("api_key_rotated", previous_index=0, new_index=1),
            call("api_key_rotated", previous_index=1, new_index=2),
        ]
        assert router.cursor.position == 2

    async def test_next_request_starts_from_rotated_key(self, upstream) -> None:
        recorder = upstream(429, 200, 200)
        router = make_router(["k1", "k2", "k3"], recorder)

        first = await forward(router)
        await first.aclose()
        second = await forward(router)
        await second.aclose()

        assert recorder.keys_used == ["k1", "k2", "k2"]

    async def test_rate_limited_response_is_closed(self, upstream) -> None:
        rate_limited = upstream.response(429, b"slow down")
        router = make_router(["k1", "k2"], upstream(rate_limited, 200))

        response = await forward(router)
        await response.aclose()

        assert rate_limited.is_closed


@pytest.mark.unit
class TestTransportFailures:
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ConnectTimeout("timed out"),
            httpx.ReadTimeout("timed out"),
            httpx.RemoteProtocolError("bad response"),
        ],
    )
    async def test_transport_error_rotates_like_rate_limit(
        self, upstream, error: Exception
    ) -> None:
        recorder = upstream(error, 200)
        router = make_router(["k1", "k2", "k3"], recorder)

        response = await forward(router)
        await response.aclose()

        assert response.status_code == 200
        assert recorder.keys_used == ["k1", "k2"]
        assert router.cursor.position == 1

    async def test_all_transport_errors_exhaust(self, upstream) -> None:
        recorder = upstream(httpx.ConnectError("down"))
        router = make_router(["k1", "k2", "k3"], recorder)

        with pytest.raises(KeysExhaustedError):
            await forward(router)

        assert recorder.call_count == 3
        assert router.cursor.position == 0

    async def test_mixed_failures_exhaust(self, upstream) -> None:
        recorder = upstream(429, httpx.ConnectError("down"), 429)
        router = make_router(["k1", "k2", "k3"], recorder)

        with pytest.raises(KeysExhaustedError):
            await forward(router)

        assert recorder.keys_used == ["k1", "k2", "k3"]

    async def test_transport_failure_logged_with_key_index(self, upstream) -> None:
        router = make_router(["k1", "k2"], upstream(httpx.ConnectError("refused"), 200))

        with patch("anthropic_key_proxy.services.proxy_router.logger") as mock_logger:
            response = await forward(router)
            await response.aclose()

        mock_logger.warning.assert_called_once_with(
            "upstream_request_failed",
            key_index=0,
            attempt=1,
            error="refused",
        )


@pytest.mark.unit
class TestOutboundRequest:
    async def test_get_never_carries_body(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)

        response = await forward(router, method="GET", body=b"ignored")
        await response.aclose()

        sent = recorder.requests[0]
        assert sent.method == "GET"
        assert sent.content == b""
        assert "content-length" not in sent.headers

    async def test_body_resent_unchanged_on_every_attempt(self, upstream) -> None:
        recorder = upstream(429, 429, 200)
        router = make_router(["k1", "k2", "k3"], recorder)
        payload = b'{"model": "claude", "messages": []}'

        response = await forward(router, body=payload)
        await response.aclose()

        assert [request.content for request in recorder.requests] == [payload] * 3
        assert recorder.requests[-1].headers["content-length"] == str(len(payload))

    async def test_path_and_query_forwarded_unmodified(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)

        response = await router.handle(
            method="GET",
            path="/v1/models/claude%2Fsonnet",
            query="beta=true&limit=20",
            headers=httpx.Headers(),
        )
        await response.aclose()

        sent = recorder.requests[0]
        assert sent.url.host == "upstream.test"
        assert sent.url.raw_path == b"/v1/models/claude%2Fsonnet?beta=true&limit=20"

    async def test_credential_header_overwritten(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)
        inbound = httpx.Headers(
            [
                ("X-Api-Key", "caller-key"),
                ("anthropic-version", "2023-06-01"),
                ("anthropic-beta", "a"),
                ("anthropic-beta", "b"),
            ]
        )

        response = await forward(router, headers=inbound)
        await response.aclose()

        sent = recorder.requests[0]
        assert sent.headers.get_list("x-api-key") == ["k1"]
        assert sent.headers["anthropic-version"] == "2023-06-01"
        assert sent.headers.get_list("anthropic-beta") == ["a", "b"]

    async def test_host_and_hop_by_hop_headers_not_forwarded(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)
        inbound = httpx.Headers(
            {
                "host": "localhost:8080",
                "connection": "upgrade",
                "upgrade": "h2c",
                "keep-alive": "timeout=5",
                "content-length": "999",
            }
        )

        response = await forward(router, headers=inbound, body=b"abc")
        await response.aclose()

        sent = recorder.requests[0]
        assert sent.headers["host"] == "upstream.test"
        assert "upgrade" not in sent.headers
        assert "keep-alive" not in sent.headers
        assert sent.headers["content-length"] == "3"

    async def test_client_default_headers_not_injected(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)

        response = await forward(router, headers=httpx.Headers())
        await response.aclose()

        sent = recorder.requests[0]
        assert "accept-encoding" not in sent.headers
        assert "user-agent" not in sent.headers

    async def test_caller_accept_encoding_kept(self, upstream) -> None:
        recorder = upstream(200)
        router = make_router(["k1"], recorder)

        response = await forward(
            router, headers=httpx.Headers({"accept-encoding": "identity"})
        )
        await response.aclose()

        assert recorder.requests[0].headers["accept-encoding"] == "identity"

    async def test_custom_credential_header(self, upstream) -> None:
        recorder = upstream(200)
        cursor = RotationCursor(CredentialSet.from_keys(["k1"]))
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        router = ProxyRouter(
            client=client,
            cursor=cursor,
            upstream_url=UPSTREAM_URL + "/",
            api_key_header="Authorization",
        )

        response = await forward(router)
        await response.aclose()

        sent = recorder.requests[0]
        assert sent.headers["authorization"] == "k1"
        assert str(sent.url) == "https://upstream.test/v1/messages"


@pytest.mark.unit
def test_build_upstream_headers_is_case_insensitive() -> None:
    headers = build_upstream_headers(
        httpx.Headers([("X-API-KEY", "old"), ("Accept", "application/json")]),
        "x-api-key",
        "new",
    )

    assert headers.get_list("x-api-key") == ["new"]
    assert headers["accept"] == "application/json"


@pytest.mark.unit
async def test_concurrent_requests_keep_cursor_in_range(upstream) -> None:
    """Interleaved rotations from many requests never leave [0, N)."""

    async def slow_rate_limit(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        return upstream.response(429)

    router = make_router(["k1", "k2", "k3"], slow_rate_limit)
    positions: list[int] = []

    async def one_request() -> None:
        with pytest.raises(KeysExhaustedError):
            await forward(router)
        positions.append(router.cursor.position)

    await asyncio.gather(*(one_request() for _ in range(20)))

    assert all(0 <= position < 3 for position in positions)
    # 20 requests x 3 rotations each
    assert router.cursor.position == (20 * 3) % 3
