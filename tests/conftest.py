"""Shared fixtures for the key rotation proxy tests."""

from pathlib import Path

import httpx
import pytest

from anthropic_key_proxy.config.settings import Settings


UPSTREAM_URL = "https://upstream.test"

SETTINGS_ENV_VARS = (
    "API_KEYS",
    "PORT",
    "HOST",
    "UPSTREAM_URL",
    "API_KEY_HEADER",
    "REQUEST_TIMEOUT",
    "CONNECT_TIMEOUT",
    "MAX_CONNECTIONS",
    "MAX_KEEPALIVE_CONNECTIONS",
    "KEEPALIVE_EXPIRY",
    "LOG_LEVEL",
    "JSON_LOGS",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment and .env file out of settings."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class UpstreamRecorder:
    """Scripted upstream for httpx.MockTransport that records every request.

    Each scripted outcome is an int status code, an httpx.Response, or an
    exception instance raised as a transport failure. The last outcome
    repeats once the script runs out.
    """

    def __init__(self, *outcomes: int | httpx.Response | Exception):
        self.outcomes = list(outcomes) or [200]
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def keys_used(self) -> list[str]:
        return [request.headers.get("x-api-key", "") for request in self.requests]

    @staticmethod
    def response(
        status_code: int,
        content: bytes = b"",
        headers: list[tuple[str, str]] | dict[str, str] | None = None,
    ) -> httpx.Response:
        """Unread streaming response, like a real transport returns."""
        return httpx.Response(
            status_code, headers=headers, stream=httpx.ByteStream(content)
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return self.response(outcome, f"status {outcome}".encode())


@pytest.fixture
def keys() -> list[str]:
    return ["k1", "k2", "k3"]


@pytest.fixture
def settings(keys: list[str]) -> Settings:
    return Settings(api_keys=keys, upstream_url=UPSTREAM_URL)


@pytest.fixture
def upstream() -> type[UpstreamRecorder]:
    """The scripted upstream class, so tests can build their own scripts."""
    return UpstreamRecorder
