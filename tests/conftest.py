"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and HTTP test doubles.
Fixtures here are autouse unless noted.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import suppress
import json
import logging
import os
from typing import Any

import httpx
import pytest

OPENAI_MODEL = "gpt-4-turbo"
ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"
RELAY_MODEL = "gemini-2.5-pro"

# =============================================================================
# Test Doubles
# =============================================================================


class HTTPRecorder:
    """Captures outgoing requests and answers them from a callable.

    Use ``client(respond)`` to obtain an ``httpx.AsyncClient`` backed by
    ``httpx.MockTransport``; no network access ever happens.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def client(
        self, respond: Callable[[httpx.Request], httpx.Response]
    ) -> httpx.AsyncClient:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return respond(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    def json_client(self, body: Any, status_code: int = 200) -> httpx.AsyncClient:
        return self.client(lambda _req: httpx.Response(status_code, json=body))

    def sse_client(self, lines: Iterable[str], *, chunk_size: int | None = None):
        payload = "".join(f"{line}\n" for line in lines).encode("utf-8")
        return self.client(
            lambda _req: httpx.Response(200, content=_chunked(payload, chunk_size))
        )

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def last_json(self) -> Any:
        return json.loads(self.last_request.content)


async def _chunked(payload: bytes, size: int | None) -> AsyncIterator[bytes]:
    step = size or len(payload) or 1
    for start in range(0, len(payload), step):
        yield payload[start : start + step]


@pytest.fixture
def http() -> HTTPRecorder:
    """Recording HTTP double (not autouse)."""
    return HTTPRecorder()


def sse_event(data: Any) -> str:
    """Render one ``data:`` line."""
    return f"data: {data if isinstance(data, str) else json.dumps(data)}"


@pytest.fixture
def sse() -> Callable[[Any], str]:
    """Return the ``data:`` line renderer."""
    return sse_event


@pytest.fixture
def openai_model() -> str:
    return OPENAI_MODEL


@pytest.fixture
def anthropic_model() -> str:
    return ANTHROPIC_MODEL


@pytest.fixture
def relay_model() -> str:
    return RELAY_MODEL


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears provider key, endpoint and debug variables to prevent test
    pollution. Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.startswith(
            ("OPENAI_", "ANTHROPIC_", "LOCAL_LLM_", "CUSTOM_", "SWITCHBOARD_")
        ):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def pytest_configure(config):
    config.addinivalue_line("markers", "allow_dotenv: let python-dotenv read .env")
    config.addinivalue_line(
        "markers", "allow_env_pollution: keep provider environment variables"
    )
