"""HTTP plumbing shared by the translators.

``ProviderHTTP`` owns one lazily created ``httpx.AsyncClient`` per
translator, applies timeouts, and races every network await against the
caller's cancellation event so an aborted request stops waiting promptly.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing, suppress
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from switchboard.errors import APIError, GenerationCancelledError
from switchboard.providers._errors import raise_for_status, wrap_transport_error
from switchboard.providers._streaming import iter_sse_lines

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Mapping

log = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderHTTP:
    """JSON-over-HTTP client bound to one provider endpoint."""

    def __init__(
        self,
        *,
        provider: str,
        base_url: str,
        headers: Mapping[str, str],
        timeout_s: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind to *base_url*; *client* is used as-is when given."""
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers)
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily initialize and return the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s))
        return self._client

    def _build_request(
        self, path: str, payload: Any, timeout_s: float | None
    ) -> httpx.Request:
        effective = timeout_s if timeout_s is not None else self.timeout_s
        return self._get_client().build_request(
            "POST",
            f"{self.base_url}{path}",
            json=payload,
            headers=self.headers,
            timeout=httpx.Timeout(effective),
        )

    async def _guarded(
        self,
        awaitable: Awaitable[T],
        cancel_event: asyncio.Event | None,
        phase: str,
    ) -> T:
        """Await *awaitable* unless *cancel_event* fires first."""
        if cancel_event is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        if cancel_event.is_set():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            raise self._cancelled(phase)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        if task.cancelled():
            raise self._cancelled(phase)
        return task.result()

    def _cancelled(self, phase: str) -> GenerationCancelledError:
        return GenerationCancelledError(
            f"{self.provider} {phase} cancelled by caller",
            retryable=False,
            provider=self.provider,
            phase=phase,
        )

    async def post_json(
        self,
        path: str,
        payload: Any,
        *,
        phase: str,
        cancel_event: asyncio.Event | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        """POST *payload* and return the decoded JSON body."""
        client = self._get_client()
        request = self._build_request(path, payload, timeout_s)
        try:
            response = await self._guarded(client.send(request), cancel_event, phase)
            await raise_for_status(response, provider=self.provider, phase=phase)
            return response.json()
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except ValueError as e:
            raise APIError(
                f"{self.provider} {phase} returned a non-JSON body",
                provider=self.provider,
                phase=phase,
            ) from e
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.provider, phase=phase) from e

    async def stream_lines(
        self,
        path: str,
        payload: Any,
        *,
        phase: str = "stream",
        cancel_event: asyncio.Event | None = None,
        timeout_s: float | None = None,
    ) -> AsyncIterator[str]:
        """POST *payload* and yield the response body line by line.

        The response is closed when the consumer stops iterating, whether it
        drained the stream or not.
        """
        client = self._get_client()
        request = self._build_request(path, payload, timeout_s)
        try:
            response = await self._guarded(
                client.send(request, stream=True), cancel_event, phase
            )
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.provider, phase=phase) from e

        try:
            await raise_for_status(response, provider=self.provider, phase=phase)
            async with aclosing(
                self._read_chunks(response, cancel_event, phase)
            ) as chunks, aclosing(iter_sse_lines(chunks)) as lines:
                async for line in lines:
                    yield line
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.provider, phase=phase) from e
        finally:
            await response.aclose()

    async def _read_chunks(
        self,
        response: httpx.Response,
        cancel_event: asyncio.Event | None,
        phase: str,
    ) -> AsyncIterator[bytes]:
        async with aclosing(response.aiter_bytes()) as chunks:
            while True:
                more, chunk = await self._guarded(_next_chunk(chunks), cancel_event, phase)
                if not more:
                    return
                yield chunk

    async def aclose(self) -> None:
        """Close the client when this instance created it."""
        client = self._client
        if client is None or not self._owns_client:
            return
        self._client = None
        await client.aclose()


async def _next_chunk(chunks: AsyncIterator[bytes]) -> tuple[bool, bytes]:
    try:
        return True, await chunks.__anext__()
    except StopAsyncIteration:
        return False, b""
