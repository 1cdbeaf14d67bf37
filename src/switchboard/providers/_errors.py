"""Shared provider-side error helpers.

Translators surface every transport failure as ``APIError`` carrying the
status code and the response body, so hosts can show a useful message
without knowing which provider produced it.
"""

from __future__ import annotations

import asyncio
import json

import httpx

from switchboard.errors import (
    RETRYABLE_STATUS_CODES,
    APIError,
    GenerationCancelledError,
    RateLimitError,
)

_AUTH_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini-relay": "OPENAI_API_KEY",
}


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    if status_code in {401, 403}:
        env_var = _AUTH_ENV_VARS.get(provider, "API key")
        return (
            f"Check credentials/permissions (try setting {env_var} or Config.api_key)."
        )
    return None


def _error_details(response: httpx.Response) -> str:
    """Return the body as compact JSON when it parses, raw text otherwise."""
    try:
        return json.dumps(response.json(), separators=(",", ":"))
    except ValueError:
        return response.text


async def raise_for_status(
    response: httpx.Response, *, provider: str, phase: str
) -> None:
    """Raise APIError for any non-2xx response, with the body inlined."""
    if response.is_success:
        return
    await response.aread()
    details = _error_details(response)
    status = response.status_code
    err_cls: type[APIError] = RateLimitError if status == 429 else APIError
    raise err_cls(
        f"{provider} {phase} failed: HTTP {status}: {response.reason_phrase}. "
        f"Details: {details}",
        hint=_auth_hint(provider, status),
        retryable=status in RETRYABLE_STATUS_CODES,
        status_code=status,
        provider=provider,
        phase=phase,
        body=details,
    )


def wrap_transport_error(
    exc: BaseException, *, provider: str, phase: str
) -> APIError:
    """Map httpx transport exceptions into APIError."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    if isinstance(exc, httpx.TimeoutException):
        return GenerationCancelledError(
            f"{provider} {phase} timed out: {exc}",
            hint="Raise Config.timeout_s or the request's timeout_s.",
            retryable=True,
            provider=provider,
            phase=phase,
        )

    cause = str(exc) or type(exc).__name__
    return APIError(
        f"{provider} {phase} failed: {cause}",
        retryable=isinstance(exc, httpx.TransportError),
        provider=provider,
        phase=phase,
    )
