"""Exception hierarchy for Switchboard."""

from __future__ import annotations

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(SwitchboardError):
    """Configuration validation or resolution failed."""


class HookInputError(SwitchboardError):
    """A hook payload is missing a mandatory field."""


class UnsupportedOperationError(SwitchboardError):
    """The provider does not offer the requested capability."""


class APIError(SwitchboardError):
    """Provider call failed.

    ``retryable`` is informational only: translators never retry on their own,
    the host decides what to do with a transport failure.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        phase: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.provider = provider
        self.phase = phase
        self.body = body


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class GenerationCancelledError(APIError):
    """The caller cancelled the request or its timeout elapsed."""
