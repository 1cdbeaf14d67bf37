"""Configuration: frozen Config describing which translator to build and how."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import os
from typing import Any

from dotenv import load_dotenv

from switchboard._dev_flags import debug_enabled
from switchboard.errors import ConfigurationError

load_dotenv()


class AuthType(str, Enum):
    """How the host authenticates, which also selects the wire protocol."""

    OPENAI_COMPATIBLE = "openai-compatible"
    ANTHROPIC = "anthropic"
    LOCAL_LLM = "local-llm"


_API_KEY_ENV_VARS: dict[AuthType, str] = {
    AuthType.OPENAI_COMPATIBLE: "OPENAI_API_KEY",
    AuthType.ANTHROPIC: "ANTHROPIC_API_KEY",
    AuthType.LOCAL_LLM: "LOCAL_LLM_API_KEY",
}

_DEFAULT_BASE_URLS: dict[AuthType, str] = {
    AuthType.OPENAI_COMPATIBLE: "https://api.openai.com/v1",
    AuthType.ANTHROPIC: "https://api.anthropic.com",
    AuthType.LOCAL_LLM: "http://localhost:8000/v1",
}

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"
_LOCAL_LLM_PLACEHOLDER_KEY = "dummy-key"


@dataclass(frozen=True)
class ModelFamilies:
    """Model-name allow-lists that steer per-model request quirks.

    These track specific provider releases and go stale; swap them out via
    ``Config(model_families=ModelFamilies(...))`` instead of patching the
    translators. Entries are matched case-insensitively as substrings
    (``*_models``) or prefixes (``*_prefixes``).
    """

    #: Models that reject ``max_tokens`` and require ``max_completion_tokens``.
    max_completion_tokens_models: tuple[str, ...] = (
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4o-2024-05-13",
        "gpt-4o-2024-08-06",
        "gpt-4o-mini-2024-07-18",
        "o1-preview",
        "o1-mini",
        "chatgpt-4o-latest",
        "o3",
        "o3-mini",
        "o3-mini-2025-06-12",
    )
    #: Thinking models that only accept ``temperature=1``.
    fixed_temperature_models: tuple[str, ...] = (
        "o3",
        "o3-mini",
        "o3-mini-2025-06-12",
        "o1-preview",
        "o1-mini",
    )
    #: Routing prefix the Gemini relay adds to model names.
    relay_routing_prefix: str = "gemini/"
    #: Relay models sent without the routing prefix.
    relay_unprefixed_prefixes: tuple[str, ...] = ("gpt-5",)
    #: Relay models that reject explicit temperature and use ``max_completion_tokens``.
    relay_no_temperature_prefixes: tuple[str, ...] = ("gpt-5",)

    def uses_max_completion_tokens(self, model: str) -> bool:
        """Whether *model* takes ``max_completion_tokens``."""
        name = model.lower()
        return any(m.lower() in name for m in self.max_completion_tokens_models)

    def has_fixed_temperature(self, model: str) -> bool:
        """Whether *model* only runs at temperature 1."""
        name = model.lower()
        return any(m.lower() in name for m in self.fixed_temperature_models)

    def relay_model_name(self, model: str) -> str:
        """Return *model* with the relay routing prefix applied when needed."""
        name = model.lower()
        if name.startswith(self.relay_routing_prefix.lower()):
            return model
        if any(name.startswith(p.lower()) for p in self.relay_unprefixed_prefixes):
            return model
        return f"{self.relay_routing_prefix}{model}"

    def relay_omits_temperature(self, model: str) -> bool:
        """Whether the relay must leave temperature to the provider default."""
        name = model.lower()
        return any(name.startswith(p.lower()) for p in self.relay_no_temperature_prefixes)


@dataclass(frozen=True)
class Config:
    """Immutable configuration for one content generator.

    The API key is auto-resolved from the auth type's standard environment
    variable when omitted.

    Example:
        config = Config(auth_type="anthropic", model="claude-3-5-sonnet-20241022")
        # API key is resolved from ANTHROPIC_API_KEY
    """

    auth_type: AuthType
    model: str
    api_key: str | None = None
    #: Defaults to the provider's public endpoint for the auth type.
    base_url: str | None = None
    custom_headers: Mapping[str, str] = field(default_factory=dict)
    #: Per-request network timeout; ``None`` waits indefinitely.
    timeout_s: float | None = None
    model_families: ModelFamilies = field(default_factory=ModelFamilies)
    use_mock: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        """Normalize fields, resolve the API key and validate."""
        try:
            auth_type = AuthType(self.auth_type)
        except ValueError:
            supported = ", ".join(repr(a.value) for a in AuthType)
            raise ConfigurationError(
                f"Unknown auth type: {self.auth_type!r}",
                hint=f"Supported auth types: {supported}",
            ) from None
        object.__setattr__(self, "auth_type", auth_type)

        model = (self.model or "").strip()
        if not model:
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass model='gpt-4o' or set SWITCHBOARD_MODEL.",
            )
        # Gemini model names mean nothing to the Messages API.
        if auth_type is AuthType.ANTHROPIC and "gemini" in model:
            model = DEFAULT_ANTHROPIC_MODEL
        object.__setattr__(self, "model", model)

        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="Omit timeout_s to wait indefinitely.",
            )

        base_url = (self.base_url or _DEFAULT_BASE_URLS[auth_type]).rstrip("/")
        object.__setattr__(self, "base_url", base_url)
        object.__setattr__(self, "custom_headers", dict(self.custom_headers))

        if self.api_key is None and not self.use_mock:
            env_var = _API_KEY_ENV_VARS[auth_type]
            resolved_key = os.environ.get(env_var)
            if not resolved_key and auth_type is AuthType.LOCAL_LLM:
                resolved_key = _LOCAL_LLM_PLACEHOLDER_KEY
            object.__setattr__(self, "api_key", resolved_key)

        if not self.use_mock and not self.api_key:
            env_var = _API_KEY_ENV_VARS[auth_type]
            raise ConfigurationError(
                f"API key required for {auth_type.value}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

    @classmethod
    def from_env(
        cls,
        auth_type: AuthType | str,
        model: str | None = None,
        **overrides: Any,
    ) -> Config:
        """Build a Config from ``CUSTOM_*`` and ``SWITCHBOARD_*`` variables.

        ``CUSTOM_BASE_URL`` overrides the endpoint and ``CUSTOM_TIMEOUT`` sets
        the request timeout in milliseconds. Explicit *overrides* win.
        """
        kwargs: dict[str, Any] = {}
        base_url = os.environ.get("CUSTOM_BASE_URL")
        if base_url:
            kwargs["base_url"] = base_url
        raw_timeout = os.environ.get("CUSTOM_TIMEOUT")
        if raw_timeout:
            try:
                kwargs["timeout_s"] = int(raw_timeout) / 1000
            except ValueError:
                raise ConfigurationError(
                    f"CUSTOM_TIMEOUT must be an integer, got {raw_timeout!r}",
                    hint="CUSTOM_TIMEOUT is expressed in milliseconds.",
                ) from None
        kwargs["debug"] = debug_enabled()
        kwargs.update(overrides)

        try:
            resolved_auth = AuthType(auth_type)
        except ValueError:
            resolved_auth = None
        default_model = (
            DEFAULT_ANTHROPIC_MODEL
            if resolved_auth is AuthType.ANTHROPIC
            else DEFAULT_OPENAI_MODEL
        )
        resolved_model = model or os.environ.get("SWITCHBOARD_MODEL") or default_model
        return cls(auth_type=auth_type, model=resolved_model, **kwargs)  # type: ignore[arg-type]

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(auth_type={self.auth_type.value!r}, model={self.model!r}, "
            f"base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, use_mock={self.use_mock})"
        )

    __repr__ = __str__
