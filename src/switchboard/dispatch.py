"""Pick the translator for a Config."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from switchboard.config import AuthType
from switchboard.errors import ConfigurationError

if TYPE_CHECKING:
    import httpx

    from switchboard.config import Config
    from switchboard.providers.base import ContentGenerator

log = logging.getLogger(__name__)


def _is_relay_model(config: Config) -> bool:
    name = config.model.lower()
    return "gemini" in name or any(
        name.startswith(p.lower())
        for p in config.model_families.relay_unprefixed_prefixes
    )


def create_content_generator(
    config: Config, *, client: httpx.AsyncClient | None = None
) -> ContentGenerator:
    """Return the translator that serves *config*.

    ``client`` is shared with the translator as-is (it is not closed by
    ``aclose``), which is how tests inject an ``httpx.MockTransport``.
    """
    if config.use_mock:
        from switchboard.providers.mock import MockGenerator

        return MockGenerator(model=config.model)

    if config.auth_type is AuthType.ANTHROPIC:
        from switchboard.providers.anthropic import AnthropicGenerator

        return AnthropicGenerator.from_config(config, client=client)

    if config.auth_type is AuthType.OPENAI_COMPATIBLE and _is_relay_model(config):
        from switchboard.providers.gemini_relay import GeminiRelayGenerator

        log.debug("Routing model %s through the Gemini relay", config.model)
        return GeminiRelayGenerator.from_config(config, client=client)

    if config.auth_type in (AuthType.OPENAI_COMPATIBLE, AuthType.LOCAL_LLM):
        from switchboard.providers.openai import OpenAICompatibleGenerator

        return OpenAICompatibleGenerator.from_config(config, client=client)

    raise ConfigurationError(
        f"Unsupported auth type: {config.auth_type!r}",
        hint="Use one of: openai-compatible, anthropic, local-llm.",
    )
