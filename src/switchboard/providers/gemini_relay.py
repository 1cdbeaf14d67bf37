"""Gemini relay translator.

Talks the OpenAI chat-completions protocol to a relay that fronts Gemini
(and GPT-5) models, while keeping Gemini-native tool directives such as
``googleSearch`` intact. Request and response handling is composed from the
OpenAI-compatible helpers; only the relay-specific differences live here.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import TYPE_CHECKING, Any
import uuid

from switchboard.config import ModelFamilies
from switchboard.content import (
    CountTokensRequest,
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    FunctionCallPart,
    GenerateRequest,
    GenerateResponse,
    GenerationConfig,
    normalize_contents,
)
from switchboard.errors import UnsupportedOperationError
from switchboard.providers._streaming import decode_stream
from switchboard.providers._transport import ProviderHTTP
from switchboard.providers._utils import approximate_count, parse_arguments
from switchboard.providers.base import ProviderCapabilities
from switchboard.providers.openai import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    ChatStreamDecoder,
    build_chat_messages,
    first_choice,
    parse_chat_completion,
    to_function_tool,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from switchboard.config import Config

log = logging.getLogger(__name__)

#: Directive keys forwarded verbatim instead of being converted to functions.
PRESERVED_DIRECTIVES = ("googleSearch", "codeExecution", "urlContext")


class GeminiRelayGenerator:
    """OpenAI-protocol translator for a Gemini relay endpoint."""

    provider_name = "gemini-relay"

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        custom_headers: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
        model_families: ModelFamilies | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind to one relay endpoint and default model."""
        self.model = model
        self.model_families = model_families or ModelFamilies()
        self._http = ProviderHTTP(
            provider=self.provider_name,
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
                **(custom_headers or {}),
            },
            timeout_s=timeout_s,
            client=client,
        )

    @classmethod
    def from_config(
        cls, config: Config, *, client: httpx.AsyncClient | None = None
    ) -> GeminiRelayGenerator:
        """Build from a resolved Config."""
        return cls(
            model=config.model,
            api_key=config.api_key or "",
            base_url=config.base_url or "",
            custom_headers=config.custom_headers,
            timeout_s=config.timeout_s,
            model_families=config.model_families,
            client=client,
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(
            streaming=True, embeddings=False, tool_directives=True
        )

    def build_payload(self, request: GenerateRequest) -> dict[str, Any]:
        """Translate a canonical request into a relay chat-completions body."""
        requested = request.model or self.model
        families = self.model_families
        config = request.config

        payload: dict[str, Any] = {
            "model": families.relay_model_name(requested),
            "messages": build_chat_messages(
                normalize_contents(request.contents), config
            ),
            "stream": False,
        }
        max_tokens = config.max_output_tokens or DEFAULT_MAX_TOKENS
        if families.relay_omits_temperature(requested):
            payload["max_completion_tokens"] = max_tokens
        else:
            payload["temperature"] = (
                config.temperature
                if config.temperature is not None
                else DEFAULT_TEMPERATURE
            )
            payload["top_p"] = (
                config.top_p if config.top_p is not None else DEFAULT_TOP_P
            )
            payload["max_tokens"] = max_tokens

        tools = relay_tools(config)
        if tools:
            payload["tools"] = tools

        log.debug(
            "Gemini relay request: model=%s messages=%d tools=%d",
            payload["model"],
            len(payload["messages"]),
            len(tools),
        )
        return payload

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run one relay round trip."""
        data = await self._http.post_json(
            "/chat/completions",
            self.build_payload(request),
            phase="generate",
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        response = parse_chat_completion(data, provider=self.provider_name)
        message = first_choice(data, provider=self.provider_name).get("message")
        if isinstance(message, Mapping):
            response.function_calls.extend(single_function_call(message))
        return response

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[GenerateResponse]:
        """Stream partial responses from the relay."""
        payload = {**self.build_payload(request), "stream": True}
        lines = self._http.stream_lines(
            "/chat/completions",
            payload,
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        decoder = ChatStreamDecoder(extra_calls=single_function_call)
        async for response in decode_stream(lines, decoder):
            yield response

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Approximate the token count locally."""
        return approximate_count(request)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        """Always fails: the relay exposes no embeddings."""
        raise UnsupportedOperationError(
            "Embeddings are not supported via the Gemini relay",
            hint="Use a plain openai-compatible model for embed_content.",
        )

    async def aclose(self) -> None:
        """Close underlying HTTP resources."""
        await self._http.aclose()


def relay_tools(config: GenerationConfig) -> list[dict[str, Any]]:
    """Render tools, passing Gemini directives through untouched."""
    tools: list[dict[str, Any]] = []
    for tool in config.tools:
        if tool.directive is not None:
            key = next((k for k in PRESERVED_DIRECTIVES if k in tool.directive), None)
            if key is None:
                log.debug("Dropping unknown tool directive: %s", list(tool.directive))
                continue
            tools.append({key: tool.directive[key]})
            continue
        for decl in tool.function_declarations:
            schema = (
                decl.parameters_json_schema
                if decl.parameters_json_schema is not None
                else decl.parameters
            )
            tools.append(to_function_tool(decl, schema))
    return tools


def single_function_call(message: Mapping[str, Any]) -> list[FunctionCallPart]:
    """Parse the non-standard single ``function_call`` field, if present."""
    raw = message.get("function_call")
    if not isinstance(raw, Mapping) or not raw.get("name"):
        return []
    name = str(raw["name"])
    return [
        FunctionCallPart(
            id=f"gemini_{uuid.uuid4().hex}",
            name=name,
            args=parse_arguments(raw.get("arguments"), name=name),
        )
    ]
