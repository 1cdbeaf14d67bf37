"""OpenAI-compatible chat-completions translator.

Speaks the ``/chat/completions`` and ``/embeddings`` wire protocol, so it
works against OpenAI itself and against any server that mimics it (local
LLM runtimes, proxies).
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from switchboard.config import ModelFamilies
from switchboard.content import (
    Content,
    ContentEmbedding,
    CountTokensRequest,
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    FinishReason,
    FunctionCallPart,
    GenerateRequest,
    GenerateResponse,
    GenerationConfig,
    TextPart,
    ToolDeclaration,
    UsageMetadata,
    extract_text,
    normalize_contents,
    part_to_dict,
)
from switchboard.errors import APIError
from switchboard.providers._streaming import (
    DONE_SENTINEL,
    ToolCallAccumulator,
    decode_stream,
    sse_data,
    text_chunk_response,
    tool_calls_response,
)
from switchboard.providers._transport import ProviderHTTP
from switchboard.providers._utils import (
    approximate_count,
    json_mode_instruction,
    parse_arguments,
    sanitize_parameters,
)
from switchboard.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    import httpx

    from switchboard.config import Config

log = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1
DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
_THINKING_MODEL_TEMPERATURE = 1


class OpenAICompatibleGenerator:
    """Translator for OpenAI chat-completions endpoints."""

    provider_name = "openai"

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
        """Bind to one endpoint and default model."""
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
    ) -> OpenAICompatibleGenerator:
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
        return ProviderCapabilities(streaming=True, embeddings=True)

    def build_payload(self, request: GenerateRequest) -> dict[str, Any]:
        """Translate a canonical request into a chat-completions body."""
        model = request.model or self.model
        config = request.config
        families = self.model_families
        messages = build_chat_messages(normalize_contents(request.contents), config)

        token_param = (
            "max_completion_tokens"
            if families.uses_max_completion_tokens(model)
            else "max_tokens"
        )
        if families.has_fixed_temperature(model):
            temperature: float = _THINKING_MODEL_TEMPERATURE
        elif config.temperature is not None:
            temperature = config.temperature
        else:
            temperature = DEFAULT_TEMPERATURE

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            token_param: config.max_output_tokens or DEFAULT_MAX_TOKENS,
            "top_p": config.top_p if config.top_p is not None else DEFAULT_TOP_P,
            "stream": False,
        }

        tools = [to_function_tool(decl) for decl in config.function_declarations()]
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        log.debug(
            "OpenAI-compatible request: model=%s messages=%d tools=%d",
            model,
            len(messages),
            len(tools),
        )
        return payload

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run one chat-completions round trip."""
        data = await self._http.post_json(
            "/chat/completions",
            self.build_payload(request),
            phase="generate",
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        return parse_chat_completion(data, provider=self.provider_name)

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[GenerateResponse]:
        """Stream partial responses; tool calls arrive once, fully assembled."""
        payload = {**self.build_payload(request), "stream": True}
        lines = self._http.stream_lines(
            "/chat/completions",
            payload,
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        async for response in decode_stream(lines, ChatStreamDecoder()):
            yield response

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Approximate the token count locally; no endpoint is called."""
        return approximate_count(request)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        """Embed the request text through ``/embeddings``."""
        text = extract_text(normalize_contents(request.contents))
        data = await self._http.post_json(
            "/embeddings",
            {"input": text, "model": request.model or DEFAULT_EMBEDDING_MODEL},
            phase="embed",
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        try:
            vector = data["data"][0]["embedding"]
            values = [float(v) for v in vector]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise APIError(
                "Embedding response is missing data[0].embedding",
                provider=self.provider_name,
                phase="embed",
            ) from e
        return EmbedContentResponse(embeddings=[ContentEmbedding(values=values)])

    async def aclose(self) -> None:
        """Close underlying HTTP resources."""
        await self._http.aclose()


# --- Request helpers (shared with the Gemini relay) ---


def _flatten_parts(content: Content) -> str:
    return "\n".join(
        part.text if isinstance(part, TextPart) else json.dumps(part_to_dict(part))
        for part in content.parts
    )


def build_chat_messages(
    contents: list[Content], config: GenerationConfig
) -> list[dict[str, str]]:
    """Flatten canonical turns into chat messages, dropping empty ones.

    Non-text parts are serialised as JSON text. In forced-JSON mode a system
    message carrying the schema instruction goes first.
    """
    messages: list[dict[str, str]] = []
    for content in contents:
        role = "assistant" if content.role == "model" else content.role
        text = _flatten_parts(content)
        if role and text:
            messages.append({"role": role, "content": text})

    if config.json_mode:
        instruction = json_mode_instruction(config.response_schema)
        messages.insert(0, {"role": "system", "content": instruction})
    return messages


def to_function_tool(
    decl: ToolDeclaration, parameters: Any = None
) -> dict[str, Any]:
    """Render a declaration as an OpenAI function tool with a sanitized schema."""
    raw = parameters if parameters is not None else decl.parameters
    if raw is None:
        raw = {"type": "object", "properties": {}}
    return {
        "type": "function",
        "function": {
            "name": decl.name,
            "description": decl.description or "",
            "parameters": sanitize_parameters(raw),
        },
    }


# --- Response helpers ---


def usage_from_openai(raw: Any) -> UsageMetadata:
    """Map an OpenAI ``usage`` object; zeros when absent."""
    if not isinstance(raw, Mapping):
        return UsageMetadata()
    return UsageMetadata.from_counts(
        raw.get("prompt_tokens"), raw.get("completion_tokens"), raw.get("total_tokens")
    )


def _message_text(message: Mapping[str, Any]) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item.get("text", "")
            for item in content
            if isinstance(item, Mapping) and isinstance(item.get("text"), str)
        )
    return ""


def parse_tool_calls(raw: Any) -> list[FunctionCallPart]:
    """Convert complete ``tool_calls`` entries; bad arguments become ``{}``."""
    if not isinstance(raw, list):
        return []
    calls: list[FunctionCallPart] = []
    for tool_call in raw:
        if not isinstance(tool_call, Mapping) or tool_call.get("type") != "function":
            continue
        function = tool_call.get("function")
        if not isinstance(function, Mapping):
            continue
        name = str(function.get("name") or "")
        calls.append(
            FunctionCallPart(
                id=tool_call.get("id"),
                name=name,
                args=parse_arguments(function.get("arguments"), name=name),
            )
        )
    return calls


def first_choice(data: Any, *, provider: str) -> Mapping[str, Any]:
    """Return ``choices[0]`` or raise when the provider sent none."""
    choices = data.get("choices") if isinstance(data, Mapping) else None
    if not isinstance(choices, list) or not choices or not isinstance(
        choices[0], Mapping
    ):
        raise APIError("No choices in response", provider=provider, phase="generate")
    return choices[0]


def parse_chat_completion(data: Any, *, provider: str) -> GenerateResponse:
    """Parse a non-streaming chat-completions body."""
    choice = first_choice(data, provider=provider)
    message = choice.get("message")
    if not isinstance(message, Mapping):
        message = {}
    return GenerateResponse(
        text=_message_text(message),
        function_calls=parse_tool_calls(message.get("tool_calls")),
        finish_reason=choice.get("finish_reason") or FinishReason.STOP,
        usage=usage_from_openai(data.get("usage")),
    )


# --- Streaming ---


class ChatStreamDecoder:
    """State machine turning chat-completion SSE lines into partial responses.

    Owns the tool-call accumulator for exactly one streaming call. Text deltas
    are emitted as they arrive; tool calls are emitted once, at ``[DONE]`` or
    at end of stream.
    """

    def __init__(
        self,
        *,
        extra_calls: Callable[[Mapping[str, Any]], list[FunctionCallPart]] | None = None,
    ) -> None:
        """Create a decoder; *extra_calls* parses non-standard call fields of a delta."""
        self.accumulator = ToolCallAccumulator()
        self._extra_calls = extra_calls
        self.completed = False

    def feed(self, line: str) -> list[GenerateResponse]:
        """Consume one line and return the responses it completes."""
        data = sse_data(line)
        if data is None or self.completed:
            return []
        if data.strip() == DONE_SENTINEL:
            return self.finish()
        try:
            chunk = json.loads(data)
        except ValueError:
            log.debug("Skipping malformed stream event: %.200s", data)
            return []
        if not isinstance(chunk, Mapping):
            return []
        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(
            choices[0], Mapping
        ):
            return []
        choice = choices[0]
        delta = choice.get("delta")
        if not isinstance(delta, Mapping):
            return []

        self._accumulate(delta.get("tool_calls"))
        calls = self._extra_calls(delta) if self._extra_calls else []
        text = delta.get("content") if isinstance(delta.get("content"), str) else ""
        if not text and not calls:
            return []
        response = text_chunk_response(
            text,
            finish_reason=choice.get("finish_reason"),
            usage=usage_from_openai(chunk.get("usage")),
        )
        response.function_calls = calls
        return [response]

    def _accumulate(self, raw: Any) -> None:
        if not isinstance(raw, list):
            return
        for tool_call in raw:
            if not isinstance(tool_call, Mapping):
                continue
            function = tool_call.get("function")
            if not isinstance(function, Mapping):
                continue
            index = tool_call.get("index")
            self.accumulator.add_indexed_delta(
                index if isinstance(index, int) else 0,
                call_id=tool_call.get("id") or None,
                name=function.get("name") or None,
                arguments=function.get("arguments") or None,
            )

    def finish(self) -> list[GenerateResponse]:
        """Flush accumulated tool calls; safe to call more than once."""
        if self.completed:
            return []
        self.completed = True
        calls = self.accumulator.drain()
        return [tool_calls_response(calls)] if calls else []

