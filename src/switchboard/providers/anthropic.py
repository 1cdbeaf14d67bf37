"""Anthropic Messages API translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any
import uuid

from switchboard.content import (
    Content,
    CountTokensRequest,
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    FinishReason,
    FunctionCallPart,
    FunctionResponsePart,
    GenerateRequest,
    GenerateResponse,
    GenerationConfig,
    TextPart,
    UsageMetadata,
    normalize_contents,
)
from switchboard.errors import APIError, UnsupportedOperationError
from switchboard.providers._streaming import (
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
    response_text,
)
from switchboard.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from switchboard.config import Config

log = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1
TOOL_RESULTS_LEAD_IN = "Here are the tool results:"


class AnthropicGenerator:
    """Translator for the Anthropic Messages API.

    The Messages API has no embeddings endpoint; ``embed_content`` always
    raises ``UnsupportedOperationError``.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        custom_headers: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind to one endpoint and default model."""
        self.model = model
        self._http = ProviderHTTP(
            provider=self.provider_name,
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                **(custom_headers or {}),
            },
            timeout_s=timeout_s,
            client=client,
        )

    @classmethod
    def from_config(
        cls, config: Config, *, client: httpx.AsyncClient | None = None
    ) -> AnthropicGenerator:
        """Build from a resolved Config."""
        return cls(
            model=config.model,
            api_key=config.api_key or "",
            base_url=config.base_url or "",
            custom_headers=config.custom_headers,
            timeout_s=config.timeout_s,
            client=client,
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(streaming=True, embeddings=False)

    def build_payload(self, request: GenerateRequest) -> dict[str, Any]:
        """Translate a canonical request into a Messages API body."""
        config = request.config
        contents = rewrite_tool_results(normalize_contents(request.contents))
        if config.json_mode:
            contents = _prepend_to_first_user_turn(
                contents, json_mode_instruction(config.response_schema)
            )

        system_blocks: list[str] = []
        messages: list[dict[str, Any]] = []
        for content in contents:
            blocks = _content_blocks(content)
            if not blocks:
                continue
            if content.role == "system":
                system_blocks.extend(b["text"] for b in blocks if b["type"] == "text")
                continue
            role = "assistant" if content.role == "model" else "user"
            _append_message(messages, {"role": role, "content": blocks})

        for message in messages:
            if message["role"] == "user":
                _ensure_readable_text(message["content"])

        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": messages,
            "max_tokens": config.max_output_tokens or DEFAULT_MAX_TOKENS,
            "temperature": (
                config.temperature
                if config.temperature is not None
                else DEFAULT_TEMPERATURE
            ),
            "top_p": config.top_p if config.top_p is not None else DEFAULT_TOP_P,
        }
        if system_blocks:
            payload["system"] = "\n\n".join(system_blocks)

        tools = _tools_payload(config)
        if tools:
            payload["tools"] = tools

        log.debug(
            "Anthropic request: model=%s messages=%d tools=%d",
            payload["model"],
            len(messages),
            len(tools),
        )
        return payload

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run one Messages API round trip."""
        data = await self._http.post_json(
            "/v1/messages",
            self.build_payload(request),
            phase="generate",
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        return parse_message(data)

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[GenerateResponse]:
        """Stream text deltas, then one response carrying every tool call."""
        payload = {**self.build_payload(request), "stream": True}
        lines = self._http.stream_lines(
            "/v1/messages",
            payload,
            cancel_event=request.cancel_event,
            timeout_s=request.timeout_s,
        )
        async for response in decode_stream(lines, AnthropicStreamDecoder()):
            yield response

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Approximate the token count locally."""
        return approximate_count(request)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        """Always fails: the Messages API offers no embeddings."""
        raise UnsupportedOperationError(
            "Anthropic does not support embeddings",
            hint="Use an openai-compatible Config for embed_content.",
        )

    async def aclose(self) -> None:
        """Close underlying HTTP resources."""
        await self._http.aclose()


# --- Request helpers ---


def _tool_results_summary(texts: list[str], results: list[FunctionResponsePart]) -> str:
    summary = "\n".join(texts) + "\n\n" if texts else ""
    summary += "## Tool Execution Completed\n\n"
    summary += "The following tools have been executed successfully:\n\n"
    for result in results:
        body = (
            result.response
            if isinstance(result.response, str)
            else json.dumps(result.response, indent=2, ensure_ascii=False, default=str)
        )
        summary += f"### {result.name}\n```\n{body}\n```\n\n"
    summary += (
        "**Task completed successfully.** "
        "Please provide a summary of these results and any insights."
    )
    return summary


def rewrite_tool_results(contents: list[Content]) -> list[Content]:
    """Collapse user turns carrying function responses into one text part.

    The Messages API rejects tool results that are not paired with the
    ``tool_use`` block of the immediately preceding assistant turn, which
    canonical histories do not guarantee. The results are rendered as a
    readable summary instead; the structured call-id linkage is lost.
    """
    rewritten: list[Content] = []
    for content in contents:
        if content.role != "user" or not any(
            isinstance(p, FunctionResponsePart) for p in content.parts
        ):
            rewritten.append(content)
            continue
        texts = [p.text for p in content.parts if isinstance(p, TextPart) and p.text]
        results = [p for p in content.parts if isinstance(p, FunctionResponsePart)]
        summary = _tool_results_summary(texts, results)
        rewritten.append(Content(role=content.role, parts=[TextPart(summary)]))
    return rewritten


def _prepend_to_first_user_turn(contents: list[Content], text: str) -> list[Content]:
    out = list(contents)
    for idx, content in enumerate(out):
        if content.role == "user":
            out[idx] = Content(role="user", parts=[TextPart(text), *content.parts])
            break
    return out


def _content_blocks(content: Content) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for part in content.parts:
        if isinstance(part, TextPart):
            if part.text:
                blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, FunctionCallPart):
            blocks.append(
                {
                    "type": "tool_use",
                    "id": part.id or f"toolu_{uuid.uuid4().hex}",
                    "name": part.name,
                    "input": part.args or {},
                }
            )
        elif isinstance(part, FunctionResponsePart):
            # Only reachable for non-user turns; user turns were rewritten.
            blocks.append(
                {
                    "type": "text",
                    "text": f"Tool result from {part.name}: "
                    f"{response_text(part.response)}",
                }
            )
        elif part.get("type") == "tool_result":
            blocks.append(dict(part))
        else:
            blocks.append({"type": "text", "text": json.dumps(part, default=str)})
    return blocks


def _ensure_readable_text(blocks: list[dict[str, Any]]) -> None:
    has_text = any(
        b.get("type") == "text" and str(b.get("text") or "").strip() for b in blocks
    )
    has_tool_result = any(b.get("type") == "tool_result" for b in blocks)
    if has_tool_result and not has_text:
        blocks.insert(0, {"type": "text", "text": TOOL_RESULTS_LEAD_IN})


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        messages[-1]["content"] = messages[-1]["content"] + msg["content"]
    else:
        messages.append(msg)


def _tools_payload(config: GenerationConfig) -> list[dict[str, Any]]:
    return [
        {
            "name": decl.name,
            "description": decl.description or "",
            "input_schema": decl.parameters or {"type": "object", "properties": {}},
        }
        for decl in config.function_declarations()
    ]


# --- Response helpers ---


def _usage(raw: Any) -> UsageMetadata:
    if not isinstance(raw, Mapping):
        return UsageMetadata()
    return UsageMetadata.from_counts(raw.get("input_tokens"), raw.get("output_tokens"))


def _finish_reason(stop_reason: Any) -> str:
    if stop_reason == "tool_use":
        return FinishReason.TOOL_CALLS
    return stop_reason or FinishReason.STOP


def parse_message(data: Any) -> GenerateResponse:
    """Parse a non-streaming Messages API body."""
    if not isinstance(data, Mapping):
        raise APIError(
            "Messages API returned an unexpected body",
            provider=AnthropicGenerator.provider_name,
            phase="generate",
        )
    text = ""
    calls: list[FunctionCallPart] = []
    blocks = data.get("content")
    for block in blocks if isinstance(blocks, list) else []:
        if not isinstance(block, Mapping):
            continue
        if block.get("type") == "text":
            text += block.get("text") or ""
        elif block.get("type") == "tool_use":
            raw_input = block.get("input")
            calls.append(
                FunctionCallPart(
                    id=block.get("id"),
                    name=str(block.get("name") or ""),
                    args=dict(raw_input) if isinstance(raw_input, Mapping) else {},
                )
            )
    return GenerateResponse(
        text=text,
        function_calls=calls,
        finish_reason=_finish_reason(data.get("stop_reason")),
        usage=_usage(data.get("usage")),
    )


class AnthropicStreamDecoder:
    """Decoder for the event-typed Messages API stream.

    Tool-use blocks are keyed by content-block index (``index_<n>``).
    ``message_stop`` emits nothing; accumulated calls are flushed once the
    read loop ends.
    """

    def __init__(self) -> None:
        self.accumulator = ToolCallAccumulator()
        self.completed = False

    def feed(self, line: str) -> list[GenerateResponse]:
        """Consume one line and return the responses it completes."""
        data = sse_data(line)
        if data is None or self.completed:
            return []
        try:
            event = json.loads(data)
        except ValueError:
            log.debug("Skipping malformed stream event: %.200s", data)
            return []
        if not isinstance(event, Mapping):
            return []

        kind = event.get("type")
        index = event.get("index") if isinstance(event.get("index"), int) else 0
        key = f"index_{index}"

        if kind == "content_block_start":
            block = event.get("content_block")
            if isinstance(block, Mapping) and block.get("type") == "tool_use":
                self.accumulator.register(
                    key,
                    call_id=str(block.get("id") or ""),
                    name=str(block.get("name") or ""),
                )
        elif kind == "content_block_delta":
            delta = event.get("delta")
            if not isinstance(delta, Mapping):
                return []
            if delta.get("type") == "text_delta":
                text = str(delta.get("text") or "")
                return [text_chunk_response(text)] if text else []
            if delta.get("type") == "input_json_delta":
                fragment = str(delta.get("partial_json") or "")
                if not self.accumulator.append_arguments(key, fragment):
                    log.debug("Dropping input_json_delta for unknown block %s", key)
        elif kind == "error":
            error = event.get("error")
            message = error.get("message") if isinstance(error, Mapping) else None
            raise APIError(
                f"anthropic stream failed: {message or data}",
                provider=AnthropicGenerator.provider_name,
                phase="stream",
                body=data,
            )
        return []

    def finish(self) -> list[GenerateResponse]:
        """Flush accumulated tool calls; safe to call more than once."""
        if self.completed:
            return []
        self.completed = True
        calls = self.accumulator.drain()
        return [tool_calls_response(calls)] if calls else []
