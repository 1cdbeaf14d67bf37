"""Canonical conversation model shared by every translator.

The shapes here are provider-agnostic: a conversation is an ordered list of
``Content`` turns, each carrying a role (``user``, ``model`` or ``system``)
and a list of parts (text, function call, function response). Translators
read requests from this model and write responses back into it.

Callers may hand history over loosely (a bare string, already-shaped
``Content`` objects, or Gemini-style ``{"role": ..., "parts": [...]}``
mappings); ``normalize_contents`` folds all of those into turn-complete
``Content`` lists.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import json
import math
from typing import TYPE_CHECKING, Any, Literal, Union

if TYPE_CHECKING:
    import asyncio

Role = Literal["user", "model", "system"]


class FinishReason:
    """Finish reasons produced by the translators.

    Provider-specific reasons that have no canonical equivalent pass through
    verbatim (``length``, ``max_tokens``, ``content_filter``...).
    """

    STOP = "STOP"
    TOOL_CALLS = "tool_calls"


# --- Parts ---


@dataclass(frozen=True)
class TextPart:
    """Plain text."""

    text: str


@dataclass(frozen=True)
class FunctionCallPart:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class FunctionResponsePart:
    """The result of a tool invocation, sent back to the model."""

    name: str
    response: Any = None
    id: str | None = None


# Unrecognised part mappings are kept verbatim; translators serialise them.
Part = Union[TextPart, FunctionCallPart, FunctionResponsePart, dict[str, Any]]


@dataclass(frozen=True)
class Content:
    """One conversation turn."""

    role: str
    parts: list[Part] = field(default_factory=list)


# --- Tools and generation config ---


@dataclass(frozen=True)
class ToolDeclaration:
    """A callable function the model may request."""

    name: str
    description: str = ""
    #: JSON-Schema-like parameter tree.
    parameters: dict[str, Any] | None = None
    #: Raw JSON Schema, preferred over ``parameters`` by the Gemini relay.
    parameters_json_schema: dict[str, Any] | None = None


@dataclass(frozen=True)
class Tool:
    """A tool entry: either function declarations or an opaque directive.

    Directives are provider-native tool switches such as
    ``{"googleSearch": {}}``; only translators that understand them forward
    them, everyone else ignores them.
    """

    function_declarations: list[ToolDeclaration] = field(default_factory=list)
    directive: dict[str, Any] | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> Tool:
        """Build a tool from a Gemini-style mapping."""
        declarations = raw.get("functionDeclarations") or raw.get(
            "function_declarations"
        )
        if isinstance(declarations, list):
            return cls(
                function_declarations=[
                    _coerce_declaration(d) for d in declarations if isinstance(d, Mapping)
                ]
            )
        return cls(directive=dict(raw))


def _coerce_declaration(raw: Mapping[str, Any]) -> ToolDeclaration:
    return ToolDeclaration(
        name=str(raw.get("name", "")),
        description=str(raw.get("description") or ""),
        parameters=raw.get("parameters"),
        parameters_json_schema=raw.get("parametersJsonSchema")
        or raw.get("parameters_json_schema"),
    )


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling and output controls for one request."""

    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None
    tools: list[Tool] = field(default_factory=list)

    @property
    def json_mode(self) -> bool:
        """Whether forced-JSON output was requested."""
        return (
            self.response_mime_type == "application/json"
            and self.response_schema is not None
        )

    def function_declarations(self) -> list[ToolDeclaration]:
        """Flatten the declarations of every function tool, in order."""
        out: list[ToolDeclaration] = []
        for tool in self.tools:
            out.extend(tool.function_declarations)
        return out


# --- Requests ---


@dataclass(frozen=True)
class GenerateRequest:
    """A generate call in canonical form."""

    contents: Any
    #: Falls back to the generator's configured model when omitted.
    model: str | None = None
    config: GenerationConfig = field(default_factory=GenerationConfig)
    #: Setting this event aborts the in-flight network call.
    cancel_event: asyncio.Event | None = None
    timeout_s: float | None = None


@dataclass(frozen=True)
class CountTokensRequest:
    """Token-count request."""

    contents: Any
    model: str | None = None


@dataclass(frozen=True)
class EmbedContentRequest:
    """Embedding request."""

    contents: Any
    model: str | None = None
    cancel_event: asyncio.Event | None = None
    timeout_s: float | None = None


# --- Responses ---


def _non_negative(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


@dataclass(frozen=True)
class UsageMetadata:
    """Token usage for one response; all zeros when the provider is silent."""

    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0

    @classmethod
    def from_counts(
        cls, prompt: Any = None, completion: Any = None, total: Any = None
    ) -> UsageMetadata:
        """Build usage from raw provider counts.

        When prompt or completion counts are reported, the total is their sum;
        a bare total is used only when nothing else is available.
        """
        prompt_count = _non_negative(prompt)
        completion_count = _non_negative(completion)
        if prompt is not None or completion is not None:
            total_count = prompt_count + completion_count
        else:
            total_count = _non_negative(total)
        return cls(
            prompt_token_count=prompt_count,
            candidates_token_count=completion_count,
            total_token_count=total_count,
        )


@dataclass
class GenerateResponse:
    """A complete response, or one partial chunk of a streamed response."""

    text: str = ""
    function_calls: list[FunctionCallPart] = field(default_factory=list)
    finish_reason: str = FinishReason.STOP
    usage: UsageMetadata = field(default_factory=UsageMetadata)

    def to_content(self) -> Content:
        """Return the response as a ``model`` turn for the next request."""
        parts: list[Part] = []
        if self.text:
            parts.append(TextPart(self.text))
        parts.extend(self.function_calls)
        return Content(role="model", parts=parts)


@dataclass(frozen=True)
class CountTokensResponse:
    """Approximate token count."""

    total_tokens: int


@dataclass(frozen=True)
class ContentEmbedding:
    """One embedding vector."""

    values: list[float]


@dataclass(frozen=True)
class EmbedContentResponse:
    """Embedding vectors for the request contents."""

    embeddings: list[ContentEmbedding]


# --- Normalization ---


def coerce_part(raw: Any) -> Part:
    """Convert a loose part (string or Gemini-style mapping) into a ``Part``."""
    if isinstance(raw, (TextPart, FunctionCallPart, FunctionResponsePart)):
        return raw
    if isinstance(raw, str):
        return TextPart(raw)
    if not isinstance(raw, Mapping):
        return {"value": raw}

    if "text" in raw and isinstance(raw["text"], str):
        return TextPart(raw["text"])

    call = raw.get("functionCall") or raw.get("function_call")
    if isinstance(call, Mapping):
        args = call.get("args")
        return FunctionCallPart(
            name=str(call.get("name", "")),
            args=dict(args) if isinstance(args, Mapping) else {},
            id=call.get("id"),
        )

    response = raw.get("functionResponse") or raw.get("function_response")
    if isinstance(response, Mapping):
        return FunctionResponsePart(
            name=str(response.get("name", "")),
            response=response.get("response"),
            id=response.get("id"),
        )

    return dict(raw)


def part_to_dict(part: Part) -> dict[str, Any]:
    """Render a part in its Gemini-style JSON shape."""
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCallPart):
        call: dict[str, Any] = {"name": part.name, "args": part.args}
        if part.id is not None:
            call["id"] = part.id
        return {"functionCall": call}
    if isinstance(part, FunctionResponsePart):
        resp: dict[str, Any] = {"name": part.name, "response": part.response}
        if part.id is not None:
            resp["id"] = part.id
        return {"functionResponse": resp}
    return dict(part)


def _to_content(item: Any) -> Content | None:
    if isinstance(item, Content):
        return item
    if isinstance(item, str):
        return Content(role="user", parts=[TextPart(item)])
    if isinstance(item, Mapping) and item.get("role") and item.get("parts") is not None:
        parts = item["parts"]
        if not isinstance(parts, list):
            return None
        return Content(role=str(item["role"]), parts=[coerce_part(p) for p in parts])
    text = json.dumps(item, default=str, ensure_ascii=False)
    return Content(role="user", parts=[TextPart(text)])


def normalize_contents(contents: Any) -> list[Content]:
    """Fold loosely shaped history into a list of complete turns.

    A bare string becomes a single ``user`` turn; ``Content`` objects and
    role/parts mappings pass through; anything else is JSON-serialised into
    a ``user`` turn. Turns missing a role or a parts list are dropped.
    """
    if contents is None:
        return []
    items = contents if isinstance(contents, (list, tuple)) else [contents]
    out: list[Content] = []
    for item in items:
        content = _to_content(item)
        if content is None or not content.role or content.parts is None:
            continue
        out.append(content)
    return out


def extract_text(contents: list[Content]) -> str:
    """Concatenate the text parts of every turn, space-joined."""
    return " ".join(
        " ".join(p.text if isinstance(p, TextPart) else "" for p in content.parts)
        for content in contents
    )


def approximate_token_count(text: str) -> int:
    """Approximate a token count as ``ceil(len(text) / 4)``.

    This is a character heuristic, not a tokenizer: it is deterministic and
    cheap, but can be off by a wide margin for code or non-Latin scripts.
    """
    return math.ceil(len(text) / 4)
