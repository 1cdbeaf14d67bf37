"""Server-Sent-Events plumbing and the streaming tool-call accumulator.

Providers stream tool calls in fragments: a name in one chunk, the argument
JSON spread over many more. ``ToolCallAccumulator`` owns those fragments for
exactly one streaming call and releases them, fully assembled, once the
stream signals completion.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING, Protocol

from switchboard.content import (
    FinishReason,
    FunctionCallPart,
    GenerateResponse,
    UsageMetadata,
)
from switchboard.providers._utils import parse_arguments

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

log = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


async def iter_sse_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Split a byte stream into lines, carrying partial lines across reads.

    Multi-byte characters split across chunk boundaries are decoded
    incrementally. A trailing line without a newline is emitted at end of
    stream.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


def sse_data(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for any other line."""
    if not line.startswith("data:"):
        return None
    data = line[5:]
    return data[1:] if data.startswith(" ") else data


class StreamState(str, Enum):
    """Lifecycle of one streamed response."""

    COLLECTING_TEXT = "collecting_text"
    COLLECTING_TOOL_CALL = "collecting_tool_call"
    COMPLETED = "completed"


@dataclass
class PartialToolCall:
    """A tool call still being assembled from stream fragments."""

    id: str
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Per-stream mutable state collecting fragmented tool calls.

    Entries are keyed by a stable call key. OpenAI-style chunks reference
    calls by ``index`` and only carry the id on the first fragment, so an
    index->key map remembers it; an index first seen without an id gets the
    synthetic key ``call_<index>``, which keeps parallel calls apart.
    """

    def __init__(self) -> None:
        self._calls: dict[str, PartialToolCall] = {}
        self._index_keys: dict[int, str] = {}
        self.state = StreamState.COLLECTING_TEXT

    @property
    def pending(self) -> bool:
        """Whether any tool call is waiting to be emitted."""
        return bool(self._calls)

    def _ensure_open(self) -> None:
        if self.state is StreamState.COMPLETED:
            raise RuntimeError("tool-call accumulator already drained")

    def add_indexed_delta(
        self,
        index: int,
        *,
        call_id: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        """Merge one OpenAI-style ``tool_calls[]`` delta."""
        self._ensure_open()
        key = self._index_keys.get(index)
        if key is None:
            key = call_id or f"call_{index}"
            self._index_keys[index] = key
        entry = self._calls.get(key)
        if entry is None:
            entry = self._calls[key] = PartialToolCall(id=key)
        if call_id and entry.id != call_id:
            # A late provider id replaces the synthetic one; the key stays put.
            entry.id = call_id
        if name:
            entry.name = name
        if arguments:
            entry.arguments += arguments
        self.state = StreamState.COLLECTING_TOOL_CALL

    def register(self, key: str, *, call_id: str, name: str) -> None:
        """Open an entry announced up front (Anthropic ``content_block_start``)."""
        self._ensure_open()
        self._calls[key] = PartialToolCall(id=call_id, name=name)
        self.state = StreamState.COLLECTING_TOOL_CALL

    def append_arguments(self, key: str, fragment: str) -> bool:
        """Append an argument fragment; False when *key* was never registered."""
        self._ensure_open()
        entry = self._calls.get(key)
        if entry is None:
            return False
        entry.arguments += fragment
        return True

    def drain(self) -> list[FunctionCallPart]:
        """Parse and release every accumulated call, in first-seen order.

        Draining completes the accumulator; later calls return nothing.
        """
        if self.state is StreamState.COMPLETED:
            return []
        calls = [
            FunctionCallPart(
                id=entry.id,
                name=entry.name,
                args=parse_arguments(entry.arguments, name=entry.name),
            )
            for entry in self._calls.values()
        ]
        self._calls.clear()
        self._index_keys.clear()
        self.state = StreamState.COMPLETED
        return calls


def tool_calls_response(calls: list[FunctionCallPart]) -> GenerateResponse:
    """Wrap accumulated calls in the final synthetic stream response."""
    return GenerateResponse(
        text="",
        function_calls=calls,
        finish_reason=FinishReason.TOOL_CALLS,
        usage=UsageMetadata(),
    )


def text_chunk_response(
    text: str,
    *,
    finish_reason: str | None = None,
    usage: UsageMetadata | None = None,
) -> GenerateResponse:
    """Wrap one streamed text delta."""
    return GenerateResponse(
        text=text,
        finish_reason=finish_reason or FinishReason.STOP,
        usage=usage or UsageMetadata(),
    )


class StreamDecoder(Protocol):
    """Per-call decoder turning SSE lines into partial responses."""

    completed: bool

    def feed(self, line: str) -> list[GenerateResponse]: ...

    def finish(self) -> list[GenerateResponse]: ...


async def decode_stream(
    lines: AsyncIterator[str], decoder: StreamDecoder
) -> AsyncIterator[GenerateResponse]:
    """Drive *decoder* over *lines*, flushing it at end of stream.

    The line source is closed on exit, so abandoning the iterator early still
    releases the network response.
    """
    try:
        async for line in lines:
            for response in decoder.feed(line):
                yield response
            if decoder.completed:
                return
        for response in decoder.finish():
            yield response
    finally:
        await lines.aclose()  # type: ignore[attr-defined]
