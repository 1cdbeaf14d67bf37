"""Mock generator for testing."""

from __future__ import annotations

from typing import TYPE_CHECKING

from switchboard.content import (
    ContentEmbedding,
    CountTokensRequest,
    CountTokensResponse,
    EmbedContentRequest,
    EmbedContentResponse,
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    TextPart,
    UsageMetadata,
    approximate_token_count,
    extract_text,
    normalize_contents,
)
from switchboard.providers._utils import approximate_count
from switchboard.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

EMBEDDING_DIMENSIONS = 8


class MockGenerator:
    """Mock generator for host tests without API calls.

    Echoes the last user text, so conversation plumbing stays observable.
    """

    provider_name = "mock"

    def __init__(self, *, model: str = "mock-model") -> None:
        self.model = model

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(streaming=True, embeddings=True, tools=False)

    def _reply(self, request: GenerateRequest) -> str:
        contents = normalize_contents(request.contents)
        for content in reversed(contents):
            if content.role != "user":
                continue
            texts = [p.text for p in content.parts if isinstance(p, TextPart) and p.text]
            if texts:
                return f"echo: {' '.join(texts)[:100]}"
        return "echo: "

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Return a deterministic echo response."""
        text = self._reply(request)
        prompt_tokens = approximate_token_count(
            extract_text(normalize_contents(request.contents))
        )
        return GenerateResponse(
            text=text,
            finish_reason=FinishReason.STOP,
            usage=UsageMetadata.from_counts(
                prompt_tokens, approximate_token_count(text)
            ),
        )

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[GenerateResponse]:
        """Yield the echo response word by word."""
        words = self._reply(request).split(" ")
        for idx, word in enumerate(words):
            yield GenerateResponse(text=word if idx == 0 else f" {word}")

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Approximate the token count locally."""
        return approximate_count(request)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:  # noqa: ARG002
        """Return a fixed-size zero vector."""
        return EmbedContentResponse(
            embeddings=[ContentEmbedding(values=[0.0] * EMBEDDING_DIMENSIONS)]
        )

    async def aclose(self) -> None:
        """Nothing to release."""
