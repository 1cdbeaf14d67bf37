"""ContentGenerator protocol: the capability set every translator implements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from switchboard.content import (
        CountTokensRequest,
        CountTokensResponse,
        EmbedContentRequest,
        EmbedContentResponse,
        GenerateRequest,
        GenerateResponse,
    )


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by translators."""

    streaming: bool
    embeddings: bool
    tools: bool = True
    #: Provider-native tool directives (web search, code execution...).
    tool_directives: bool = False


@runtime_checkable
class ContentGenerator(Protocol):
    """Generate, stream, count and embed against one provider."""

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run one request/response round trip."""
        ...

    def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[GenerateResponse]:
        """Yield partial responses; drain it to release the connection."""
        ...

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Approximate the token count of the request contents."""
        ...

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        """Embed the request contents, or raise UnsupportedOperationError."""
        ...

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature capabilities of this translator."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
