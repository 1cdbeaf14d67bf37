"""Switchboard: one canonical conversation model, several LLM wire protocols.

Public API:
    - create_content_generator(): Pick the translator for a Config
    - Config / AuthType: Configuration
    - HookExecutor / HookSettings: Lifecycle shell hooks
    - Canonical types: Content, TextPart, FunctionCallPart, GenerateRequest...
"""

from __future__ import annotations

import logging

from switchboard.config import AuthType, Config, ModelFamilies
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
    Tool,
    ToolDeclaration,
    UsageMetadata,
)
from switchboard.dispatch import create_content_generator
from switchboard.errors import (
    APIError,
    ConfigurationError,
    GenerationCancelledError,
    HookInputError,
    RateLimitError,
    SwitchboardError,
    UnsupportedOperationError,
)
from switchboard.hooks import HookExecutor, HookSession, HookSettings
from switchboard.providers.base import ContentGenerator

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("switchboard-llm")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("switchboard").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AuthType",
    "Config",
    "ConfigurationError",
    "Content",
    "ContentGenerator",
    "CountTokensRequest",
    "CountTokensResponse",
    "EmbedContentRequest",
    "EmbedContentResponse",
    "FinishReason",
    "FunctionCallPart",
    "FunctionResponsePart",
    "GenerateRequest",
    "GenerateResponse",
    "GenerationCancelledError",
    "GenerationConfig",
    "HookExecutor",
    "HookInputError",
    "HookSession",
    "HookSettings",
    "ModelFamilies",
    "RateLimitError",
    "SwitchboardError",
    "TextPart",
    "Tool",
    "ToolDeclaration",
    "UnsupportedOperationError",
    "UsageMetadata",
    "create_content_generator",
]
