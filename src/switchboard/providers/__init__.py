"""Translator implementations."""

from .anthropic import AnthropicGenerator
from .base import ContentGenerator, ProviderCapabilities
from .gemini_relay import GeminiRelayGenerator
from .mock import MockGenerator
from .openai import OpenAICompatibleGenerator

__all__ = [
    "AnthropicGenerator",
    "ContentGenerator",
    "GeminiRelayGenerator",
    "MockGenerator",
    "OpenAICompatibleGenerator",
    "ProviderCapabilities",
]
