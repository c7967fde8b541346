"""
LLM Provider Package

This package contains the provider registry and the closed set of
text-generation providers behind the capability interface.
"""

from .base import (
    BaseLLMProvider,
    HealthStatus,
    LLMProviderError,
    LLMResponse,
    OutputFormat,
    ProviderConfig,
)
from .registry import PROVIDER_SCHEMA, ProviderId, ProviderRegistry
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider
from .anthropic import AnthropicProvider
from .gemini import GeminiProvider

__all__ = [
    "BaseLLMProvider",
    "HealthStatus",
    "LLMProviderError",
    "LLMResponse",
    "OutputFormat",
    "ProviderConfig",
    "PROVIDER_SCHEMA",
    "ProviderId",
    "ProviderRegistry",
    "OllamaProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
]
