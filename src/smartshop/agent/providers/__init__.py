"""LLM provider implementations."""

from .base import BaseLLMProvider, LLMProviderError, LLMProviderConfig
from .gemini import GeminiProvider
from .openai import OpenAIProvider
from .retry import RetryPolicy, is_rate_limited, parse_retry_delay_ms

__all__ = [
    "BaseLLMProvider",
    "LLMProviderError",
    "LLMProviderConfig",
    "GeminiProvider",
    "OpenAIProvider",
    "RetryPolicy",
    "is_rate_limited",
    "parse_retry_delay_ms",
]
