"""
gmpflow.llm - LLM client layer used by the perception and generation providers.
"""

from .protocol import ImageInput, LLMResponse, LLMOptions, LLMProviderProtocol
from .exceptions import (
    LLMError,
    RateLimitError,
    ProviderUnavailableError,
    ValidationError,
    TimeoutError,
    TransientError,
)
from .rate_limiter import RateLimiter
from .providers import BaseProvider, AnthropicProvider, LocalProvider
from .provider_factory import create_llm_provider

__all__ = [
    "ImageInput",
    "LLMResponse",
    "LLMOptions",
    "LLMProviderProtocol",
    "LLMError",
    "RateLimitError",
    "ProviderUnavailableError",
    "ValidationError",
    "TimeoutError",
    "TransientError",
    "RateLimiter",
    "BaseProvider",
    "AnthropicProvider",
    "LocalProvider",
    "create_llm_provider",
]
