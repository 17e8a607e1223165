"""
llm/provider_factory.py - Build an LLM backend from configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TYPE_CHECKING

from .protocol import LLMProviderProtocol
from .providers.anthropic import AnthropicProvider, DEFAULT_MODEL as ANTHROPIC_DEFAULT_MODEL
from .providers.local import LocalProvider, DEFAULT_BASE_URL, DEFAULT_MODEL as LOCAL_DEFAULT_MODEL

if TYPE_CHECKING:
    from gmpflow.bootstrap.config import LLMConfig

logger = logging.getLogger("llm.factory")

PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_LOCAL = "local"
PROVIDER_OLLAMA = "ollama"  # Alias for local


def create_llm_provider(config: Optional["LLMConfig"] = None, **overrides: Any) -> LLMProviderProtocol:
    """
    Create an LLM backend.

    Settings come from `config` (or the loaded application config), with
    keyword overrides taking precedence.

    Raises:
        ValueError: If the provider name is unknown
    """
    if config is None:
        from gmpflow.bootstrap.config import get_config
        config = get_config().llm

    settings = {
        "provider": config.provider,
        "model": config.model,
        "api_key": config.api_key,
        "base_url": config.base_url,
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
        "timeout_seconds": config.timeout_seconds,
        "retry_attempts": config.retry_attempts,
        "retry_delay_ms": config.retry_delay_ms,
        "max_requests_per_minute": config.max_requests_per_minute,
    }
    settings.update(overrides)

    name = (settings.pop("provider") or PROVIDER_ANTHROPIC).lower()
    if name == PROVIDER_OLLAMA:
        name = PROVIDER_LOCAL
    model = settings.pop("model")
    api_key = settings.pop("api_key")
    base_url = settings.pop("base_url")

    if name == PROVIDER_ANTHROPIC:
        if not api_key:
            logger.warning("No Anthropic API key configured; relying on ANTHROPIC_API_KEY")
        logger.info(f"Creating Anthropic provider with model {model or ANTHROPIC_DEFAULT_MODEL}")
        return AnthropicProvider(model=model or ANTHROPIC_DEFAULT_MODEL, api_key=api_key or None, **settings)

    if name == PROVIDER_LOCAL:
        logger.info(f"Creating local provider with model {model or LOCAL_DEFAULT_MODEL}")
        return LocalProvider(
            model=model or LOCAL_DEFAULT_MODEL,
            base_url=base_url or DEFAULT_BASE_URL,
            **settings,
        )

    raise ValueError(f"Unknown provider: {name}. Supported: {PROVIDER_ANTHROPIC}, {PROVIDER_LOCAL}")
