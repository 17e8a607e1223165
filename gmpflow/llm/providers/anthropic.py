"""
llm/providers/anthropic.py - Claude backend.

Uses the Anthropic Messages API. Images are sent as base64 content blocks
ahead of the text prompt, which is how raw-material photos reach the model.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ProviderUnavailableError, TransientError
from ..protocol import ImageInput, LLMOptions, LLMResponse
from .base import BaseProvider

logger = logging.getLogger("llm.anthropic")

DEFAULT_MODEL = "claude-sonnet-4-20250514"
TRANSIENT_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504, 529}


class AnthropicProvider(BaseProvider):
    """
    Claude via the `anthropic` SDK.

    The API key comes from the constructor or, when None, from the
    ANTHROPIC_API_KEY environment variable read by the SDK.
    """

    provider_name = "anthropic"

    def __init__(self, model: str = DEFAULT_MODEL, api_key: Optional[str] = None, **kwargs: Any):
        super().__init__(model=model, **kwargs)
        self._api_key = api_key
        self._client: Optional[Any] = None

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        try:
            import anthropic
        except ImportError as e:
            self._available = False
            raise ProviderUnavailableError("anthropic", "anthropic package not installed") from e

        try:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, timeout=self.timeout_seconds)
        except Exception as e:
            self._available = False
            raise ProviderUnavailableError("anthropic", f"Failed to initialize client: {e}") from e

        self._available = True
        return self._client

    @staticmethod
    def _build_content(prompt: str, images: Sequence[ImageInput]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": image.media_type, "data": image.as_base64()},
            }
            for image in images
        ]
        content.append({"type": "text", "text": prompt})
        return content

    async def _raw_complete(
        self,
        prompt: str,
        system_prompt: Optional[str],
        options: LLMOptions,
        images: Sequence[ImageInput],
    ) -> LLMResponse:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                system=system_prompt or "",
                messages=[{"role": "user", "content": self._build_content(prompt, images)}],
            )
        except Exception as e:
            if self._is_transient_error(e):
                raise TransientError(str(e), e)
            raise

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return LLMResponse(
            content=text,
            model=response.model,
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
            },
            finish_reason=response.stop_reason or "stop",
        )

    @staticmethod
    def _is_transient_error(error: Exception) -> bool:
        status = getattr(error, "status_code", None)
        if status in TRANSIENT_STATUS_CODES:
            return True
        message = str(error).lower()
        return any(p in message for p in ("overloaded", "rate limit", "timeout", "connection"))

    def is_available(self) -> bool:
        if self._client is None:
            try:
                self._get_client()
            except ProviderUnavailableError:
                return False
        return self._available
