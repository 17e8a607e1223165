"""
llm/providers/local.py - Local Ollama backend over httpx.

Vision-capable local models (llava, llama3.2-vision) receive images as
base64 strings in the `images` field of /api/generate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from ..exceptions import ProviderUnavailableError, TransientError
from ..protocol import ImageInput, LLMOptions, LLMResponse
from .base import BaseProvider

logger = logging.getLogger("llm.local")

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llava"


class LocalProvider(BaseProvider):
    """Ollama server at `base_url`."""

    provider_name = "local"

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ):
        super().__init__(model=model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_seconds)
        return self._client

    async def check_server(self) -> bool:
        """Probe /api/tags; updates availability."""
        try:
            response = await self._get_client().get("/api/tags")
        except httpx.HTTPError as e:
            logger.warning(f"Ollama server not reachable at {self.base_url}: {e}")
            self._available = False
            return False
        self._available = response.status_code == 200
        return self._available

    async def _raw_complete(
        self,
        prompt: str,
        system_prompt: Optional[str],
        options: LLMOptions,
        images: Sequence[ImageInput],
    ) -> LLMResponse:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": options.max_tokens,
                "temperature": options.temperature,
            },
        }
        if system_prompt:
            payload["system"] = system_prompt
        if images:
            payload["images"] = [image.as_base64() for image in images]

        try:
            response = await self._get_client().post("/api/generate", json=payload)
        except httpx.ConnectError as e:
            self._available = False
            raise ProviderUnavailableError("local", f"Cannot reach Ollama at {self.base_url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransientError(str(e), e)

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientError(f"Ollama returned status {response.status_code}: {response.text}")
        if response.status_code != 200:
            raise ProviderUnavailableError("local", f"Ollama returned status {response.status_code}: {response.text}")

        data = response.json()
        return LLMResponse(
            content=data.get("response", ""),
            model=data.get("model", self.model),
            usage={
                "prompt_tokens": int(data.get("prompt_eval_count", 0)),
                "completion_tokens": int(data.get("eval_count", 0)),
            },
            finish_reason=data.get("done_reason", "stop"),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
