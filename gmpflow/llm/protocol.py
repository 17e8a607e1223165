"""
llm/protocol.py - LLM client protocol.

The perception and generation providers depend on this protocol only, so a
Claude backend, a local Ollama backend or a test double are interchangeable.
"""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Sequence, Type, runtime_checkable

from pydantic import BaseModel


@dataclass(frozen=True)
class ImageInput:
    """An image attached to a prompt."""

    data: bytes
    media_type: str = "image/jpeg"

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass
class LLMResponse:
    """Response from a completion request."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"
    latency_ms: int = 0
    request_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    @property
    def total_tokens(self) -> int:
        return self.usage.get("prompt_tokens", 0) + self.usage.get("completion_tokens", 0)


@dataclass
class LLMOptions:
    """Per-request options. Unset values fall back to provider defaults."""

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    timeout_seconds: Optional[float] = None

    def resolved(self, max_tokens: int, temperature: float, timeout_seconds: float) -> "LLMOptions":
        return LLMOptions(
            max_tokens=self.max_tokens or max_tokens,
            temperature=self.temperature if self.temperature is not None else temperature,
            timeout_seconds=self.timeout_seconds or timeout_seconds,
        )


@runtime_checkable
class LLMProviderProtocol(Protocol):
    """Protocol every LLM backend implements."""

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[LLMOptions] = None,
        images: Optional[Sequence[ImageInput]] = None,
    ) -> LLMResponse:
        ...

    async def complete_json(
        self,
        prompt: str,
        response_model: Type[BaseModel],
        system_prompt: Optional[str] = None,
        options: Optional[LLMOptions] = None,
        images: Optional[Sequence[ImageInput]] = None,
    ) -> BaseModel:
        """
        Completion parsed and validated against a Pydantic model.

        Raises:
            ValidationError: If the response doesn't match the schema
        """
        ...

    def is_available(self) -> bool:
        ...
