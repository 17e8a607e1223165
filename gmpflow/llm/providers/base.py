"""
llm/providers/base.py - Base LLM backend.

Shared request pipeline for every backend:
- local rate limiting
- per-attempt timeout via asyncio.wait_for
- retry with exponential backoff on timeouts and transient errors
- JSON extraction and Pydantic validation for structured responses
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..exceptions import (
    LLMError,
    RateLimitError,
    TimeoutError as LLMTimeoutError,
    TransientError,
    ValidationError,
)
from ..protocol import ImageInput, LLMOptions, LLMResponse
from ..rate_limiter import RateLimiter

logger = logging.getLogger("llm.provider")


def extract_json(content: str) -> Any:
    """Parse JSON from a response, tolerating a markdown code fence."""
    text = content.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return json.loads(text)


class BaseProvider(ABC):
    """
    Abstract LLM backend.

    Subclasses implement _raw_complete(); everything else (limits, retries,
    timeouts, structured output) lives here.
    """

    provider_name = "base"

    def __init__(
        self,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        timeout_seconds: float = 60,
        retry_attempts: int = 2,
        retry_delay_ms: int = 1000,
        max_requests_per_minute: int = 60,
    ):
        """
        Args:
            model: Model identifier
            max_tokens: Default max completion tokens
            temperature: Default temperature
            timeout_seconds: Default per-attempt timeout
            retry_attempts: Retries after the first attempt
            retry_delay_ms: Base delay, doubled on every retry
            max_requests_per_minute: Local rate limit
        """
        self.model = model
        self.default_max_tokens = max_tokens
        self.default_temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.retry_delay_ms = retry_delay_ms
        self.rate_limiter = RateLimiter(requests_per_minute=max_requests_per_minute)
        self._available = True

    @abstractmethod
    async def _raw_complete(
        self,
        prompt: str,
        system_prompt: Optional[str],
        options: LLMOptions,
        images: Sequence[ImageInput],
    ) -> LLMResponse:
        """Make the actual backend call."""
        ...

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[LLMOptions] = None,
        images: Optional[Sequence[ImageInput]] = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Raises:
            RateLimitError: If the local rate limit is exhausted
            LLMError: When every attempt failed
        """
        opts = (options or LLMOptions()).resolved(
            self.default_max_tokens,
            self.default_temperature,
            self.timeout_seconds,
        )
        request_id = str(uuid.uuid4())[:8]

        if not self.rate_limiter.allow():
            raise RateLimitError(
                retry_after_seconds=self.rate_limiter.wait_time(),
                request_id=request_id,
            )

        last_error: Optional[Exception] = None
        started = time.monotonic()

        for attempt in range(self.retry_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self._raw_complete(prompt, system_prompt, opts, list(images or ())),
                    timeout=opts.timeout_seconds,
                )
                response.latency_ms = int((time.monotonic() - started) * 1000)
                response.request_id = request_id
                logger.debug(
                    f"{self.provider_name} request {request_id} ok in {response.latency_ms}ms "
                    f"({response.total_tokens} tokens)"
                )
                return response

            except asyncio.TimeoutError:
                last_error = LLMTimeoutError(opts.timeout_seconds, request_id)
                logger.warning(f"Request {request_id} timed out (attempt {attempt + 1})")

            except TransientError as e:
                last_error = e
                logger.warning(f"Transient error on {request_id} (attempt {attempt + 1}): {e}")

            except LLMError:
                raise

            except Exception as e:
                last_error = TransientError(str(e), e, request_id)
                logger.warning(f"Request {request_id} failed (attempt {attempt + 1}): {e}")

            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_delay_ms * (2 ** attempt) / 1000)

        raise LLMError(
            f"Request failed after {self.retry_attempts + 1} attempts: {last_error}",
            recoverable=True,
            request_id=request_id,
        )

    async def complete_json(
        self,
        prompt: str,
        response_model: Type[BaseModel],
        system_prompt: Optional[str] = None,
        options: Optional[LLMOptions] = None,
        images: Optional[Sequence[ImageInput]] = None,
    ) -> BaseModel:
        """
        Generate a JSON completion validated against `response_model`.

        Raises:
            ValidationError: If the response is not JSON or doesn't match
        """
        instruction = (
            "Respond with valid JSON matching this schema:\n"
            f"{json.dumps(response_model.model_json_schema())}\n"
            "Output only the JSON object."
        )
        system = f"{system_prompt}\n\n{instruction}" if system_prompt else instruction

        response = await self.complete(prompt, system, options, images)
        try:
            return response_model.model_validate(extract_json(response.content))
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Response is not valid JSON: {e}",
                raw_response=response.content,
                request_id=response.request_id,
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Response doesn't match {response_model.__name__}: {e}",
                raw_response=response.content,
                request_id=response.request_id,
            )

    def is_available(self) -> bool:
        return self._available

    def get_usage_stats(self) -> Dict[str, Any]:
        return {"provider": self.provider_name, "model": self.model, "rate_limiter": self.rate_limiter.get_stats()}
