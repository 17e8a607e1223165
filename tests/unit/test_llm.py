"""
tests/unit/test_llm.py - Tests for the LLM client layer.
"""

import asyncio
import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from pydantic import BaseModel

from gmpflow.bootstrap.config import LLMConfig
from gmpflow.llm import (
    AnthropicProvider,
    BaseProvider,
    ImageInput,
    LLMError,
    LLMOptions,
    LLMResponse,
    LocalProvider,
    ProviderUnavailableError,
    RateLimiter,
    RateLimitError,
    TransientError,
    ValidationError,
    create_llm_provider,
)
from gmpflow.llm.providers.base import extract_json


class Answer(BaseModel):
    value: int
    label: str = ""


class ScriptedProvider(BaseProvider):
    """Backend returning (or raising) scripted outcomes in order."""

    provider_name = "scripted"

    def __init__(self, outcomes, **kwargs):
        kwargs.setdefault("retry_delay_ms", 0)
        super().__init__(model="scripted-1", **kwargs)
        self.outcomes = list(outcomes)
        self.calls = []

    async def _raw_complete(self, prompt, system_prompt, options, images):
        self.calls.append((prompt, system_prompt, options, list(images)))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, float):
            await asyncio.sleep(outcome)
            return LLMResponse(content="{}", model=self.model)
        return LLMResponse(content=outcome, model=self.model)


class TestExtractJson:
    """JSON extraction from model output."""

    def test_plain_json(self):
        assert extract_json('{"value": 1}') == {"value": 1}

    def test_fenced_json(self):
        assert extract_json('```json\n{"value": 2}\n```') == {"value": 2}

    def test_bare_fence(self):
        assert extract_json('```\n[1, 2]\n```') == [1, 2]


class TestBaseProvider:
    """Retry, timeout and structured output pipeline."""

    @pytest.mark.asyncio
    async def test_complete_json_validates_model(self):
        provider = ScriptedProvider(['```json\n{"value": 7, "label": "ok"}\n```'])

        result = await provider.complete_json("question", Answer, system_prompt="be terse")

        assert result == Answer(value=7, label="ok")
        _, system, _, _ = provider.calls[0]
        assert system.startswith("be terse")
        assert "schema" in system

    @pytest.mark.asyncio
    async def test_invalid_json_raises_validation_error(self):
        provider = ScriptedProvider(["not json at all"])

        with pytest.raises(ValidationError) as exc:
            await provider.complete_json("q", Answer)
        assert exc.value.raw_response == "not json at all"

    @pytest.mark.asyncio
    async def test_schema_mismatch_raises_validation_error(self):
        provider = ScriptedProvider(['{"label": "missing value"}'])

        with pytest.raises(ValidationError):
            await provider.complete_json("q", Answer)

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        provider = ScriptedProvider([TransientError("overloaded"), '{"value": 1}'], retry_attempts=2)

        result = await provider.complete_json("q", Answer)

        assert result.value == 1
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_retried_then_fails(self):
        provider = ScriptedProvider([RuntimeError("boom"), RuntimeError("boom")], retry_attempts=1)

        with pytest.raises(LLMError) as exc:
            await provider.complete("q")

        assert "2 attempts" in exc.value.message
        assert exc.value.recoverable

    @pytest.mark.asyncio
    async def test_llm_errors_are_not_retried(self):
        provider = ScriptedProvider([ProviderUnavailableError("scripted")], retry_attempts=3)

        with pytest.raises(ProviderUnavailableError):
            await provider.complete("q")
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_per_attempt(self):
        provider = ScriptedProvider([1.0], retry_attempts=0)

        with pytest.raises(LLMError) as exc:
            await provider.complete("q", options=LLMOptions(timeout_seconds=0.01))

        assert "timed out" in exc.value.message

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        provider = ScriptedProvider(['{"value": 1}', '{"value": 2}'])
        provider.rate_limiter = RateLimiter(requests_per_minute=1, burst_capacity=1)

        await provider.complete("q")
        with pytest.raises(RateLimitError) as exc:
            await provider.complete("q")
        assert exc.value.retry_after_seconds > 0

    @pytest.mark.asyncio
    async def test_images_are_forwarded(self):
        provider = ScriptedProvider(['{"value": 1}'])
        image = ImageInput(b"\x89PNG", "image/png")

        await provider.complete("q", images=[image])

        assert provider.calls[0][3] == [image]

    def test_options_resolution(self):
        resolved = LLMOptions(temperature=0.0).resolved(100, 0.7, 30)
        assert resolved.temperature == 0.0
        assert resolved.max_tokens == 100
        assert resolved.timeout_seconds == 30


class TestLocalProvider:
    """Ollama backend over a mocked transport."""

    @staticmethod
    def client(handler):
        return httpx.AsyncClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_generate_with_image(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "llava",
                "response": '{"value": 3}',
                "prompt_eval_count": 10,
                "eval_count": 5,
            })

        provider = LocalProvider(client=self.client(handler), retry_delay_ms=0)
        result = await provider.complete_json("look", Answer, images=[ImageInput(b"abc")])

        assert result.value == 3
        assert seen["path"] == "/api/generate"
        assert seen["payload"]["images"] == [base64.b64encode(b"abc").decode()]
        assert seen["payload"]["stream"] is False
        await provider.close()

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"response": "hi"})]

        provider = LocalProvider(client=self.client(lambda request: responses.pop(0)), retry_delay_ms=0)
        response = await provider.complete("hello")

        assert response.content == "hi"
        assert responses == []

    @pytest.mark.asyncio
    async def test_client_error_is_unavailable(self):
        provider = LocalProvider(
            client=self.client(lambda request: httpx.Response(404, text="model not found")),
            retry_delay_ms=0,
        )
        with pytest.raises(ProviderUnavailableError):
            await provider.complete("hello")

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = LocalProvider(client=self.client(handler), retry_delay_ms=0)

        with pytest.raises(ProviderUnavailableError):
            await provider.complete("hello")
        assert not provider.is_available()

    @pytest.mark.asyncio
    async def test_check_server(self):
        provider = LocalProvider(client=self.client(lambda request: httpx.Response(200, json={"models": []})))
        assert await provider.check_server()


class TestAnthropicProvider:
    """Claude backend with a mocked SDK client."""

    @staticmethod
    def message(text):
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=text)],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=12, output_tokens=4),
            stop_reason="end_turn",
        )

    @pytest.mark.asyncio
    async def test_sends_image_blocks_before_text(self):
        provider = AnthropicProvider(model="claude-test", api_key="k", retry_delay_ms=0)
        provider._client = Mock()
        provider._client.messages.create = AsyncMock(return_value=self.message('{"value": 5}'))

        result = await provider.complete_json("what is this", Answer, images=[ImageInput(b"img", "image/png")])

        assert result.value == 5
        kwargs = provider._client.messages.create.call_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/png"
        assert content[-1] == {"type": "text", "text": "what is this"}

    @pytest.mark.asyncio
    async def test_overloaded_is_transient(self):
        class Overloaded(Exception):
            status_code = 529

        provider = AnthropicProvider(model="claude-test", api_key="k", retry_delay_ms=0, retry_attempts=1)
        provider._client = Mock()
        provider._client.messages.create = AsyncMock(side_effect=[Overloaded("overloaded"), self.message("ok")])

        response = await provider.complete("hi")

        assert response.content == "ok"
        assert response.total_tokens == 16
        assert provider._client.messages.create.await_count == 2


class TestProviderFactory:
    """Backend selection from configuration."""

    def test_ollama_alias(self):
        provider = create_llm_provider(LLMConfig(provider="ollama", model="llava", base_url="http://gpu-box:11434"))

        assert isinstance(provider, LocalProvider)
        assert provider.base_url == "http://gpu-box:11434"
        assert provider.model == "llava"

    def test_anthropic_default(self):
        provider = create_llm_provider(LLMConfig(api_key="secret"))
        assert isinstance(provider, AnthropicProvider)

    def test_overrides(self):
        provider = create_llm_provider(LLMConfig(provider="local"), retry_attempts=5)
        assert provider.retry_attempts == 5

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_llm_provider(LLMConfig(provider="carrier-pigeon"))
