"""
tests/unit/test_providers.py - Tests for perception and generation providers.
"""

import asyncio
import hashlib
import json
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import ValidationError as SchemaError

from gmpflow.core.enums import QualityVerdict
from gmpflow.errors import ErrorCode, InvalidRecord, ProviderUnavailable
from gmpflow.llm import ImageInput, LLMError, ValidationError
from gmpflow.providers import (
    GenerationProvider,
    LLMPerceptionProvider,
    LLMPlanGenerator,
    PerceptionProvider,
    PerceptionResponse,
    PerceptionResult,
    PlanDraft,
    PlanDraftList,
    SimulatedPerceptionProvider,
    StaticPerceptionProvider,
)
from gmpflow.providers.perception import sniff_media_type
from gmpflow.providers.prompts import create_generation_prompt, create_perception_prompt
from gmpflow.scheduling import RuleBasedPlanGenerator


@pytest.fixture
def mock_llm():
    llm = Mock()
    llm.complete_json = AsyncMock()
    return llm


class TestPerceptionResult:
    """Range checks on perception output."""

    def test_valid(self):
        result = PerceptionResult("Ginseng", "root", 15.0, QualityVerdict.PASS)
        assert result.to_dict()["verdict"] == "pass"

    @pytest.mark.parametrize("value", [-1.0, 100.5, float("nan")])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidRecord):
            PerceptionResult("Ginseng", "root", value, QualityVerdict.PASS)


class TestLLMPerceptionProvider:
    """Vision model wrapper."""

    @pytest.mark.asyncio
    async def test_maps_response(self, mock_llm):
        mock_llm.complete_json.return_value = PerceptionResponse(
            material_name="Ginseng",
            detected_form="whole root",
            estimated_moisture_pct=15.0,
            quality_check="pass",
            reasoning="visible surface moisture",
        )
        provider = LLMPerceptionProvider(mock_llm, media_type="image/png")

        result = await provider.analyze(b"photo")

        assert result.estimated_moisture_pct == 15.0
        assert result.verdict is QualityVerdict.PASS
        assert result.rationale == "visible surface moisture"
        kwargs = mock_llm.complete_json.call_args.kwargs
        assert kwargs["images"] == [ImageInput(b"photo", "image/png")]
        assert mock_llm.complete_json.call_args.args[1] is PerceptionResponse

    @pytest.mark.asyncio
    async def test_failed_verdict(self, mock_llm):
        mock_llm.complete_json.return_value = PerceptionResponse(
            material_name="Goji", estimated_moisture_pct=13.0, quality_check="fail"
        )

        result = await LLMPerceptionProvider(mock_llm).analyze(b"photo")

        assert result.verdict is QualityVerdict.FAIL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [LLMError("down"), ValidationError("bad json")])
    async def test_llm_errors_become_unavailable(self, mock_llm, error):
        mock_llm.complete_json.side_effect = error

        with pytest.raises(ProviderUnavailable) as exc:
            await LLMPerceptionProvider(mock_llm).analyze(b"photo")
        assert exc.value.code is ErrorCode.PROVIDER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_empty_image(self, mock_llm):
        with pytest.raises(ProviderUnavailable):
            await LLMPerceptionProvider(mock_llm).analyze(b"")
        mock_llm.complete_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_media_type_from_signature(self, mock_llm):
        mock_llm.complete_json.return_value = PerceptionResponse(
            material_name="Ginseng", estimated_moisture_pct=12.0, quality_check="pass"
        )
        provider = LLMPerceptionProvider(mock_llm)
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8

        await provider.analyze(png)

        assert mock_llm.complete_json.call_args.kwargs["images"] == [ImageInput(png, "image/png")]

    @pytest.mark.parametrize("data,expected", [
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (b"GIF89a...", "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"plain bytes", "image/jpeg"),
    ])
    def test_sniff_media_type(self, data, expected):
        assert sniff_media_type(data) == expected

    def test_satisfies_protocol(self, mock_llm):
        assert isinstance(LLMPerceptionProvider(mock_llm), PerceptionProvider)

    def test_prompt_mentions_moisture(self):
        assert "moisture" in create_perception_prompt().lower()


class TestLLMPlanGenerator:
    """Planner model wrapper."""

    @pytest.mark.asyncio
    async def test_defaults_strategy(self, mock_llm, orders, equipment):
        mock_llm.complete_json.return_value = PlanDraftList(plans=[
            PlanDraft(plan_id="a", name="A"),
            PlanDraft(plan_id="b", name="B", strategy="throughput"),
        ])
        generator = LLMPlanGenerator(mock_llm, horizon_start=datetime(2023, 11, 1, 8))

        drafts = await generator.propose(orders, equipment)

        assert [d.strategy for d in drafts] == ["llm", "throughput"]
        assert mock_llm.complete_json.call_args.args[1] is PlanDraftList

    @pytest.mark.asyncio
    async def test_empty_answer(self, mock_llm, orders, equipment):
        mock_llm.complete_json.return_value = PlanDraftList()

        drafts = await LLMPlanGenerator(mock_llm, datetime(2023, 11, 1, 8)).propose(orders, equipment)

        assert drafts == []

    @pytest.mark.asyncio
    async def test_llm_error_becomes_unavailable(self, mock_llm, orders, equipment):
        mock_llm.complete_json.side_effect = LLMError("Request failed after 3 attempts", recoverable=True)

        with pytest.raises(ProviderUnavailable):
            await LLMPlanGenerator(mock_llm, datetime(2023, 11, 1, 8)).propose(orders, equipment)

    def test_prompt_carries_shop_floor(self, orders, equipment):
        prompt = create_generation_prompt(
            orders, equipment, {}, 1.0, datetime(2023, 11, 1, 8), "drying rule"
        )

        for order in orders:
            assert order.order_id in prompt
        for machine in equipment:
            assert machine.equipment_id in prompt
        assert "2023-11-01T08:00:00" in prompt

    def test_satisfies_protocol(self, mock_llm):
        assert isinstance(LLMPlanGenerator(mock_llm, datetime(2023, 11, 1, 8)), GenerationProvider)
        assert isinstance(RuleBasedPlanGenerator(), GenerationProvider)


class TestSimulatedPerception:
    """Deterministic demo perception."""

    @pytest.mark.asyncio
    async def test_same_image_same_result(self, orders):
        provider, images = SimulatedPerceptionProvider.for_orders(orders)

        first = await provider.analyze(images["ord-101"])
        second = await provider.analyze(images["ord-101"])

        assert first == second

    @pytest.mark.asyncio
    async def test_moisture_offset_from_digest(self, orders):
        provider, images = SimulatedPerceptionProvider.for_orders(orders)

        for order in orders:
            image = images[order.order_id]
            result = await provider.analyze(image)
            wet = hashlib.sha256(image).digest()[0] % 2 == 0
            offset = 3.0 if wet else 0.5
            assert result.estimated_moisture_pct == round(order.material.standard_moisture_pct + offset, 1)
            assert result.material_name == order.material.name

    @pytest.mark.asyncio
    async def test_unknown_image(self):
        with pytest.raises(ProviderUnavailable):
            await SimulatedPerceptionProvider().analyze(b"nothing")


class TestStaticPerception:
    """Canned perception results."""

    @pytest.mark.asyncio
    async def test_returns_and_raises(self):
        ok = PerceptionResult("Ginseng", "root", 12.0, QualityVerdict.PASS)
        provider = StaticPerceptionProvider({
            b"a": ok,
            b"b": ProviderUnavailable("camera", "lens fogged"),
        })

        assert await provider.analyze(b"a") == ok
        with pytest.raises(ProviderUnavailable):
            await provider.analyze(b"b")
        with pytest.raises(ProviderUnavailable):
            await provider.analyze(b"c")
        assert provider.calls == 3

    @pytest.mark.asyncio
    async def test_per_image_delay(self):
        ok = PerceptionResult("Ginseng", "root", 12.0, QualityVerdict.PASS)
        provider = StaticPerceptionProvider({b"slow": ok, b"fast": ok}, delays={b"slow": 0.05})

        finished = []

        async def run(image):
            await provider.analyze(image)
            finished.append(image)

        await asyncio.gather(run(b"slow"), run(b"fast"))

        assert finished == [b"fast", b"slow"]


class TestDraftSchemas:
    """Draft parsing from raw model JSON."""

    def test_plan_draft_from_json(self):
        raw = json.dumps({
            "plans": [{
                "plan_id": "p1",
                "items": [{
                    "order_id": "ord-101",
                    "equipment_id": "eq1",
                    "start": "2023-11-01T08:00:00",
                    "end": "2023-11-01T10:00:00",
                    "process_type": "washing",
                }],
                "kpis": {"total_duration_hours": 2.0},
            }]
        })

        drafts = PlanDraftList.model_validate_json(raw)

        assert drafts.plans[0].items[0].equipment_id == "eq1"
        assert drafts.plans[0].kpis.cleaning_cycles is None

    def test_perception_response_rejects_bad_verdict(self):
        with pytest.raises(SchemaError):
            PerceptionResponse(material_name="x", estimated_moisture_pct=10, quality_check="maybe")
