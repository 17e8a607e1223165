"""
providers/simulated.py - Deterministic stand-in providers.

SimulatedPerceptionProvider replaces a camera + vision model on the demo
floor: each order gets a synthetic "photo" whose digest decides whether the
material reads wet (standard + 3 points) or near standard. The same photo
always yields the same result.

StaticPerceptionProvider returns canned results per image, optionally after
a delay (global or per image), for tests and replays.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from gmpflow.core.enums import QualityVerdict
from gmpflow.core.models import Material, Order
from gmpflow.errors import ProviderUnavailable
from gmpflow.providers.protocols import PerceptionResult

WET_OFFSET_PCT = 3.0
DRY_OFFSET_PCT = 0.5


class SimulatedPerceptionProvider:
    name = "simulated-perception"

    def __init__(self, materials_by_image: Optional[Mapping[bytes, Material]] = None):
        self._materials: Dict[bytes, Material] = dict(materials_by_image or {})

    @classmethod
    def for_orders(cls, orders: Iterable[Order]) -> Tuple["SimulatedPerceptionProvider", Dict[str, bytes]]:
        """Provider plus one synthetic image per order id."""
        images = {}
        materials = {}
        for order in orders:
            image = f"sample:{order.order_id}:{order.material.material_id}".encode()
            images[order.order_id] = image
            materials[image] = order.material
        return cls(materials), images

    async def analyze(self, image: bytes) -> PerceptionResult:
        material = self._materials.get(image)
        if material is None:
            raise ProviderUnavailable(self.name, "Image not recognized")

        wet = hashlib.sha256(image).digest()[0] % 2 == 0
        offset = WET_OFFSET_PCT if wet else DRY_OFFSET_PCT
        moisture = round(material.standard_moisture_pct + offset, 1)
        return PerceptionResult(
            material_name=material.name,
            detected_form="raw",
            estimated_moisture_pct=moisture,
            verdict=QualityVerdict.PASS,
            rationale=(
                f"Surface moisture above standard by {offset:g} points" if wet
                else "Moisture close to standard"
            ),
        )


class StaticPerceptionProvider:
    name = "static-perception"

    def __init__(
        self,
        results: Mapping[bytes, Union[PerceptionResult, Exception]],
        delay_seconds: float = 0.0,
        delays: Optional[Mapping[bytes, float]] = None,
    ):
        self.results = dict(results)
        self.delay_seconds = delay_seconds
        self.delays = dict(delays or {})
        self.calls = 0

    async def analyze(self, image: bytes) -> PerceptionResult:
        self.calls += 1
        delay = self.delays.get(image, self.delay_seconds)
        if delay:
            await asyncio.sleep(delay)
        result = self.results.get(image)
        if result is None:
            raise ProviderUnavailable(self.name, "No canned result for image")
        if isinstance(result, Exception):
            raise result
        return result
