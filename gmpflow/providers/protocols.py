"""
providers/protocols.py - Perception and generation provider protocols.

Both may raise ProviderUnavailable. The workflow bounds every call with a
timeout and treats a timeout as a provider failure.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from gmpflow.core.enums import QualityVerdict
from gmpflow.core.models import Equipment, Order
from gmpflow.errors import InvalidRecord
from gmpflow.providers.schemas import PlanDraft


@dataclass(frozen=True)
class PerceptionResult:
    material_name: str
    detected_form: str
    estimated_moisture_pct: float
    verdict: QualityVerdict
    rationale: str = ""

    def __post_init__(self):
        value = self.estimated_moisture_pct
        if value is None or math.isnan(value) or not 0.0 <= value <= 100.0:
            raise InvalidRecord(
                f"Estimated moisture must be within 0..100, got {value}",
                field="estimated_moisture_pct",
                value=value,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "material_name": self.material_name,
            "detected_form": self.detected_form,
            "estimated_moisture_pct": self.estimated_moisture_pct,
            "verdict": self.verdict.value,
            "rationale": self.rationale,
        }


@runtime_checkable
class PerceptionProvider(Protocol):
    """Image -> material identification, moisture and quality verdict."""

    async def analyze(self, image: bytes) -> PerceptionResult:
        ...


@runtime_checkable
class GenerationProvider(Protocol):
    """Orders and equipment -> zero or more candidate drafts."""

    async def propose(self, orders: Sequence[Order], equipment: Sequence[Equipment]) -> List[PlanDraft]:
        ...
