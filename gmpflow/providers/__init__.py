"""
gmpflow.providers - Perception and generation providers.
"""

from .schemas import (
    PerceptionResponse,
    ScheduleItemDraft,
    KPIDraft,
    PlanDraft,
    PlanDraftList,
)
from .protocols import PerceptionResult, PerceptionProvider, GenerationProvider
from .perception import LLMPerceptionProvider
from .generation import LLMPlanGenerator
from .simulated import SimulatedPerceptionProvider, StaticPerceptionProvider

__all__ = [
    "PerceptionResponse",
    "ScheduleItemDraft",
    "KPIDraft",
    "PlanDraft",
    "PlanDraftList",
    "PerceptionResult",
    "PerceptionProvider",
    "GenerationProvider",
    "LLMPerceptionProvider",
    "LLMPlanGenerator",
    "SimulatedPerceptionProvider",
    "StaticPerceptionProvider",
]
