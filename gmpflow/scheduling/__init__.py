"""
gmpflow.scheduling - Stage durations, plan scoring and rule-based generation.
"""

from .moisture import (
    MOISTURE_DELTA_THRESHOLD,
    DRYING_EXTENSION_FACTOR,
    BASE_STAGE_HOURS,
    adjust_drying_duration,
    needs_extended_drying,
    stage_duration,
)
from .scorer import ScoringWeights, PlanScorer, score_plan, rank
from .generator import (
    DEFAULT_HORIZON_START,
    PlanningMode,
    GeneratedPlan,
    RuleBasedPlanGenerator,
)

__all__ = [
    "MOISTURE_DELTA_THRESHOLD",
    "DRYING_EXTENSION_FACTOR",
    "BASE_STAGE_HOURS",
    "adjust_drying_duration",
    "needs_extended_drying",
    "stage_duration",
    "ScoringWeights",
    "PlanScorer",
    "score_plan",
    "rank",
    "DEFAULT_HORIZON_START",
    "PlanningMode",
    "GeneratedPlan",
    "RuleBasedPlanGenerator",
]
