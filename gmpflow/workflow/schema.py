"""
workflow/schema.py - Results returned by workflow operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from gmpflow.core.enums import VisualCheckStatus
from gmpflow.core.models import PlanKPIs, ProductionPlan, ScheduleItem
from gmpflow.errors import WorkflowError
from gmpflow.providers.protocols import PerceptionResult
from gmpflow.reporting.cards import ProductionCard
from gmpflow.validators.taxonomy import ValidationFinding, ValidationReport


@dataclass(frozen=True)
class OrderPerception:
    """Perception outcome for one order."""

    order_id: str
    status: VisualCheckStatus
    result: Optional[PerceptionResult] = None
    error: Optional[WorkflowError] = None
    extended_drying: bool = False

    @property
    def failed(self) -> bool:
        return self.status is VisualCheckStatus.UNRESOLVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "extended_drying": self.extended_drying,
        }


@dataclass(frozen=True)
class PerceptionSummary:
    outcomes: Tuple[OrderPerception, ...] = ()

    @property
    def failures(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def errors(self) -> List[WorkflowError]:
        return [o.error for o in self.outcomes if o.error is not None]

    def outcome_for(self, order_id: str) -> Optional[OrderPerception]:
        for outcome in self.outcomes:
            if outcome.order_id == order_id:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failures": self.failures,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class CandidatePlan:
    """A draft that passed core validation, with core-computed KPIs."""

    plan: ProductionPlan
    report: ValidationReport
    claimed_kpis: Optional[Dict[str, Any]] = None
    kpi_discrepancies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    generation_round: int = 1

    @property
    def plan_id(self) -> str:
        return self.plan.plan_id

    @property
    def kpis(self) -> PlanKPIs:
        return self.plan.kpis or PlanKPIs()

    @property
    def trusted(self) -> bool:
        """False when the provider's own KPI claims disagree with the core."""
        return not self.kpi_discrepancies

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "warnings": [f.to_dict() for f in self.report.warnings],
            "claimed_kpis": self.claimed_kpis,
            "kpi_discrepancies": self.kpi_discrepancies,
            "trusted": self.trusted,
            "generation_round": self.generation_round,
        }


@dataclass(frozen=True)
class RejectedCandidate:
    """A draft the core refused, with the reason."""

    name: str
    reason: str
    draft_id: Optional[str] = None
    findings: Tuple[ValidationFinding, ...] = ()
    error: Optional[WorkflowError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "draft_id": self.draft_id,
            "name": self.name,
            "reason": self.reason,
            "findings": [f.to_dict() for f in self.findings],
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class GenerationOutcome:
    """
    Result of one generation round.

    `candidates` holds every valid candidate of the session, best first;
    `new_candidates` the ids added by this round.
    """

    candidates: Tuple[CandidatePlan, ...] = ()
    new_candidates: Tuple[str, ...] = ()
    rejected: Tuple[RejectedCandidate, ...] = ()
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def best(self) -> Optional[CandidatePlan]:
        return self.candidates[0] if self.candidates else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "candidates": [c.to_dict() for c in self.candidates],
            "new_candidates": list(self.new_candidates),
            "rejected": [r.to_dict() for r in self.rejected],
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class PlanExport:
    """Read-only production instruction for a confirmed plan."""

    session_id: str
    plan_id: str
    name: str
    strategy: str
    score: float
    kpis: PlanKPIs
    items: Tuple[ScheduleItem, ...]
    cards: Tuple[ProductionCard, ...]
    warnings: Tuple[ValidationFinding, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "plan_id": self.plan_id,
            "name": self.name,
            "strategy": self.strategy,
            "score": self.score,
            "kpis": self.kpis.to_dict(),
            "items": [i.to_dict() for i in self.items],
            "cards": [c.to_dict() for c in self.cards],
            "warnings": [w.to_dict() for w in self.warnings],
        }
