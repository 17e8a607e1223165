"""
scheduling/scorer.py - Plan KPIs and composite score.

Scores are computed from the canonical item order, so the same set of
items always scores the same whatever order they arrive in.

    composite = w_util * utilization
              + w_clean * 100 / (1 + cleaning_cycles)
              + w_deadline * deadline_adherence
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from gmpflow.core.models import Order, PlanKPIs, ProductionPlan, sort_items
from gmpflow.errors import InvalidRecord
from gmpflow.validators.cleaning import DEFAULT_CLEANING_INTERVAL_HOURS, count_cleaning_cycles

logger = logging.getLogger(__name__)

PRECISION = 4


@dataclass(frozen=True)
class ScoringWeights:
    utilization: float = 0.5
    cleaning: float = 0.3
    deadline: float = 0.2

    def __post_init__(self):
        total = self.utilization + self.cleaning + self.deadline
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1, got {total}")
        if min(self.utilization, self.cleaning, self.deadline) < 0:
            raise ValueError("Scoring weights must not be negative")


class PlanScorer:
    """Computes PlanKPIs for a plan."""

    def __init__(
        self,
        weights: Optional[ScoringWeights] = None,
        cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
    ):
        self.weights = weights or ScoringWeights()
        self.cleaning_interval_hours = cleaning_interval_hours

    def score(self, plan: ProductionPlan, orders: Iterable[Order]) -> PlanKPIs:
        """
        Compute KPIs for a plan against the orders it schedules.

        Plans carry order ids only, so toxicity and deadlines come from
        `orders`. Every order the plan references must be present.
        """
        items = sort_items(plan.items)
        by_id: Dict[str, Order] = {o.order_id: o for o in orders}
        missing = [oid for oid in plan.order_ids if oid not in by_id]
        if missing:
            raise InvalidRecord(
                f"Cannot score plan {plan.plan_id}: unknown order(s) " + ", ".join(missing),
                plan_id=plan.plan_id,
                order_ids=missing,
            )

        if not items:
            total_hours = 0.0
            utilization = 0.0
        else:
            span = max(i.end for i in items) - min(i.start for i in items)
            total_hours = span.total_seconds() / 3600.0
            busy = sum(i.duration_hours for i in items)
            machines = len({i.equipment_id for i in items})
            utilization = min(100.0, busy / (machines * total_hours) * 100.0)

        cycles = count_cleaning_cycles(items, by_id, self.cleaning_interval_hours)
        adherence = self._deadline_adherence(plan, by_id)
        cleaning_score = 100.0 / (1 + cycles)

        composite = (
            self.weights.utilization * utilization
            + self.weights.cleaning * cleaning_score
            + self.weights.deadline * adherence
        )
        return PlanKPIs(
            total_duration_hours=round(total_hours, PRECISION),
            cleaning_cycles=cycles,
            equipment_utilization_pct=round(utilization, PRECISION),
            deadline_adherence_pct=round(adherence, PRECISION),
            composite_score=round(composite, PRECISION),
        )

    @staticmethod
    def _deadline_adherence(plan: ProductionPlan, orders: Dict[str, Order]) -> float:
        if not orders:
            return 100.0
        on_time = 0
        for order_id, order in orders.items():
            items = plan.items_for_order(order_id)
            if not items:
                continue
            finish = max(i.end for i in items)
            if finish.date() <= order.deadline:
                on_time += 1
        return on_time / len(orders) * 100.0


def score_plan(
    plan: ProductionPlan,
    orders: Iterable[Order],
    weights: Optional[ScoringWeights] = None,
    cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
) -> PlanKPIs:
    return PlanScorer(weights, cleaning_interval_hours).score(plan, orders)


def rank(plans: Sequence[ProductionPlan]) -> List[ProductionPlan]:
    """Best first: composite score descending, then plan id."""
    return sorted(plans, key=lambda p: (-(p.kpis.composite_score if p.kpis else p.score), p.plan_id))
