"""
scheduling/generator.py - Rule-based plan generation.

Deterministic list scheduler implementing the generation provider protocol.
Two planning modes:

- OPTIMIZED: urgent and early-deadline orders first, non-toxic before toxic,
  each stage on the capable machine that can start earliest. A cleaning
  interval is inserted only where a toxic batch is followed by a different
  material.
- GMP_STRICT: toxic orders batched last and a cleaning interval after every
  batch on every machine, trading throughput for isolation margin.

Drying time follows the moisture rule. Orders with no capable machine for
some stage are left out of the draft and named in its description.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from gmpflow.core.enums import EquipmentStatus, ProcessType
from gmpflow.core.models import Equipment, Material, Order, ProductionPlan, ScheduleItem
from gmpflow.core.routing import required_processes
from gmpflow.providers.schemas import KPIDraft, PlanDraft, ScheduleItemDraft
from gmpflow.scheduling.moisture import (
    BASE_STAGE_HOURS,
    DRYING_EXTENSION_FACTOR,
    needs_extended_drying,
    stage_duration,
)
from gmpflow.scheduling.scorer import PlanScorer
from gmpflow.validators.cleaning import DEFAULT_CLEANING_INTERVAL_HOURS

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_START = datetime(2023, 11, 1, 8, 0)


class PlanningMode(Enum):
    OPTIMIZED = "optimized"
    GMP_STRICT = "gmp_strict"


MODE_LABELS = {
    PlanningMode.OPTIMIZED: (
        "Optimized throughput",
        "Maximizes equipment utilization; cleans only after toxic batches.",
    ),
    PlanningMode.GMP_STRICT: (
        "GMP strict compliance",
        "Toxic batches last, full cleaning cycle after every batch on every machine.",
    ),
}


@dataclass
class _MachineState:
    equipment: Equipment
    free_at: datetime
    last_material: Optional[Material] = None


@dataclass
class GeneratedPlan:
    plan: ProductionPlan
    skipped: List[Tuple[str, str]] = field(default_factory=list)


class RuleBasedPlanGenerator:
    """Deterministic GenerationProvider."""

    name = "rule-based"

    def __init__(
        self,
        modes: Sequence[PlanningMode] = (PlanningMode.OPTIMIZED, PlanningMode.GMP_STRICT),
        stage_hours: Optional[Mapping[ProcessType, float]] = None,
        cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
        horizon_start: datetime = DEFAULT_HORIZON_START,
        scorer: Optional[PlanScorer] = None,
    ):
        self.modes = tuple(modes)
        self.stage_hours = dict(stage_hours or BASE_STAGE_HOURS)
        self.cleaning_interval_hours = cleaning_interval_hours
        self.horizon_start = horizon_start
        self.scorer = scorer or PlanScorer(cleaning_interval_hours=cleaning_interval_hours)

    async def propose(self, orders: Sequence[Order], equipment: Sequence[Equipment]) -> List[PlanDraft]:
        drafts = []
        for mode in self.modes:
            generated = self.build_plan(mode, orders, equipment)
            drafts.append(self._to_draft(generated.plan))
        return drafts

    def build_plan(
        self,
        mode: PlanningMode,
        orders: Iterable[Order],
        equipment: Iterable[Equipment],
        start: Optional[datetime] = None,
    ) -> GeneratedPlan:
        origin = start or self.horizon_start
        orders = list(orders)
        machines = {
            e.equipment_id: _MachineState(e, origin)
            for e in sorted(equipment, key=lambda e: e.equipment_id)
            if e.status is not EquipmentStatus.MAINTENANCE
        }

        items: List[ScheduleItem] = []
        skipped: List[Tuple[str, str]] = []
        for order in self._sequence(mode, orders):
            route = required_processes(order.material)
            missing = [
                p.value for p in route
                if not self._capable(machines, p, order)
            ]
            if missing:
                reason = f"no available {'/'.join(missing)} machine for {order.quantity_kg:g} kg"
                skipped.append((order.order_id, reason))
                logger.info(f"{mode.value}: skipping {order.order_id}: {reason}")
                continue
            items.extend(self._place(mode, order, route, machines, origin))

        label, summary = MODE_LABELS[mode]
        description = summary
        if skipped:
            description += " Unscheduled: " + "; ".join(f"{oid} ({why})" for oid, why in skipped)

        plan = ProductionPlan(
            plan_id=f"plan-{mode.value}",
            name=label,
            items=tuple(items),
            description=description,
            source=self.name,
            strategy=mode.value,
        )
        kpis = self.scorer.score(plan, orders)
        return GeneratedPlan(plan=plan.with_kpis(kpis), skipped=skipped)

    @staticmethod
    def _sequence(mode: PlanningMode, orders: List[Order]) -> List[Order]:
        if mode is PlanningMode.GMP_STRICT:
            key = lambda o: (o.is_toxic, not o.is_urgent, o.deadline, o.order_id)
        else:
            key = lambda o: (not o.is_urgent, o.deadline, o.is_toxic, o.order_id)
        return sorted(orders, key=key)

    @staticmethod
    def _capable(machines: Dict[str, _MachineState], process: ProcessType, order: Order) -> List[_MachineState]:
        return [
            m for m in machines.values()
            if m.equipment.process_type is process and m.equipment.capacity_kg >= order.quantity_kg
        ]

    def _needs_cleaning(self, mode: PlanningMode, machine: _MachineState, order: Order) -> bool:
        last = machine.last_material
        if last is None:
            return False
        if mode is PlanningMode.GMP_STRICT:
            return True
        return last.is_toxic and last.material_id != order.material.material_id

    def _place(
        self,
        mode: PlanningMode,
        order: Order,
        route: Tuple[ProcessType, ...],
        machines: Dict[str, _MachineState],
        ready: datetime,
    ) -> List[ScheduleItem]:
        cleaning = timedelta(hours=self.cleaning_interval_hours)
        placed = []
        for process in route:
            best: Optional[Tuple[datetime, str, bool]] = None
            for machine in self._capable(machines, process, order):
                clean = self._needs_cleaning(mode, machine, order)
                earliest = machine.free_at + cleaning if clean else machine.free_at
                candidate = (max(ready, earliest), machine.equipment.equipment_id, clean)
                if best is None or candidate[:2] < best[:2]:
                    best = candidate
            start, equipment_id, cleaned = best
            state = machines[equipment_id]
            end = start + timedelta(hours=stage_duration(process, order, self.stage_hours))

            notes = []
            if cleaned:
                notes.append(f"Cleaning cycle on {equipment_id} before start")
            if process is ProcessType.DRYING and needs_extended_drying(order):
                notes.append(
                    f"Drying extended x{DRYING_EXTENSION_FACTOR:g} "
                    f"(moisture {order.detected_moisture_pct:g}% vs standard "
                    f"{order.material.standard_moisture_pct:g}%)"
                )
            if order.is_toxic:
                notes.append(f"{order.material.toxicity.value} toxicity material")

            placed.append(ScheduleItem(
                order_id=order.order_id,
                equipment_id=equipment_id,
                start=start,
                end=end,
                process_type=process,
                notes="; ".join(notes) or None,
            ))
            state.free_at = end
            state.last_material = order.material
            ready = end
        return placed

    @staticmethod
    def _to_draft(plan: ProductionPlan) -> PlanDraft:
        kpis = plan.kpis
        return PlanDraft(
            plan_id=plan.plan_id,
            name=plan.name,
            description=plan.description,
            strategy=plan.strategy,
            score=plan.score,
            items=[
                ScheduleItemDraft(
                    order_id=i.order_id,
                    equipment_id=i.equipment_id,
                    start=i.start.isoformat(),
                    end=i.end.isoformat(),
                    process_type=i.process_type.value,
                    notes=i.notes,
                )
                for i in plan.items
            ],
            kpis=KPIDraft(
                total_duration_hours=kpis.total_duration_hours,
                cleaning_cycles=kpis.cleaning_cycles,
                equipment_utilization_pct=kpis.equipment_utilization_pct,
            ) if kpis else None,
        )
