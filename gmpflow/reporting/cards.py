"""
reporting/cards.py - Per-order production cards.

A production card is the shop-floor instruction for one order: material,
quantity, moisture check, toxicity warning and the ordered stage steps with
machine and time window. Data only; rendering is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gmpflow.core.enums import OrderPriority, ProcessType, ToxicityLevel, VisualCheckStatus
from gmpflow.core.models import Equipment, Order, ProductionPlan
from gmpflow.scheduling.moisture import needs_extended_drying


@dataclass(frozen=True)
class StageStep:
    process_type: ProcessType
    equipment_id: str
    equipment_name: str
    start: datetime
    end: datetime
    duration_hours: float
    notes: Optional[str] = None
    extended_drying: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "process_type": self.process_type.value,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment_name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_hours": self.duration_hours,
            "notes": self.notes,
            "extended_drying": self.extended_drying,
        }


@dataclass(frozen=True)
class ProductionCard:
    order_id: str
    material_id: str
    material_name: str
    toxicity: ToxicityLevel
    quantity_kg: float
    deadline: date
    priority: OrderPriority
    standard_moisture_pct: float
    detected_moisture_pct: Optional[float]
    visual_check: VisualCheckStatus
    steps: Tuple[StageStep, ...]
    toxicity_warning: Optional[str] = None

    @property
    def start(self) -> Optional[datetime]:
        return self.steps[0].start if self.steps else None

    @property
    def finish(self) -> Optional[datetime]:
        return max(s.end for s in self.steps) if self.steps else None

    @property
    def on_time(self) -> bool:
        return self.finish is not None and self.finish.date() <= self.deadline

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "material_id": self.material_id,
            "material_name": self.material_name,
            "toxicity": self.toxicity.value,
            "quantity_kg": self.quantity_kg,
            "deadline": self.deadline.isoformat(),
            "priority": self.priority.value,
            "standard_moisture_pct": self.standard_moisture_pct,
            "detected_moisture_pct": self.detected_moisture_pct,
            "visual_check": self.visual_check.value,
            "toxicity_warning": self.toxicity_warning,
            "on_time": self.on_time,
            "steps": [s.to_dict() for s in self.steps],
        }


def build_production_card(order: Order, plan: ProductionPlan, equipment: Dict[str, Equipment]) -> ProductionCard:
    extended = needs_extended_drying(order)
    steps = []
    for item in plan.items_for_order(order.order_id):
        machine = equipment.get(item.equipment_id)
        steps.append(StageStep(
            process_type=item.process_type,
            equipment_id=item.equipment_id,
            equipment_name=machine.name if machine else item.equipment_id,
            start=item.start,
            end=item.end,
            duration_hours=round(item.duration_hours, 4),
            notes=item.notes,
            extended_drying=extended and item.process_type is ProcessType.DRYING,
        ))

    warning = None
    if order.is_toxic:
        warning = (
            f"{order.material.toxicity.value.upper()} toxicity material: "
            "full cleaning cycle required on every machine after this order"
        )

    return ProductionCard(
        order_id=order.order_id,
        material_id=order.material.material_id,
        material_name=order.material.name,
        toxicity=order.material.toxicity,
        quantity_kg=order.quantity_kg,
        deadline=order.deadline,
        priority=order.priority,
        standard_moisture_pct=order.material.standard_moisture_pct,
        detected_moisture_pct=order.detected_moisture_pct,
        visual_check=order.visual_check,
        steps=tuple(steps),
        toxicity_warning=warning,
    )


def build_production_cards(
    plan: ProductionPlan,
    orders: Iterable[Order],
    equipment: Iterable[Equipment],
) -> List[ProductionCard]:
    """One card per order appearing in the plan, ordered by order id."""
    machines = {e.equipment_id: e for e in equipment}
    in_plan = set(plan.order_ids)
    return [
        build_production_card(order, plan, machines)
        for order in sorted(orders, key=lambda o: o.order_id)
        if order.order_id in in_plan
    ]
