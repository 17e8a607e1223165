"""
validators/cleaning.py - Toxic changeover detection.

A changeover happens when, on one machine, an item for a toxic material is
immediately followed by an item for a different material. It is compliant
when the idle time between the two is at least the cleaning interval.
Shared by the toxicity rule and the plan scorer so both count cycles the
same way.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

from gmpflow.core.models import Order, ScheduleItem

DEFAULT_CLEANING_INTERVAL_HOURS = 1.0


@dataclass(frozen=True)
class Changeover:
    equipment_id: str
    previous: ScheduleItem
    following: ScheduleItem
    gap_hours: float
    compliant: bool


def find_changeovers(
    items: Iterable[ScheduleItem],
    orders: Mapping[str, Order],
    cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
) -> List[Changeover]:
    """Toxic -> different material transitions per machine, in time order."""
    per_equipment: Dict[str, List[ScheduleItem]] = {}
    for item in items:
        if item.order_id in orders:
            per_equipment.setdefault(item.equipment_id, []).append(item)

    changeovers = []
    for equipment_id in sorted(per_equipment):
        sequence = sorted(per_equipment[equipment_id], key=lambda i: (i.start, i.end, i.order_id))
        for previous, following in zip(sequence, sequence[1:]):
            prev_material = orders[previous.order_id].material
            next_material = orders[following.order_id].material
            if not prev_material.is_toxic:
                continue
            if prev_material.material_id == next_material.material_id:
                continue
            gap = (following.start - previous.end).total_seconds() / 3600.0
            changeovers.append(Changeover(
                equipment_id=equipment_id,
                previous=previous,
                following=following,
                gap_hours=gap,
                compliant=gap >= cleaning_interval_hours,
            ))
    return changeovers


def count_cleaning_cycles(
    items: Iterable[ScheduleItem],
    orders: Mapping[str, Order],
    cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
) -> int:
    return len(find_changeovers(items, orders, cleaning_interval_hours))
