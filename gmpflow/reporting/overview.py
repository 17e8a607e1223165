"""
reporting/overview.py - Shop floor overview counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple

from gmpflow.core.enums import EquipmentStatus, OrderStatus
from gmpflow.core.models import Equipment, Order


@dataclass(frozen=True)
class ShopOverview:
    pending_orders: int = 0
    urgent_orders: int = 0
    toxic_orders: int = 0
    pending_quantity_kg: float = 0.0
    total_equipment: int = 0
    active_equipment: int = 0
    maintenance_equipment: Tuple[str, ...] = ()
    equipment_by_status: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending_orders": self.pending_orders,
            "urgent_orders": self.urgent_orders,
            "toxic_orders": self.toxic_orders,
            "pending_quantity_kg": self.pending_quantity_kg,
            "total_equipment": self.total_equipment,
            "active_equipment": self.active_equipment,
            "maintenance_equipment": list(self.maintenance_equipment),
            "equipment_by_status": dict(self.equipment_by_status),
        }


def shop_overview(orders: Iterable[Order], equipment: Iterable[Equipment]) -> ShopOverview:
    """Pending orders and non-idle machines, with toxic/urgent breakdown."""
    orders = list(orders)
    equipment = list(equipment)
    pending = [o for o in orders if o.status is OrderStatus.PENDING]

    by_status = {s.value: 0 for s in EquipmentStatus}
    for machine in equipment:
        by_status[machine.status.value] += 1

    return ShopOverview(
        pending_orders=len(pending),
        urgent_orders=sum(1 for o in pending if o.is_urgent),
        toxic_orders=sum(1 for o in pending if o.is_toxic),
        pending_quantity_kg=sum(o.quantity_kg for o in pending),
        total_equipment=len(equipment),
        active_equipment=sum(1 for e in equipment if e.is_active),
        maintenance_equipment=tuple(sorted(
            e.equipment_id for e in equipment if e.status is EquipmentStatus.MAINTENANCE
        )),
        equipment_by_status=by_status,
    )
