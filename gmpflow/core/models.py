"""
core/models.py - Shop floor domain model.

Value types shared by the validator, the scorer, the generators and the
workflow. Plans reference orders and equipment by id only. Construction
invariants (positive quantity, positive capacity, end after start) are
checked in __post_init__, so every path that builds an entity, including
decoding, re-checks them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar

from gmpflow.core.enums import (
    EquipmentStatus,
    MaterialCategory,
    OrderPriority,
    OrderStatus,
    ProcessType,
    QualityVerdict,
    ToxicityLevel,
    VisualCheckStatus,
)
from gmpflow.errors import InvalidCapacity, InvalidInterval, InvalidQuantity, InvalidRecord

E = TypeVar("E", bound=Enum)


# =============================================================================
# RECORD HELPERS
# =============================================================================

def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if not isinstance(data, Mapping):
        raise InvalidRecord(f"{kind} record must be an object, got {type(data).__name__}", kind=kind)
    if key not in data or data[key] is None:
        raise InvalidRecord(f"{kind} record is missing '{key}'", field=key, kind=kind)
    return data[key]


def _enum(enum_cls: Type[E], value: Any, key: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidRecord(
            f"'{value}' is not a valid {key} (expected one of: {allowed})",
            field=key,
            value=value,
        )


def naive_utc(value: datetime) -> datetime:
    """Aware timestamps are converted to UTC and stripped of tzinfo."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any, key: str = "datetime") -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC; a trailing 'Z' means UTC."""
    if isinstance(value, datetime):
        return naive_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return naive_utc(datetime.fromisoformat(text))
    except ValueError:
        raise InvalidRecord(f"'{value}' is not an ISO-8601 timestamp", field=key, value=value)


def _number(value: Any, key: str, kind: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRecord(f"{kind} {key} is not a number: {value!r}", field=key, value=value, kind=kind)


def parse_date(value: Any, key: str = "deadline") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise InvalidRecord(f"'{value}' is not an ISO-8601 date", field=key, value=value)


def _positive(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(number) and number > 0


# =============================================================================
# MATERIAL / EQUIPMENT
# =============================================================================

@dataclass(frozen=True)
class Material:
    """Immutable reference data for a raw material."""

    material_id: str
    name: str
    toxicity: ToxicityLevel = ToxicityLevel.NONE
    category: MaterialCategory = MaterialCategory.OTHER
    standard_moisture_pct: float = 12.0

    @property
    def is_toxic(self) -> bool:
        return self.toxicity.is_toxic

    def to_dict(self) -> Dict[str, Any]:
        return {
            "material_id": self.material_id,
            "name": self.name,
            "toxicity": self.toxicity.value,
            "category": self.category.value,
            "standard_moisture_pct": self.standard_moisture_pct,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Material":
        return cls(
            material_id=str(_require(data, "material_id", "material")),
            name=str(_require(data, "name", "material")),
            toxicity=_enum(ToxicityLevel, data.get("toxicity", "none"), "toxicity"),
            category=_enum(MaterialCategory, data.get("category", "other"), "category"),
            standard_moisture_pct=_number(
                data.get("standard_moisture_pct", 12.0), "standard_moisture_pct", "material"
            ),
        )


@dataclass(frozen=True)
class Equipment:
    """A machine on the shop floor. Status changes produce a copy."""

    equipment_id: str
    name: str
    process_type: ProcessType
    capacity_kg: float
    status: EquipmentStatus = EquipmentStatus.IDLE

    def __post_init__(self):
        if not _positive(self.capacity_kg):
            raise InvalidCapacity(
                f"Equipment {self.equipment_id} capacity must be positive, got {self.capacity_kg}",
                equipment_id=self.equipment_id,
                capacity_kg=self.capacity_kg,
            )

    @property
    def is_available(self) -> bool:
        return self.status is not EquipmentStatus.MAINTENANCE

    @property
    def is_active(self) -> bool:
        return self.status is not EquipmentStatus.IDLE

    def with_status(self, status: EquipmentStatus) -> "Equipment":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equipment_id": self.equipment_id,
            "name": self.name,
            "process_type": self.process_type.value,
            "capacity_kg": self.capacity_kg,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Equipment":
        return cls(
            equipment_id=str(_require(data, "equipment_id", "equipment")),
            name=str(data.get("name", data["equipment_id"])),
            process_type=_enum(ProcessType, _require(data, "process_type", "equipment"), "process_type"),
            capacity_kg=_number(_require(data, "capacity_kg", "equipment"), "capacity_kg", "equipment"),
            status=_enum(EquipmentStatus, data.get("status", "idle"), "status"),
        )


# =============================================================================
# ORDER
# =============================================================================

@dataclass(frozen=True)
class Order:
    """
    A request to process a quantity of one material by a deadline.

    Perception enriches an order through with_perception(); the original
    instance is never mutated.
    """

    order_id: str
    material: Material
    quantity_kg: float
    deadline: date
    priority: OrderPriority = OrderPriority.NORMAL
    status: OrderStatus = OrderStatus.PENDING
    detected_moisture_pct: Optional[float] = None
    visual_check: VisualCheckStatus = VisualCheckStatus.PENDING
    perception_note: Optional[str] = None

    def __post_init__(self):
        if not _positive(self.quantity_kg):
            raise InvalidQuantity(
                f"Order {self.order_id} quantity must be positive, got {self.quantity_kg}",
                order_id=self.order_id,
                quantity_kg=self.quantity_kg,
            )

    @property
    def is_toxic(self) -> bool:
        return self.material.is_toxic

    @property
    def is_urgent(self) -> bool:
        return self.priority is OrderPriority.URGENT

    @property
    def effective_moisture_pct(self) -> float:
        """Detected moisture, or the material standard when not perceived."""
        if self.detected_moisture_pct is None:
            return self.material.standard_moisture_pct
        return self.detected_moisture_pct

    def with_perception(
        self,
        moisture_pct: Optional[float],
        verdict: Optional[QualityVerdict],
        note: Optional[str] = None,
    ) -> "Order":
        """Return a copy carrying a perception result; no verdict means unresolved."""
        if verdict is None:
            check = VisualCheckStatus.UNRESOLVED
        elif verdict is QualityVerdict.PASS:
            check = VisualCheckStatus.PASSED
        else:
            check = VisualCheckStatus.FAILED
        return replace(
            self,
            detected_moisture_pct=moisture_pct,
            visual_check=check,
            perception_note=note,
        )

    def with_status(self, status: OrderStatus) -> "Order":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "material": self.material.to_dict(),
            "quantity_kg": self.quantity_kg,
            "deadline": self.deadline.isoformat(),
            "priority": self.priority.value,
            "status": self.status.value,
            "detected_moisture_pct": self.detected_moisture_pct,
            "visual_check": self.visual_check.value,
            "perception_note": self.perception_note,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        materials: Optional[Mapping[str, Material]] = None,
    ) -> "Order":
        """
        Build an order from a record.

        The material may be an embedded record or a material id resolved
        against `materials`.
        """
        order_id = str(_require(data, "order_id", "order"))
        raw_material = _require(data, "material", "order")
        if isinstance(raw_material, Material):
            material = raw_material
        elif isinstance(raw_material, Mapping):
            material = Material.from_dict(raw_material)
        else:
            if not materials or str(raw_material) not in materials:
                raise InvalidRecord(
                    f"Order {order_id} references unknown material '{raw_material}'",
                    order_id=order_id,
                    field="material",
                )
            material = materials[str(raw_material)]

        moisture = data.get("detected_moisture_pct")
        return cls(
            order_id=order_id,
            material=material,
            quantity_kg=_as_float(_require(data, "quantity_kg", "order"), "quantity_kg", order_id),
            deadline=parse_date(_require(data, "deadline", "order")),
            priority=_enum(OrderPriority, data.get("priority", "normal"), "priority"),
            status=_enum(OrderStatus, data.get("status", "pending"), "status"),
            detected_moisture_pct=(
                _number(moisture, "detected_moisture_pct", "order") if moisture is not None else None
            ),
            visual_check=_enum(VisualCheckStatus, data.get("visual_check", "pending"), "visual_check"),
            perception_note=data.get("perception_note"),
        )


def _as_float(value: Any, key: str, order_id: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidQuantity(
            f"Order {order_id} {key} is not a number: {value!r}",
            order_id=order_id,
            quantity_kg=value,
        )


# =============================================================================
# SCHEDULE
# =============================================================================

@dataclass(frozen=True)
class ScheduleItem:
    """One stage of one order on one machine."""

    order_id: str
    equipment_id: str
    start: datetime
    end: datetime
    process_type: ProcessType
    notes: Optional[str] = None

    def __post_init__(self):
        if self.end <= self.start:
            raise InvalidInterval(
                f"Item for order {self.order_id} on {self.equipment_id} ends at or before it starts",
                order_id=self.order_id,
                equipment_id=self.equipment_id,
                start=self.start.isoformat(),
                end=self.end.isoformat(),
            )

    @property
    def duration_hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600.0

    def overlaps(self, other: "ScheduleItem") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "equipment_id": self.equipment_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "process_type": self.process_type.value,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScheduleItem":
        return cls(
            order_id=str(_require(data, "order_id", "schedule item")),
            equipment_id=str(_require(data, "equipment_id", "schedule item")),
            start=parse_datetime(_require(data, "start", "schedule item"), "start"),
            end=parse_datetime(_require(data, "end", "schedule item"), "end"),
            process_type=_enum(ProcessType, _require(data, "process_type", "schedule item"), "process_type"),
            notes=data.get("notes"),
        )


def item_sort_key(item: ScheduleItem) -> Tuple[datetime, str, str, int]:
    """Canonical item ordering: start, equipment, order, stage."""
    stages = list(ProcessType)
    return (item.start, item.equipment_id, item.order_id, stages.index(item.process_type))


def sort_items(items: Iterable[ScheduleItem]) -> Tuple[ScheduleItem, ...]:
    return tuple(sorted(items, key=item_sort_key))


@dataclass(frozen=True)
class PlanKPIs:
    """Plan metrics as computed by the scorer."""

    total_duration_hours: float = 0.0
    cleaning_cycles: int = 0
    equipment_utilization_pct: float = 0.0
    deadline_adherence_pct: float = 100.0
    composite_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_duration_hours": self.total_duration_hours,
            "cleaning_cycles": self.cleaning_cycles,
            "equipment_utilization_pct": self.equipment_utilization_pct,
            "deadline_adherence_pct": self.deadline_adherence_pct,
            "composite_score": self.composite_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlanKPIs":
        def metric(key: str, default: float) -> float:
            return _number(data.get(key, default), key, "kpis")

        return cls(
            total_duration_hours=metric("total_duration_hours", 0.0),
            cleaning_cycles=int(metric("cleaning_cycles", 0)),
            equipment_utilization_pct=metric("equipment_utilization_pct", 0.0),
            deadline_adherence_pct=metric("deadline_adherence_pct", 100.0),
            composite_score=metric("composite_score", 0.0),
        )


@dataclass(frozen=True)
class ProductionPlan:
    """An immutable candidate schedule. Items are kept in canonical order."""

    plan_id: str
    name: str
    items: Tuple[ScheduleItem, ...] = field(default_factory=tuple)
    description: str = ""
    score: float = 0.0
    kpis: Optional[PlanKPIs] = None
    source: str = ""
    strategy: str = ""

    def __post_init__(self):
        object.__setattr__(self, "items", sort_items(self.items))

    @property
    def order_ids(self) -> List[str]:
        return sorted({item.order_id for item in self.items})

    @property
    def equipment_ids(self) -> List[str]:
        return sorted({item.equipment_id for item in self.items})

    def items_for_order(self, order_id: str) -> List[ScheduleItem]:
        return sorted(
            (i for i in self.items if i.order_id == order_id),
            key=lambda i: (i.start, i.end),
        )

    def items_for_equipment(self, equipment_id: str) -> List[ScheduleItem]:
        return sorted(
            (i for i in self.items if i.equipment_id == equipment_id),
            key=lambda i: (i.start, i.end),
        )

    def with_kpis(self, kpis: PlanKPIs) -> "ProductionPlan":
        return replace(self, kpis=kpis, score=kpis.composite_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "name": self.name,
            "description": self.description,
            "score": self.score,
            "items": [item.to_dict() for item in self.items],
            "kpis": self.kpis.to_dict() if self.kpis else None,
            "source": self.source,
            "strategy": self.strategy,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductionPlan":
        kpis = data.get("kpis")
        return cls(
            plan_id=str(_require(data, "plan_id", "plan")),
            name=str(data.get("name", data["plan_id"])),
            description=str(data.get("description", "")),
            score=_number(data.get("score", 0.0), "score", "plan"),
            items=tuple(ScheduleItem.from_dict(i) for i in data.get("items", [])),
            kpis=PlanKPIs.from_dict(kpis) if kpis else None,
            source=str(data.get("source", "")),
            strategy=str(data.get("strategy", "")),
        )
