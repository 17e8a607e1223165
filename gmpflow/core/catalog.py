"""
core/catalog.py - Reference materials, equipment and demo orders.

Provides the built-in shop floor used by the CLI demo and the tests, and a
JSON loader for site catalogs:

    {
      "materials": [{"material_id": "m1", "name": "Ginseng", ...}],
      "equipment": [{"equipment_id": "eq1", "process_type": "washing", ...}],
      "orders":    [{"order_id": "ord-101", "material": "m1", ...}]
    }

Records that fail construction are excluded and reported, not raised.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from gmpflow.core.enums import (
    EquipmentStatus,
    MaterialCategory,
    OrderPriority,
    ProcessType,
    ToxicityLevel,
)
from gmpflow.core.models import Equipment, Material, Order
from gmpflow.errors import GMPFlowError, InvalidRecord, WorkflowError

logger = logging.getLogger(__name__)


@dataclass
class Catalog:
    """Materials by id, equipment and orders of one shop floor."""

    materials: Dict[str, Material] = field(default_factory=dict)
    equipment: List[Equipment] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    rejected: List[WorkflowError] = field(default_factory=list)

    def material(self, material_id: str) -> Material:
        return self.materials[material_id]

    def equipment_by_id(self) -> Dict[str, Equipment]:
        return {e.equipment_id: e for e in self.equipment}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "materials": [m.to_dict() for m in self.materials.values()],
            "equipment": [e.to_dict() for e in self.equipment],
            "orders": [
                {**o.to_dict(), "material": o.material.material_id} for o in self.orders
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Catalog":
        catalog = cls()

        for record in data.get("materials", []):
            try:
                material = Material.from_dict(record)
            except GMPFlowError as e:
                catalog._reject(e, record)
                continue
            catalog.materials[material.material_id] = material

        for record in data.get("equipment", []):
            try:
                catalog.equipment.append(Equipment.from_dict(record))
            except GMPFlowError as e:
                catalog._reject(e, record)

        for record in data.get("orders", []):
            try:
                catalog.orders.append(Order.from_dict(record, catalog.materials))
            except GMPFlowError as e:
                catalog._reject(e, record)

        if catalog.rejected:
            logger.warning(f"Catalog loaded with {len(catalog.rejected)} rejected records")
        return catalog

    def _reject(self, exc: GMPFlowError, record: Any) -> None:
        ids = record if isinstance(record, Mapping) else {}
        error = WorkflowError.from_exception(
            exc,
            order_id=ids.get("order_id"),
            equipment_id=ids.get("equipment_id"),
        )
        logger.warning(f"Rejected catalog record: {error.message}")
        self.rejected.append(error)


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load a catalog from a JSON file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidRecord(f"Catalog {path} is not valid JSON: {e}", path=str(path))
    logger.info(f"Loaded catalog from {path}")
    return Catalog.from_dict(data)


def default_materials() -> Dict[str, Material]:
    materials = [
        Material("m1", "Ginseng", ToxicityLevel.NONE, MaterialCategory.ROOT, 12.0),
        Material("m2", "Aconite Root (Fuzi)", ToxicityLevel.HIGH, MaterialCategory.ROOT, 10.0),
        Material("m3", "Licorice Root", ToxicityLevel.NONE, MaterialCategory.ROOT, 11.0),
        Material("m4", "Goji Berry", ToxicityLevel.NONE, MaterialCategory.FRUIT, 13.0),
        Material("m5", "Pinellia Tuber", ToxicityLevel.LOW, MaterialCategory.TUBER, 14.0),
    ]
    return {m.material_id: m for m in materials}


def default_equipment() -> List[Equipment]:
    return [
        Equipment("eq1", "Washer A1", ProcessType.WASHING, 500.0, EquipmentStatus.IDLE),
        Equipment("eq2", "Steamer B1", ProcessType.STEAMING, 300.0, EquipmentStatus.IDLE),
        Equipment("eq3", "Dryer C1", ProcessType.DRYING, 1000.0, EquipmentStatus.RUNNING),
        Equipment("eq4", "Cutter D1", ProcessType.CUTTING, 200.0, EquipmentStatus.IDLE),
        Equipment("eq5", "Packer E1", ProcessType.PACKAGING, 1000.0, EquipmentStatus.IDLE),
    ]


def default_orders(materials: Optional[Dict[str, Material]] = None) -> List[Order]:
    m = materials or default_materials()
    return [
        Order("ord-101", m["m1"], 200.0, date(2023, 11, 1), OrderPriority.URGENT),
        Order("ord-102", m["m2"], 100.0, date(2023, 11, 2), OrderPriority.NORMAL),
        Order("ord-103", m["m3"], 180.0, date(2023, 11, 3), OrderPriority.NORMAL),
        Order("ord-104", m["m4"], 150.0, date(2023, 11, 1), OrderPriority.URGENT),
    ]


def default_catalog() -> Catalog:
    """The built-in demo shop floor."""
    materials = default_materials()
    return Catalog(
        materials=materials,
        equipment=default_equipment(),
        orders=default_orders(materials),
    )
