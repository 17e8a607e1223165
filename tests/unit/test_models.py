"""
tests/unit/test_models.py - Tests for domain entities, routing and catalog.
"""

import json
import math
from datetime import date

import pytest

from gmpflow.core import (
    Catalog,
    Equipment,
    EquipmentStatus,
    Material,
    MaterialCategory,
    Order,
    OrderPriority,
    ProcessType,
    ProductionPlan,
    QualityVerdict,
    ScheduleItem,
    ToxicityLevel,
    VisualCheckStatus,
    load_catalog,
    required_processes,
)
from gmpflow.errors import (
    ErrorCode,
    InvalidCapacity,
    InvalidInterval,
    InvalidQuantity,
    InvalidRecord,
)

from conftest import make_item


class TestOrder:
    """Tests for order construction and enrichment."""

    def test_rejects_non_positive_quantity(self, ginseng):
        with pytest.raises(InvalidQuantity) as exc:
            Order("o1", ginseng, 0, date(2023, 11, 1))
        assert exc.value.code is ErrorCode.INVALID_QUANTITY

        with pytest.raises(InvalidQuantity):
            Order("o1", ginseng, -5.0, date(2023, 11, 1))

    def test_rejects_nan_quantity(self, ginseng):
        with pytest.raises(InvalidQuantity):
            Order("o1", ginseng, math.nan, date(2023, 11, 1))

    def test_with_perception_returns_copy(self, clean_order):
        enriched = clean_order.with_perception(15.0, QualityVerdict.PASS, "wet surface")

        assert enriched.detected_moisture_pct == 15.0
        assert enriched.visual_check is VisualCheckStatus.PASSED
        assert enriched.perception_note == "wet surface"
        assert clean_order.detected_moisture_pct is None
        assert clean_order.visual_check is VisualCheckStatus.PENDING

    def test_with_perception_failed_verdict(self, clean_order):
        enriched = clean_order.with_perception(12.0, QualityVerdict.FAIL)
        assert enriched.visual_check is VisualCheckStatus.FAILED

    def test_with_perception_without_verdict_is_unresolved(self, clean_order):
        enriched = clean_order.with_perception(None, None, "provider down")

        assert enriched.visual_check is VisualCheckStatus.UNRESOLVED
        assert enriched.effective_moisture_pct == clean_order.material.standard_moisture_pct

    def test_from_dict_resolves_material_id(self, materials):
        order = Order.from_dict(
            {"order_id": "o9", "material": "m2", "quantity_kg": "120", "deadline": "2023-11-04", "priority": "URGENT"},
            materials,
        )
        assert order.material.material_id == "m2"
        assert order.is_toxic
        assert order.is_urgent
        assert order.quantity_kg == 120.0
        assert order.deadline == date(2023, 11, 4)

    def test_from_dict_unknown_material(self, materials):
        with pytest.raises(InvalidRecord) as exc:
            Order.from_dict(
                {"order_id": "o9", "material": "m99", "quantity_kg": 1, "deadline": "2023-11-04"},
                materials,
            )
        assert "m99" in exc.value.message

    def test_from_dict_bad_priority(self, materials):
        with pytest.raises(InvalidRecord):
            Order.from_dict(
                {"order_id": "o9", "material": "m1", "quantity_kg": 1, "deadline": "2023-11-04", "priority": "asap"},
                materials,
            )

    def test_from_dict_non_numeric_quantity(self, materials):
        with pytest.raises(InvalidQuantity):
            Order.from_dict(
                {"order_id": "o9", "material": "m1", "quantity_kg": "lots", "deadline": "2023-11-04"},
                materials,
            )


class TestEquipment:
    """Tests for equipment."""

    def test_rejects_zero_capacity(self):
        with pytest.raises(InvalidCapacity):
            Equipment("e1", "Washer", ProcessType.WASHING, 0)

    def test_status_predicates(self, washer):
        assert washer.is_available
        assert not washer.is_active

        running = washer.with_status(EquipmentStatus.RUNNING)
        assert running.is_active
        assert washer.status is EquipmentStatus.IDLE

        assert not washer.with_status(EquipmentStatus.MAINTENANCE).is_available

    def test_from_dict_case_insensitive_enums(self):
        machine = Equipment.from_dict(
            {"equipment_id": "e7", "name": "Dryer", "process_type": "Drying", "capacity_kg": 800, "status": "MAINTENANCE"}
        )
        assert machine.process_type is ProcessType.DRYING
        assert machine.status is EquipmentStatus.MAINTENANCE


class TestScheduleItem:
    """Tests for schedule items and plans."""

    def test_rejects_empty_interval(self):
        with pytest.raises(InvalidInterval):
            make_item("o1", "eq1", ProcessType.WASHING, 2, 2)

    def test_rejects_reversed_interval(self):
        with pytest.raises(InvalidInterval):
            make_item("o1", "eq1", ProcessType.WASHING, 3, 1)

    def test_duration_and_overlap(self):
        first = make_item("o1", "eq1", ProcessType.WASHING, 0, 2)
        second = make_item("o2", "eq1", ProcessType.WASHING, 1, 3)
        third = make_item("o3", "eq1", ProcessType.WASHING, 2, 4)

        assert first.duration_hours == 2.0
        assert first.overlaps(second)
        assert not first.overlaps(third)

    def test_from_dict_accepts_z_suffix(self):
        item = ScheduleItem.from_dict({
            "order_id": "o1",
            "equipment_id": "eq1",
            "start": "2023-11-01T08:00:00Z",
            "end": "2023-11-01T10:00:00Z",
            "process_type": "washing",
        })
        assert item.start.tzinfo is None
        assert item.start.isoformat() == "2023-11-01T08:00:00"
        assert item.duration_hours == 2.0

    def test_from_dict_offset_normalized_to_utc(self):
        item = ScheduleItem.from_dict({
            "order_id": "o1",
            "equipment_id": "eq1",
            "start": "2023-11-01T16:00:00+08:00",
            "end": "2023-11-01T18:00:00+08:00",
            "process_type": "washing",
        })
        assert item.start.isoformat() == "2023-11-01T08:00:00"

    def test_plan_with_mixed_timestamps(self):
        plan = ProductionPlan.from_dict({
            "plan_id": "p1",
            "items": [
                {"order_id": "o1", "equipment_id": "eq1", "process_type": "washing",
                 "start": "2023-11-01T08:00:00Z", "end": "2023-11-01T10:00:00Z"},
                {"order_id": "o1", "equipment_id": "eq2", "process_type": "steaming",
                 "start": "2023-11-01T10:00:00", "end": "2023-11-01T14:00:00"},
            ],
        })

        assert [i.process_type for i in plan.items] == [ProcessType.WASHING, ProcessType.STEAMING]
        assert ProductionPlan.from_dict(plan.to_dict()) == plan

    def test_from_dict_bad_timestamp(self):
        with pytest.raises(InvalidRecord):
            ScheduleItem.from_dict({
                "order_id": "o1",
                "equipment_id": "eq1",
                "start": "next tuesday",
                "end": "2023-11-01T10:00:00",
                "process_type": "washing",
            })

    def test_plan_items_are_canonically_ordered(self):
        late = make_item("o1", "eq2", ProcessType.STEAMING, 2, 6)
        early = make_item("o1", "eq1", ProcessType.WASHING, 0, 2)
        plan = ProductionPlan("p1", "Plan", items=(late, early))

        assert plan.items == (early, late)
        assert plan.order_ids == ["o1"]
        assert plan.equipment_ids == ["eq1", "eq2"]
        assert plan.items_for_equipment("eq2") == [late]


class TestRouting:
    """Tests for the canonical stage sequence."""

    def test_roots_are_steamed(self, ginseng):
        assert required_processes(ginseng) == (
            ProcessType.WASHING,
            ProcessType.STEAMING,
            ProcessType.DRYING,
            ProcessType.CUTTING,
            ProcessType.PACKAGING,
        )

    def test_fruits_skip_steaming(self):
        goji = Material("m4", "Goji Berry", ToxicityLevel.NONE, MaterialCategory.FRUIT, 13.0)
        assert ProcessType.STEAMING not in required_processes(goji)
        assert len(required_processes(goji)) == 4


class TestCatalog:
    """Tests for catalog loading."""

    def test_default_catalog(self, catalog):
        assert len(catalog.materials) == 5
        assert len(catalog.equipment) == 5
        assert [o.order_id for o in catalog.orders] == ["ord-101", "ord-102", "ord-103", "ord-104"]
        assert catalog.material("m2").toxicity is ToxicityLevel.HIGH

    def test_from_dict_collects_rejected_records(self):
        catalog = Catalog.from_dict({
            "materials": [{"material_id": "m1", "name": "Ginseng", "category": "root"}],
            "equipment": [
                {"equipment_id": "e1", "process_type": "washing", "capacity_kg": 100},
                {"equipment_id": "e2", "process_type": "washing", "capacity_kg": -1},
            ],
            "orders": [
                {"order_id": "o1", "material": "m1", "quantity_kg": 10, "deadline": "2023-11-02"},
                {"order_id": "o2", "material": "m1", "quantity_kg": 0, "deadline": "2023-11-02"},
            ],
        })

        assert [e.equipment_id for e in catalog.equipment] == ["e1"]
        assert [o.order_id for o in catalog.orders] == ["o1"]
        codes = sorted(e.code.name for e in catalog.rejected)
        assert codes == ["INVALID_CAPACITY", "INVALID_QUANTITY"]
        assert {e.order_id for e in catalog.rejected} == {None, "o2"}

    def test_bad_numbers_are_rejected_not_raised(self):
        catalog = Catalog.from_dict({
            "materials": [
                {"material_id": "m1", "name": "Ginseng", "category": "root"},
                {"material_id": "m2", "name": "Mint", "standard_moisture_pct": "dry"},
            ],
            "equipment": [{"equipment_id": "e1", "process_type": "washing", "capacity_kg": "lots"}],
            "orders": [
                {"order_id": "o1", "material": "m1", "quantity_kg": 10, "deadline": "2023-11-02"},
                {"order_id": "o2", "material": "m1", "quantity_kg": 10, "deadline": "2023-11-02",
                 "detected_moisture_pct": "wet"},
                "ord-103",
            ],
        })

        assert list(catalog.materials) == ["m1"]
        assert catalog.equipment == []
        assert [o.order_id for o in catalog.orders] == ["o1"]
        assert [e.code for e in catalog.rejected] == [ErrorCode.INVALID_RECORD] * 4
        assert [e.order_id for e in catalog.rejected][-2:] == ["o2", None]

    def test_load_catalog_roundtrip(self, tmp_path, catalog):
        path = tmp_path / "shop.json"
        path.write_text(json.dumps(catalog.to_dict()))

        loaded = load_catalog(path)

        assert loaded.materials == catalog.materials
        assert loaded.equipment == catalog.equipment
        assert loaded.orders == catalog.orders

    def test_load_catalog_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidRecord):
            load_catalog(path)
