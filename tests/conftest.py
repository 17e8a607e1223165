"""
Test configuration and fixtures.

Sample shop floor: the built-in catalog (five machines, four orders, one of
them high-toxicity Aconite).
"""

from datetime import date, datetime, timedelta

import pytest

from gmpflow.bootstrap.config import SchedulingConfig, reset_config
from gmpflow.core.catalog import default_catalog
from gmpflow.core.enums import (
    EquipmentStatus,
    MaterialCategory,
    OrderPriority,
    ProcessType,
    ToxicityLevel,
)
from gmpflow.core.models import Equipment, Material, Order, ScheduleItem
from gmpflow.workflow.ledger import EquipmentBookingLedger, reset_shared_ledger

T0 = datetime(2023, 11, 1, 8, 0)


def at(hours: float) -> datetime:
    """Timestamp `hours` after the planning horizon start."""
    return T0 + timedelta(hours=hours)


def make_item(order_id, equipment_id, process, start_h, end_h, notes=None) -> ScheduleItem:
    return ScheduleItem(
        order_id=order_id,
        equipment_id=equipment_id,
        start=at(start_h),
        end=at(end_h),
        process_type=process,
        notes=notes,
    )


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch):
    """Fresh config and shared ledger per test, no env leakage."""
    for key in ("GMPFLOW_CLEANING_INTERVAL_HOURS", "GMPFLOW_PERCEPTION_TIMEOUT", "GMPFLOW_GENERATION_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    reset_shared_ledger()
    yield
    reset_config()
    reset_shared_ledger()


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def materials(catalog):
    return catalog.materials


@pytest.fixture
def equipment(catalog):
    return list(catalog.equipment)


@pytest.fixture
def orders(catalog):
    return list(catalog.orders)


@pytest.fixture
def ginseng():
    return Material("m1", "Ginseng", ToxicityLevel.NONE, MaterialCategory.ROOT, 12.0)


@pytest.fixture
def aconite():
    return Material("m2", "Aconite Root (Fuzi)", ToxicityLevel.HIGH, MaterialCategory.ROOT, 10.0)


@pytest.fixture
def washer():
    return Equipment("eq1", "Washer A1", ProcessType.WASHING, 500.0, EquipmentStatus.IDLE)


@pytest.fixture
def toxic_order(aconite):
    return Order("ord-tox", aconite, 100.0, date(2023, 11, 5))


@pytest.fixture
def clean_order(ginseng):
    return Order("ord-clean", ginseng, 100.0, date(2023, 11, 5), OrderPriority.NORMAL)


@pytest.fixture
def scheduling_config():
    return SchedulingConfig(perception_timeout_seconds=1.0, generation_timeout_seconds=1.0)


@pytest.fixture
def ledger():
    return EquipmentBookingLedger()
