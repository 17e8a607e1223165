"""
gmpflow.core - Domain model, routing, catalog and interchange encoding.
"""

from .enums import (
    ToxicityLevel,
    ProcessType,
    MaterialCategory,
    EquipmentStatus,
    OrderPriority,
    OrderStatus,
    VisualCheckStatus,
    QualityVerdict,
)
from .models import (
    Material,
    Equipment,
    Order,
    ScheduleItem,
    PlanKPIs,
    ProductionPlan,
    item_sort_key,
    sort_items,
    parse_datetime,
    parse_date,
)
from .routing import CANONICAL_ORDER, STEAMED_CATEGORIES, required_processes, stage_index
from .catalog import Catalog, load_catalog, default_catalog
from .serialization import SCHEMA_VERSION, encode, decode, dumps, loads

__all__ = [
    "ToxicityLevel",
    "ProcessType",
    "MaterialCategory",
    "EquipmentStatus",
    "OrderPriority",
    "OrderStatus",
    "VisualCheckStatus",
    "QualityVerdict",
    "Material",
    "Equipment",
    "Order",
    "ScheduleItem",
    "PlanKPIs",
    "ProductionPlan",
    "item_sort_key",
    "sort_items",
    "parse_datetime",
    "parse_date",
    "CANONICAL_ORDER",
    "STEAMED_CATEGORIES",
    "required_processes",
    "stage_index",
    "Catalog",
    "load_catalog",
    "default_catalog",
    "SCHEMA_VERSION",
    "encode",
    "decode",
    "dumps",
    "loads",
]
