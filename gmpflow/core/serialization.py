"""
core/serialization.py - Versioned interchange encoding.

Entities travel as an envelope:

    {"schema_version": 1, "kind": "order", "data": {...}}

Decoding goes through each entity's constructor so construction
invariants are re-checked on the way in.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Union

from gmpflow.core.models import (
    Equipment,
    Material,
    Order,
    PlanKPIs,
    ProductionPlan,
    ScheduleItem,
)
from gmpflow.errors import UnsupportedSchema

SCHEMA_VERSION = 1

Entity = Union[Material, Equipment, Order, ScheduleItem, PlanKPIs, ProductionPlan]

KINDS = {
    "material": Material,
    "equipment": Equipment,
    "order": Order,
    "schedule_item": ScheduleItem,
    "plan_kpis": PlanKPIs,
    "production_plan": ProductionPlan,
}

_KIND_BY_TYPE = {cls: kind for kind, cls in KINDS.items()}


def encode(entity: Entity) -> Dict[str, Any]:
    kind = _KIND_BY_TYPE.get(type(entity))
    if kind is None:
        raise UnsupportedSchema(f"Cannot encode {type(entity).__name__}", kind=type(entity).__name__)
    return {"schema_version": SCHEMA_VERSION, "kind": kind, "data": entity.to_dict()}


def decode(payload: Mapping[str, Any]) -> Entity:
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise UnsupportedSchema(
            f"Unsupported schema version {version!r} (expected {SCHEMA_VERSION})",
            schema_version=version,
        )
    kind = payload.get("kind")
    cls = KINDS.get(kind)
    if cls is None:
        raise UnsupportedSchema(f"Unknown entity kind {kind!r}", kind=kind)
    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise UnsupportedSchema(f"Envelope for {kind} has no data record", kind=kind)
    return cls.from_dict(data)


def dumps(entity: Entity, indent: int = 2) -> str:
    return json.dumps(encode(entity), indent=indent)


def loads(text: str) -> Entity:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise UnsupportedSchema(f"Payload is not valid JSON: {e}")
    if not isinstance(payload, Mapping):
        raise UnsupportedSchema("Payload is not an envelope object")
    return decode(payload)
