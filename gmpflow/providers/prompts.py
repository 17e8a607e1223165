"""
providers/prompts.py - Prompt templates for the LLM-backed providers.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Mapping, Sequence

from gmpflow.core.enums import ProcessType
from gmpflow.core.models import Equipment, Order
from gmpflow.core.routing import required_processes

# =============================================================================
# System Prompts
# =============================================================================

PERCEPTION_SYSTEM_PROMPT = """You are a quality inspector at a traditional Chinese medicine processing plant.

Your role:
- Identify the raw material shown in the photo
- Describe its physical form (whole root, slices, berries, powder)
- Estimate its moisture content in percent
- Give a pass/fail visual quality verdict

Guidelines:
- Fail material showing mould, rot, foreign matter or discolouration
- Moisture estimates are approximate; give your best single number
- Keep the reasoning to one or two sentences"""

GENERATION_SYSTEM_PROMPT = """You are a production planner for a GMP-regulated herbal medicine plant.

Hard rules:
- Every order passes its stages in this order: washing, steaming (roots and tubers only), drying, cutting, packaging
- A stage starts only after the previous stage of the same order has finished
- A machine runs one item at a time and only items of its own process type
- An order never goes on a machine whose capacity is below the order quantity
- After a toxic material, a machine needs a full cleaning cycle (idle gap) before any different material
- Machines under maintenance are not used

Preferences:
- Group similar materials to reduce cleaning cycles
- Respect deadlines, urgent orders first

Propose exactly two plans:
1. "Optimized" - maximize equipment utilization
2. "GMP strict" - prioritize isolation margins and cleaning"""


# =============================================================================
# Prompt Templates
# =============================================================================

def create_perception_prompt() -> str:
    return (
        "Analyze this raw material photo. Identify the material, its form, "
        "its estimated moisture percentage and whether it passes visual inspection."
    )


def create_generation_prompt(
    orders: Sequence[Order],
    equipment: Sequence[Equipment],
    stage_hours: Mapping[ProcessType, float],
    cleaning_interval_hours: float,
    horizon_start: datetime,
    drying_rule: str,
) -> str:
    """
    Describe the shop floor to the planner model.

    Args:
        orders: Orders to schedule, perception results included
        equipment: Registered machines
        stage_hours: Base duration per stage
        cleaning_interval_hours: Minimum idle gap after a toxic batch
        horizon_start: Earliest start for any item
        drying_rule: Human-readable moisture rule

    Returns:
        Prompt text
    """
    order_rows = [
        {
            "order_id": o.order_id,
            "material": o.material.name,
            "material_id": o.material.material_id,
            "toxicity": o.material.toxicity.value,
            "category": o.material.category.value,
            "quantity_kg": o.quantity_kg,
            "deadline": o.deadline.isoformat(),
            "priority": o.priority.value,
            "standard_moisture_pct": o.material.standard_moisture_pct,
            "detected_moisture_pct": o.detected_moisture_pct,
            "stages": [p.value for p in required_processes(o.material)],
        }
        for o in orders
    ]
    equipment_rows = [e.to_dict() for e in equipment]
    durations = {p.value: hours for p, hours in stage_hours.items()}

    return "\n".join([
        f"Planning starts at {horizon_start.isoformat()}.",
        f"Base stage durations in hours: {json.dumps(durations)}.",
        f"Drying rule: {drying_rule}",
        f"Cleaning cycle after toxic material: at least {cleaning_interval_hours:g} hours idle.",
        "",
        "Orders:",
        json.dumps(order_rows, indent=2),
        "",
        "Equipment:",
        json.dumps(equipment_rows, indent=2),
        "",
        "Return the plans with ISO-8601 start/end times for every item.",
    ])
