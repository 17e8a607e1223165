"""
scheduling/moisture.py - Moisture-driven drying adjustment.

Wet material dries longer: when the detected moisture exceeds the material
standard by more than 2 percentage points, drying takes 20% longer. Only the
drying stage is affected.
"""

from __future__ import annotations

from typing import Mapping, Optional

from gmpflow.core.enums import ProcessType
from gmpflow.core.models import Order

MOISTURE_DELTA_THRESHOLD = 2.0
DRYING_EXTENSION_FACTOR = 1.2

BASE_STAGE_HOURS: Mapping[ProcessType, float] = {
    ProcessType.WASHING: 2.0,
    ProcessType.STEAMING: 4.0,
    ProcessType.DRYING: 6.0,
    ProcessType.CUTTING: 2.0,
    ProcessType.PACKAGING: 1.0,
}


def adjust_drying_duration(
    base_hours: float,
    detected_moisture: Optional[float],
    standard_moisture: float,
) -> float:
    """
    Drying time for a batch.

    Args:
        base_hours: Nominal drying time
        detected_moisture: Perceived moisture %, None when not perceived
        standard_moisture: Material standard moisture %

    Returns:
        base_hours * 1.2 when detected - standard > 2.0, else base_hours
    """
    if detected_moisture is None:
        return base_hours
    if detected_moisture - standard_moisture > MOISTURE_DELTA_THRESHOLD:
        return base_hours * DRYING_EXTENSION_FACTOR
    return base_hours


def needs_extended_drying(order: Order) -> bool:
    if order.detected_moisture_pct is None:
        return False
    delta = order.detected_moisture_pct - order.material.standard_moisture_pct
    return delta > MOISTURE_DELTA_THRESHOLD


def stage_duration(
    process: ProcessType,
    order: Order,
    base_hours: Optional[Mapping[ProcessType, float]] = None,
) -> float:
    """Hours a stage takes for an order; only drying depends on moisture."""
    hours = (base_hours or BASE_STAGE_HOURS)[process]
    if process is not ProcessType.DRYING:
        return hours
    return adjust_drying_duration(
        hours,
        order.detected_moisture_pct,
        order.material.standard_moisture_pct,
    )
