"""
core/routing.py - Canonical stage routing per material category.
"""

from __future__ import annotations

from typing import Tuple

from gmpflow.core.enums import MaterialCategory, ProcessType
from gmpflow.core.models import Material

CANONICAL_ORDER: Tuple[ProcessType, ...] = (
    ProcessType.WASHING,
    ProcessType.STEAMING,
    ProcessType.DRYING,
    ProcessType.CUTTING,
    ProcessType.PACKAGING,
)

# Only roots and tubers are steamed
STEAMED_CATEGORIES = frozenset({MaterialCategory.ROOT, MaterialCategory.TUBER})


def stage_index(process: ProcessType) -> int:
    return CANONICAL_ORDER.index(process)


def required_processes(material: Material) -> Tuple[ProcessType, ...]:
    """Stages a material goes through, in canonical order."""
    if material.category in STEAMED_CATEGORIES:
        return CANONICAL_ORDER
    return tuple(p for p in CANONICAL_ORDER if p is not ProcessType.STEAMING)
