"""
core/enums.py - Shop floor enumerations.
"""

from enum import Enum


class ToxicityLevel(Enum):
    """Toxicity classification of a raw material."""
    NONE = "none"
    LOW = "low"
    HIGH = "high"

    @property
    def is_toxic(self) -> bool:
        return self is not ToxicityLevel.NONE


class ProcessType(Enum):
    """Processing stages, declared in canonical order."""
    WASHING = "washing"
    STEAMING = "steaming"
    DRYING = "drying"
    CUTTING = "cutting"
    PACKAGING = "packaging"


class MaterialCategory(Enum):
    """Botanical form of a material; decides the routing."""
    ROOT = "root"
    TUBER = "tuber"
    FRUIT = "fruit"
    LEAF = "leaf"
    FLOWER = "flower"
    SEED = "seed"
    BARK = "bark"
    OTHER = "other"


class EquipmentStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


class OrderPriority(Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class OrderStatus(Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PRODUCTION = "in_production"
    COMPLETE = "complete"


class VisualCheckStatus(Enum):
    """Outcome of perception for one order."""
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    UNRESOLVED = "unresolved"

    @property
    def is_terminal(self) -> bool:
        return self is not VisualCheckStatus.PENDING


class QualityVerdict(Enum):
    PASS = "pass"
    FAIL = "fail"
