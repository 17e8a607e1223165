"""
gmpflow.validators - Constraint validation.
"""

from .taxonomy import Severity, ValidationFinding, ValidationReport
from .cleaning import (
    DEFAULT_CLEANING_INTERVAL_HOURS,
    Changeover,
    find_changeovers,
    count_cleaning_cycles,
)
from .rules import (
    RULE_TOXICITY,
    RULE_CAPACITY,
    RULE_AVAILABILITY,
    RULE_COMPLETENESS,
    RULE_OVERLAP,
    RULE_PROCESS_MISMATCH,
    RULE_UNKNOWN_REFERENCE,
    RULE_VISUAL_CHECK,
    BUILTIN_RULES,
    RuleContext,
    RuleDefinition,
    get_rule_by_id,
)
from .validator import ConstraintValidator, validate

__all__ = [
    "Severity",
    "ValidationFinding",
    "ValidationReport",
    "DEFAULT_CLEANING_INTERVAL_HOURS",
    "Changeover",
    "find_changeovers",
    "count_cleaning_cycles",
    "RULE_TOXICITY",
    "RULE_CAPACITY",
    "RULE_AVAILABILITY",
    "RULE_COMPLETENESS",
    "RULE_OVERLAP",
    "RULE_PROCESS_MISMATCH",
    "RULE_UNKNOWN_REFERENCE",
    "RULE_VISUAL_CHECK",
    "BUILTIN_RULES",
    "RuleContext",
    "RuleDefinition",
    "get_rule_by_id",
    "ConstraintValidator",
    "validate",
]
