"""
validators/taxonomy.py - Finding and report types.

Findings carry no timestamps or random ids: the id is derived from the rule
and the subject, so validating the same inputs twice yields equal reports.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gmpflow.core.enums import ProcessType


class Severity(Enum):
    """Severity of validation findings."""
    BLOCKING = "blocking"    # Prevents generation / confirmation
    WARNING = "warning"      # Advisory, doesn't block
    INFO = "info"


SEVERITY_ORDER = {
    Severity.BLOCKING: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


@dataclass(frozen=True)
class ValidationFinding:
    """A single constraint finding."""

    finding_id: str
    rule_id: str
    severity: Severity
    message: str
    order_id: Optional[str] = None
    equipment_id: Optional[str] = None
    process_type: Optional[ProcessType] = None
    related_order_id: Optional[str] = None
    suggestion: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.BLOCKING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "finding_id": self.finding_id,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "order_id": self.order_id,
            "equipment_id": self.equipment_id,
            "process_type": self.process_type.value if self.process_type else None,
            "related_order_id": self.related_order_id,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationFinding":
        process = data.get("process_type")
        return cls(
            finding_id=data["finding_id"],
            rule_id=data["rule_id"],
            severity=Severity(data["severity"]),
            message=data["message"],
            order_id=data.get("order_id"),
            equipment_id=data.get("equipment_id"),
            process_type=ProcessType(process) if process else None,
            related_order_id=data.get("related_order_id"),
            suggestion=data.get("suggestion"),
        )


def finding_sort_key(finding: ValidationFinding) -> Tuple[int, str, str]:
    return (SEVERITY_ORDER[finding.severity], finding.rule_id, finding.finding_id)


@dataclass(frozen=True)
class ValidationReport:
    """Result of validating a shop floor or a schedule."""

    findings: Tuple[ValidationFinding, ...] = field(default_factory=tuple)
    cleaning_cycles: int = 0
    schedule_checked: bool = False

    @classmethod
    def build(
        cls,
        findings: Iterable[ValidationFinding],
        cleaning_cycles: int = 0,
        schedule_checked: bool = False,
    ) -> "ValidationReport":
        unique = {f.finding_id: f for f in findings}
        ordered = tuple(sorted(unique.values(), key=finding_sort_key))
        return cls(findings=ordered, cleaning_cycles=cleaning_cycles, schedule_checked=schedule_checked)

    @property
    def valid(self) -> bool:
        return not any(f.is_blocking for f in self.findings)

    @property
    def blocking(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity is Severity.BLOCKING]

    @property
    def warnings(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity is Severity.WARNING]

    @property
    def counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def by_rule(self, rule_id: str) -> List[ValidationFinding]:
        return [f for f in self.findings if f.rule_id == rule_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "schedule_checked": self.schedule_checked,
            "cleaning_cycles": self.cleaning_cycles,
            "counts": self.counts,
            "findings": [f.to_dict() for f in self.findings],
        }
