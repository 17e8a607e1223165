"""
validators/rules.py - Built-in constraint rules.

Each rule is a pure function of a RuleContext returning findings. Rules run
in both modes: shop mode (no schedule, checks that the orders can be
produced on the registered equipment) and schedule mode (checks a concrete
plan). A rule that has nothing to say in a mode returns no findings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from gmpflow.core.enums import EquipmentStatus, ProcessType, VisualCheckStatus
from gmpflow.core.models import Equipment, Order, ScheduleItem
from gmpflow.core.routing import required_processes, stage_index
from gmpflow.validators.cleaning import find_changeovers
from gmpflow.validators.taxonomy import Severity, ValidationFinding

RULE_TOXICITY = "gmp/toxicity-isolation"
RULE_CAPACITY = "physical/capacity"
RULE_AVAILABILITY = "equipment/availability"
RULE_COMPLETENESS = "plan/completeness"
RULE_OVERLAP = "plan/equipment-overlap"
RULE_PROCESS_MISMATCH = "plan/process-mismatch"
RULE_UNKNOWN_REFERENCE = "plan/unknown-reference"
RULE_VISUAL_CHECK = "quality/visual-check"


@dataclass(frozen=True)
class RuleContext:
    orders: Mapping[str, Order]
    equipment: Mapping[str, Equipment]
    schedule: Optional[Tuple[ScheduleItem, ...]]
    cleaning_interval_hours: float

    @property
    def has_schedule(self) -> bool:
        return self.schedule is not None

    def known_items(self) -> List[ScheduleItem]:
        """Items whose order and equipment are both registered."""
        return [
            i for i in (self.schedule or ())
            if i.order_id in self.orders and i.equipment_id in self.equipment
        ]

    def machines_for(self, process: ProcessType) -> List[Equipment]:
        return [e for e in self.equipment.values() if e.process_type is process]


RuleFunction = Callable[[RuleContext], List[ValidationFinding]]


@dataclass(frozen=True)
class RuleDefinition:
    rule_id: str
    name: str
    severity: Severity
    check: RuleFunction


def _hours(value: float) -> str:
    return f"{value:g}h"


# =============================================================================
# RULES
# =============================================================================

def check_toxicity_isolation(ctx: RuleContext) -> List[ValidationFinding]:
    """Toxic material followed by a different material needs a cleaning gap."""
    if not ctx.has_schedule:
        return []
    findings = []
    for change in find_changeovers(ctx.known_items(), ctx.orders, ctx.cleaning_interval_hours):
        if change.compliant:
            continue
        prev_order = ctx.orders[change.previous.order_id]
        next_order = ctx.orders[change.following.order_id]
        findings.append(ValidationFinding(
            finding_id=(
                f"{RULE_TOXICITY}:{change.equipment_id}:"
                f"{prev_order.order_id}>{next_order.order_id}@{change.following.start.isoformat()}"
            ),
            rule_id=RULE_TOXICITY,
            severity=Severity.BLOCKING,
            message=(
                f"{change.equipment_id}: {prev_order.material.name} "
                f"({prev_order.material.toxicity.value} toxicity, {prev_order.order_id}) is followed by "
                f"{next_order.material.name} ({next_order.order_id}) after "
                f"{_hours(max(change.gap_hours, 0.0))} without a full cleaning cycle"
            ),
            order_id=next_order.order_id,
            equipment_id=change.equipment_id,
            process_type=change.following.process_type,
            related_order_id=prev_order.order_id,
            suggestion=(
                f"Leave at least {_hours(ctx.cleaning_interval_hours)} of cleaning on "
                f"{change.equipment_id} before {next_order.order_id}"
            ),
        ))
    return findings


def check_capacity(ctx: RuleContext) -> List[ValidationFinding]:
    """Order quantity must fit the equipment that processes it."""
    findings = []
    if ctx.has_schedule:
        pairs = sorted({(i.order_id, i.equipment_id) for i in ctx.known_items()})
        for order_id, equipment_id in pairs:
            order = ctx.orders[order_id]
            machine = ctx.equipment[equipment_id]
            if order.quantity_kg > machine.capacity_kg:
                findings.append(ValidationFinding(
                    finding_id=f"{RULE_CAPACITY}:{order_id}:{equipment_id}",
                    rule_id=RULE_CAPACITY,
                    severity=Severity.BLOCKING,
                    message=(
                        f"Order {order_id} ({order.quantity_kg:g} kg) exceeds capacity of "
                        f"{equipment_id} ({machine.capacity_kg:g} kg)"
                    ),
                    order_id=order_id,
                    equipment_id=equipment_id,
                    process_type=machine.process_type,
                    suggestion="Assign a larger machine or split the order into separate orders",
                ))
        return findings

    for order_id in sorted(ctx.orders):
        order = ctx.orders[order_id]
        for process in required_processes(order.material):
            machines = ctx.machines_for(process)
            if not machines:
                continue
            if all(order.quantity_kg > m.capacity_kg for m in machines):
                largest = max(machines, key=lambda m: (m.capacity_kg, m.equipment_id))
                findings.append(ValidationFinding(
                    finding_id=f"{RULE_CAPACITY}:{order_id}:{process.value}",
                    rule_id=RULE_CAPACITY,
                    severity=Severity.BLOCKING,
                    message=(
                        f"Order {order_id} ({order.quantity_kg:g} kg) exceeds the capacity of every "
                        f"{process.value} machine (largest: {largest.equipment_id}, "
                        f"{largest.capacity_kg:g} kg)"
                    ),
                    order_id=order_id,
                    equipment_id=largest.equipment_id,
                    process_type=process,
                    suggestion="Split the order into separate orders",
                ))
    return findings


def check_availability(ctx: RuleContext) -> List[ValidationFinding]:
    """Warn about equipment under maintenance."""
    if ctx.has_schedule:
        referenced = {i.equipment_id for i in ctx.known_items()}
    else:
        referenced = set(ctx.equipment)
    findings = []
    for equipment_id in sorted(referenced):
        machine = ctx.equipment[equipment_id]
        if machine.status is not EquipmentStatus.MAINTENANCE:
            continue
        findings.append(ValidationFinding(
            finding_id=f"{RULE_AVAILABILITY}:{equipment_id}",
            rule_id=RULE_AVAILABILITY,
            severity=Severity.WARNING,
            message=f"{machine.name} ({equipment_id}) is under maintenance",
            equipment_id=equipment_id,
            process_type=machine.process_type,
            suggestion="Confirm the maintenance window before scheduling on this machine",
        ))
    return findings


def check_completeness(ctx: RuleContext) -> List[ValidationFinding]:
    """Every order gets its canonical stage sequence, in order."""
    if not ctx.has_schedule:
        return _check_routable(ctx)

    findings = []
    schedule = ctx.schedule or ()
    for order_id in sorted(ctx.orders):
        order = ctx.orders[order_id]
        required = required_processes(order.material)
        items = [i for i in schedule if i.order_id == order_id]
        if not items:
            findings.append(ValidationFinding(
                finding_id=f"{RULE_COMPLETENESS}:{order_id}:unscheduled",
                rule_id=RULE_COMPLETENESS,
                severity=Severity.BLOCKING,
                message=f"Order {order_id} is not scheduled",
                order_id=order_id,
            ))
            continue

        stages = [i.process_type for i in items]
        for process in required:
            if process not in stages:
                findings.append(ValidationFinding(
                    finding_id=f"{RULE_COMPLETENESS}:{order_id}:missing:{process.value}",
                    rule_id=RULE_COMPLETENESS,
                    severity=Severity.BLOCKING,
                    message=f"Order {order_id} is missing the {process.value} stage",
                    order_id=order_id,
                    process_type=process,
                ))
        for process in sorted(set(stages), key=stage_index):
            count = stages.count(process)
            if process not in required or count > 1:
                findings.append(ValidationFinding(
                    finding_id=f"{RULE_COMPLETENESS}:{order_id}:extra:{process.value}",
                    rule_id=RULE_COMPLETENESS,
                    severity=Severity.BLOCKING,
                    message=(
                        f"Order {order_id} has {count} {process.value} item(s); "
                        f"expected {1 if process in required else 0}"
                    ),
                    order_id=order_id,
                    process_type=process,
                ))

        ordered = sorted(items, key=lambda i: (stage_index(i.process_type), i.start))
        for earlier, later in zip(ordered, ordered[1:]):
            if earlier.process_type is later.process_type:
                continue
            if later.start < earlier.end:
                findings.append(ValidationFinding(
                    finding_id=(
                        f"{RULE_COMPLETENESS}:{order_id}:order:"
                        f"{earlier.process_type.value}>{later.process_type.value}"
                    ),
                    rule_id=RULE_COMPLETENESS,
                    severity=Severity.BLOCKING,
                    message=(
                        f"Order {order_id}: {later.process_type.value} starts before "
                        f"{earlier.process_type.value} has finished"
                    ),
                    order_id=order_id,
                    equipment_id=later.equipment_id,
                    process_type=later.process_type,
                ))
    return findings


def _check_routable(ctx: RuleContext) -> List[ValidationFinding]:
    findings = []
    for order_id in sorted(ctx.orders):
        order = ctx.orders[order_id]
        for process in required_processes(order.material):
            if ctx.machines_for(process):
                continue
            findings.append(ValidationFinding(
                finding_id=f"{RULE_COMPLETENESS}:{order_id}:no-equipment:{process.value}",
                rule_id=RULE_COMPLETENESS,
                severity=Severity.BLOCKING,
                message=f"No {process.value} equipment is registered for order {order_id}",
                order_id=order_id,
                process_type=process,
                suggestion=f"Register a {process.value} machine",
            ))
    return findings


def check_equipment_overlap(ctx: RuleContext) -> List[ValidationFinding]:
    """A machine runs one item at a time."""
    if not ctx.has_schedule:
        return []
    per_equipment: Dict[str, List[ScheduleItem]] = {}
    for item in ctx.schedule or ():
        per_equipment.setdefault(item.equipment_id, []).append(item)

    findings = []
    for equipment_id in sorted(per_equipment):
        items = sorted(per_equipment[equipment_id], key=lambda i: (i.start, i.end, i.order_id))
        for index, first in enumerate(items):
            for second in items[index + 1:]:
                if second.start >= first.end:
                    break
                findings.append(ValidationFinding(
                    finding_id=(
                        f"{RULE_OVERLAP}:{equipment_id}:{first.order_id}:{first.process_type.value}"
                        f"~{second.order_id}:{second.process_type.value}@{second.start.isoformat()}"
                    ),
                    rule_id=RULE_OVERLAP,
                    severity=Severity.BLOCKING,
                    message=(
                        f"{equipment_id}: {second.order_id} starts before {first.order_id} has finished"
                    ),
                    order_id=second.order_id,
                    equipment_id=equipment_id,
                    process_type=second.process_type,
                    related_order_id=first.order_id,
                ))
    return findings


def check_process_mismatch(ctx: RuleContext) -> List[ValidationFinding]:
    """Items run on equipment of their own process type."""
    if not ctx.has_schedule:
        return []
    findings = []
    for item in ctx.known_items():
        machine = ctx.equipment[item.equipment_id]
        if machine.process_type is item.process_type:
            continue
        findings.append(ValidationFinding(
            finding_id=f"{RULE_PROCESS_MISMATCH}:{item.order_id}:{item.process_type.value}:{item.equipment_id}",
            rule_id=RULE_PROCESS_MISMATCH,
            severity=Severity.BLOCKING,
            message=(
                f"Order {item.order_id}: {item.process_type.value} assigned to "
                f"{item.equipment_id}, a {machine.process_type.value} machine"
            ),
            order_id=item.order_id,
            equipment_id=item.equipment_id,
            process_type=item.process_type,
        ))
    return findings


def check_unknown_references(ctx: RuleContext) -> List[ValidationFinding]:
    if not ctx.has_schedule:
        return []
    findings = []
    for item in ctx.schedule or ():
        if item.order_id not in ctx.orders:
            findings.append(ValidationFinding(
                finding_id=f"{RULE_UNKNOWN_REFERENCE}:order:{item.order_id}:{item.process_type.value}",
                rule_id=RULE_UNKNOWN_REFERENCE,
                severity=Severity.BLOCKING,
                message=f"Item references unknown order {item.order_id}",
                order_id=item.order_id,
                equipment_id=item.equipment_id,
                process_type=item.process_type,
            ))
        if item.equipment_id not in ctx.equipment:
            findings.append(ValidationFinding(
                finding_id=f"{RULE_UNKNOWN_REFERENCE}:equipment:{item.equipment_id}:{item.order_id}",
                rule_id=RULE_UNKNOWN_REFERENCE,
                severity=Severity.BLOCKING,
                message=f"Item for order {item.order_id} references unknown equipment {item.equipment_id}",
                order_id=item.order_id,
                equipment_id=item.equipment_id,
                process_type=item.process_type,
            ))
    return findings


def check_visual_inspection(ctx: RuleContext) -> List[ValidationFinding]:
    """Failed or unresolved visual checks are flagged for the operator."""
    findings = []
    for order_id in sorted(ctx.orders):
        order = ctx.orders[order_id]
        if order.visual_check not in (VisualCheckStatus.FAILED, VisualCheckStatus.UNRESOLVED):
            continue
        findings.append(ValidationFinding(
            finding_id=f"{RULE_VISUAL_CHECK}:{order_id}",
            rule_id=RULE_VISUAL_CHECK,
            severity=Severity.WARNING,
            message=f"Order {order_id} visual check is {order.visual_check.value}",
            order_id=order_id,
            suggestion="Inspect the raw material manually before release",
        ))
    return findings


BUILTIN_RULES: Sequence[RuleDefinition] = (
    RuleDefinition(RULE_UNKNOWN_REFERENCE, "Unknown references", Severity.BLOCKING, check_unknown_references),
    RuleDefinition(RULE_TOXICITY, "Toxicity isolation", Severity.BLOCKING, check_toxicity_isolation),
    RuleDefinition(RULE_CAPACITY, "Equipment capacity", Severity.BLOCKING, check_capacity),
    RuleDefinition(RULE_COMPLETENESS, "Plan completeness", Severity.BLOCKING, check_completeness),
    RuleDefinition(RULE_OVERLAP, "Equipment overlap", Severity.BLOCKING, check_equipment_overlap),
    RuleDefinition(RULE_PROCESS_MISMATCH, "Process mismatch", Severity.BLOCKING, check_process_mismatch),
    RuleDefinition(RULE_AVAILABILITY, "Equipment availability", Severity.WARNING, check_availability),
    RuleDefinition(RULE_VISUAL_CHECK, "Visual check", Severity.WARNING, check_visual_inspection),
)


def get_rule_by_id(rule_id: str) -> Optional[RuleDefinition]:
    for rule in BUILTIN_RULES:
        if rule.rule_id == rule_id:
            return rule
    return None
