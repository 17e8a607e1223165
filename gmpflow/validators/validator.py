"""
validators/validator.py - Constraint validator.

Runs the rule registry over orders, equipment and an optional schedule.
Pure: no state is kept between calls, so one validator can be shared by
every session and thread.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, Union

from gmpflow.core.models import Equipment, Order, ProductionPlan, ScheduleItem
from gmpflow.validators.cleaning import DEFAULT_CLEANING_INTERVAL_HOURS, count_cleaning_cycles
from gmpflow.validators.rules import BUILTIN_RULES, RuleContext, RuleDefinition
from gmpflow.validators.taxonomy import ValidationReport

logger = logging.getLogger(__name__)

Schedule = Union[ProductionPlan, Iterable[ScheduleItem]]


class ConstraintValidator:
    """Checks GMP, physical and plan-shape constraints."""

    def __init__(
        self,
        cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
        rules: Optional[Sequence[RuleDefinition]] = None,
    ):
        if cleaning_interval_hours < 0:
            raise ValueError("cleaning_interval_hours must not be negative")
        self.cleaning_interval_hours = cleaning_interval_hours
        self.rules = tuple(rules if rules is not None else BUILTIN_RULES)

    def validate(
        self,
        orders: Iterable[Order],
        equipment: Iterable[Equipment],
        schedule: Optional[Schedule] = None,
    ) -> ValidationReport:
        """
        Validate a shop floor, or a schedule against it.

        Args:
            orders: Orders in scope
            equipment: Registered equipment
            schedule: Plan or items to check; None checks shop-level feasibility

        Returns:
            ValidationReport with findings in deterministic order
        """
        items = None
        if schedule is not None:
            items = tuple(schedule.items if isinstance(schedule, ProductionPlan) else schedule)

        ctx = RuleContext(
            orders={o.order_id: o for o in orders},
            equipment={e.equipment_id: e for e in equipment},
            schedule=items,
            cleaning_interval_hours=self.cleaning_interval_hours,
        )

        findings = []
        for rule in self.rules:
            findings.extend(rule.check(ctx))

        cycles = 0
        if items is not None:
            cycles = count_cleaning_cycles(ctx.known_items(), ctx.orders, self.cleaning_interval_hours)

        report = ValidationReport.build(findings, cleaning_cycles=cycles, schedule_checked=items is not None)
        logger.debug(
            f"Validated {len(ctx.orders)} orders / {len(ctx.equipment)} machines: "
            f"valid={report.valid} counts={report.counts}"
        )
        return report


def validate(
    orders: Iterable[Order],
    equipment: Iterable[Equipment],
    schedule: Optional[Schedule] = None,
    cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
) -> ValidationReport:
    return ConstraintValidator(cleaning_interval_hours).validate(orders, equipment, schedule)
