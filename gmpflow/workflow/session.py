"""
workflow/session.py - Scheduling session state machine.

One SchedulingWorkflow per planning session:

    PERCEPTION -> VALIDATION -> GENERATION -> DECISION
                                    ^            |
                                    +- discard --+

The session is a single actor: an operation that arrives while another one
of the same session is in flight is rejected with SessionBusy. Provider
calls are bounded by timeouts; provider failures come back in-band as
WorkflowError values and never move the state machine. A plan only reaches
DECISION after the core has re-validated it and booked its equipment
windows on the shared ledger.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from gmpflow.bootstrap.config import SchedulingConfig, get_config
from gmpflow.core.enums import OrderStatus, ProcessType, VisualCheckStatus
from gmpflow.core.models import (
    Equipment,
    Material,
    Order,
    PlanKPIs,
    ProductionPlan,
    ScheduleItem,
    parse_datetime,
)
from gmpflow.errors import (
    ConstraintViolation,
    ErrorCode,
    GMPFlowError,
    InvalidRecord,
    InvalidTransition,
    ProviderUnavailable,
    SessionBusy,
    SessionClosed,
    UnknownCandidate,
    WorkflowError,
)
from gmpflow.providers.protocols import GenerationProvider, PerceptionProvider, PerceptionResult
from gmpflow.providers.schemas import KPIDraft, PlanDraft
from gmpflow.reporting.cards import build_production_cards
from gmpflow.scheduling.moisture import needs_extended_drying
from gmpflow.scheduling.scorer import PlanScorer, rank
from gmpflow.validators.taxonomy import ValidationReport
from gmpflow.validators.validator import ConstraintValidator
from gmpflow.workflow.ledger import EquipmentBookingLedger, get_shared_ledger
from gmpflow.workflow.schema import (
    CandidatePlan,
    GenerationOutcome,
    OrderPerception,
    PerceptionSummary,
    PlanExport,
    RejectedCandidate,
)
from gmpflow.workflow.transitions import (
    SessionStatus,
    TransitionEvent,
    WorkflowState,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

KPI_TOLERANCE = 0.01


def _provider_name(provider: Any) -> str:
    return getattr(provider, "name", type(provider).__name__)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9_]+", "-", text.lower()).strip("-") or "plan"


class SchedulingWorkflow:
    """A planning session over a fixed set of orders and machines."""

    def __init__(
        self,
        orders: Iterable[Order],
        equipment: Iterable[Equipment],
        perception_provider: PerceptionProvider,
        generation_provider: GenerationProvider,
        validator: Optional[ConstraintValidator] = None,
        scorer: Optional[PlanScorer] = None,
        ledger: Optional[EquipmentBookingLedger] = None,
        config: Optional[SchedulingConfig] = None,
        session_id: Optional[str] = None,
        rejected_orders: Optional[List[WorkflowError]] = None,
    ):
        self.config = config or get_config().scheduling
        self.session_id = session_id or f"session-{uuid.uuid4().hex[:8]}"
        self.perception_provider = perception_provider
        self.generation_provider = generation_provider
        self.validator = validator or ConstraintValidator(self.config.cleaning_interval_hours)
        self.scorer = scorer or PlanScorer(self.config.weights, self.config.cleaning_interval_hours)
        self.ledger = ledger or get_shared_ledger()
        self.rejected_orders: List[WorkflowError] = list(rejected_orders or [])

        self._orders: Dict[str, Order] = {}
        for order in orders:
            if order.order_id in self._orders:
                self.rejected_orders.append(WorkflowError.from_exception(
                    InvalidRecord(f"Duplicate order id {order.order_id}"),
                    order_id=order.order_id,
                ))
                continue
            self._orders[order.order_id] = order
        self._equipment: Dict[str, Equipment] = {e.equipment_id: e for e in equipment}

        self._state = WorkflowState.PERCEPTION
        self._status = SessionStatus.ACTIVE
        self._history: Tuple[TransitionEvent, ...] = (
            TransitionEvent(to_state=WorkflowState.PERCEPTION.value, reason="session created", session_id=self.session_id),
        )
        self._guard = asyncio.Lock()
        self._in_flight: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()

        self._images: Dict[str, bytes] = {}
        self._perception: Dict[str, OrderPerception] = {}
        self._last_report: Optional[ValidationReport] = None
        self._candidates: Dict[str, CandidatePlan] = {}
        self._rejected: List[RejectedCandidate] = []
        self._round = 0
        self._confirmed: Optional[CandidatePlan] = None

        if self.rejected_orders:
            logger.warning(f"Session {self.session_id}: {len(self.rejected_orders)} order(s) excluded")
        logger.info(
            f"Session {self.session_id} created with {len(self._orders)} orders "
            f"and {len(self._equipment)} machines"
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        equipment: Iterable[Equipment],
        perception_provider: PerceptionProvider,
        generation_provider: GenerationProvider,
        materials: Optional[Mapping[str, Material]] = None,
        **kwargs: Any,
    ) -> "SchedulingWorkflow":
        """Build orders from raw records; records that fail construction are excluded and reported."""
        orders = []
        rejected = []
        for record in records:
            try:
                orders.append(Order.from_dict(record, materials))
            except GMPFlowError as e:
                order_id = record.get("order_id") if isinstance(record, Mapping) else None
                rejected.append(WorkflowError.from_exception(e, order_id=order_id))
        return cls(
            orders,
            equipment,
            perception_provider,
            generation_provider,
            rejected_orders=rejected,
            **kwargs,
        )

    # ==================== Properties ====================

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    @property
    def history(self) -> Tuple[TransitionEvent, ...]:
        return self._history

    @property
    def orders(self) -> List[Order]:
        return [self._orders[oid] for oid in sorted(self._orders)]

    @property
    def equipment(self) -> List[Equipment]:
        """Registered machines with their current shared status."""
        machines = []
        for equipment_id in sorted(self._equipment):
            machine = self._equipment[equipment_id]
            shared = self.ledger.status_of(equipment_id)
            machines.append(machine.with_status(shared) if shared else machine)
        return machines

    @property
    def last_report(self) -> Optional[ValidationReport]:
        return self._last_report

    @property
    def candidates(self) -> Tuple[CandidatePlan, ...]:
        """Valid candidates, best first."""
        ranked = rank([c.plan for c in self._candidates.values()])
        return tuple(self._candidates[p.plan_id] for p in ranked)

    @property
    def rejected_candidates(self) -> Tuple[RejectedCandidate, ...]:
        return tuple(self._rejected)

    @property
    def confirmed_plan(self) -> Optional[ProductionPlan]:
        if self._status is SessionStatus.CANCELLED or self._confirmed is None:
            return None
        return self._confirmed.plan

    # ==================== Guards ====================

    def _ensure_open(self) -> None:
        if self._status is SessionStatus.CANCELLED:
            raise SessionClosed(f"Session {self.session_id} was cancelled", session_id=self.session_id)

    def _check_idle(self, operation: str) -> None:
        self._ensure_open()
        if self._guard.locked():
            raise SessionBusy(
                f"Session {self.session_id} is busy with {self._in_flight}",
                session_id=self.session_id,
                operation=operation,
                in_flight=self._in_flight,
            )

    @asynccontextmanager
    async def _exclusive(self, operation: str) -> AsyncIterator[None]:
        self._check_idle(operation)
        async with self._guard:
            self._in_flight = operation
            try:
                yield
            finally:
                self._in_flight = None

    def _require_state(self, expected: WorkflowState, target: Optional[WorkflowState] = None, reason: str = "") -> None:
        if self._state is not expected:
            raise InvalidTransition(
                self._state,
                target or expected,
                reason or f"operation requires state {expected.value}",
            )

    def _transition(self, to_state: WorkflowState, reason: str) -> None:
        if not is_valid_transition(self._state, to_state):
            raise InvalidTransition(self._state, to_state)
        event = TransitionEvent(
            to_state=to_state.value,
            from_state=self._state.value,
            reason=reason,
            session_id=self.session_id,
        )
        self._history = self._history + (event,)
        logger.info(f"Session {self.session_id}: {self._state.value} -> {to_state.value} ({reason})")
        self._state = to_state

    # ==================== Perception ====================

    async def run_perception(
        self,
        images: Optional[Mapping[str, bytes]] = None,
        order_ids: Optional[Sequence[str]] = None,
        timeout_s: Optional[float] = None,
    ) -> PerceptionSummary:
        """
        Perceive orders concurrently.

        Args:
            images: Photo per order id, merged with images supplied earlier
            order_ids: Orders to (re-)perceive; default is every order
                without a result yet
            timeout_s: Per-call time budget; defaults to configuration

        Returns:
            PerceptionSummary over every perceived order, sorted by order id
        """
        async with self._exclusive("run_perception"):
            self._require_state(WorkflowState.PERCEPTION, reason="perception runs before validation")

            for order_id, image in (images or {}).items():
                if order_id not in self._orders:
                    logger.warning(f"Session {self.session_id}: image for unknown order {order_id} ignored")
                    continue
                self._images[order_id] = image

            if order_ids is None:
                targets = [oid for oid in sorted(self._orders) if not self._orders[oid].visual_check.is_terminal]
            else:
                targets = sorted(set(order_ids) & set(self._orders))

            timeout = timeout_s if timeout_s is not None else self.config.perception_timeout_seconds
            calls: Dict[str, asyncio.Task] = {}
            missing: List[str] = []
            for order_id in targets:
                image = self._images.get(order_id)
                if image is None:
                    missing.append(order_id)
                    continue
                calls[order_id] = asyncio.create_task(
                    asyncio.wait_for(self.perception_provider.analyze(image), timeout)
                )

            self._tasks.update(calls.values())
            try:
                results = await asyncio.gather(*calls.values(), return_exceptions=True)
            finally:
                self._tasks.difference_update(calls.values())
            self._ensure_open()

            for order_id in missing:
                self._perception_failed(order_id, WorkflowError(
                    code=ErrorCode.MISSING_IMAGE,
                    message=f"No image supplied for order {order_id}",
                    order_id=order_id,
                    recoverable=True,
                ))

            for order_id, result in zip(calls, results):
                if isinstance(result, PerceptionResult):
                    self._perception_succeeded(order_id, result)
                elif isinstance(result, asyncio.TimeoutError):
                    self._perception_failed(order_id, WorkflowError(
                        code=ErrorCode.PROVIDER_TIMEOUT,
                        message=f"Perception timed out after {timeout:g}s",
                        order_id=order_id,
                        recoverable=True,
                        details={"provider": _provider_name(self.perception_provider)},
                    ))
                elif isinstance(result, GMPFlowError):
                    self._perception_failed(order_id, WorkflowError.from_exception(result, order_id=order_id))
                else:
                    wrapped = ProviderUnavailable(
                        _provider_name(self.perception_provider),
                        f"Perception failed: {result!r}",
                    )
                    self._perception_failed(order_id, WorkflowError.from_exception(wrapped, order_id=order_id))

            summary = self.perception_summary()
            logger.info(
                f"Session {self.session_id}: perceived {len(targets)} order(s), "
                f"{summary.failures} unresolved"
            )
            return summary

    def _perception_succeeded(self, order_id: str, result: PerceptionResult) -> None:
        order = self._orders[order_id].with_perception(
            result.estimated_moisture_pct,
            result.verdict,
            result.rationale,
        )
        self._orders[order_id] = order
        self._perception[order_id] = OrderPerception(
            order_id=order_id,
            status=order.visual_check,
            result=result,
            extended_drying=needs_extended_drying(order),
        )

    def _perception_failed(self, order_id: str, error: WorkflowError) -> None:
        logger.warning(f"Session {self.session_id}: perception failed for {order_id}: {error.message}")
        self._orders[order_id] = self._orders[order_id].with_perception(None, None, error.message)
        self._perception[order_id] = OrderPerception(
            order_id=order_id,
            status=VisualCheckStatus.UNRESOLVED,
            error=error,
        )

    def perception_summary(self) -> PerceptionSummary:
        return PerceptionSummary(tuple(self._perception[oid] for oid in sorted(self._perception)))

    def advance_to_validation(self) -> None:
        """Leave perception once every order has a terminal visual check."""
        self._check_idle("advance_to_validation")
        self._require_state(WorkflowState.PERCEPTION, WorkflowState.VALIDATION)
        pending = [o.order_id for o in self.orders if not o.visual_check.is_terminal]
        if pending:
            raise InvalidTransition(
                WorkflowState.PERCEPTION,
                WorkflowState.VALIDATION,
                f"perception pending for {', '.join(pending)}",
            )
        self._transition(WorkflowState.VALIDATION, "perception complete")

    # ==================== Validation ====================

    def validate(self) -> ValidationReport:
        """Shop-level constraint check; repeatable, same inputs give equal reports."""
        self._check_idle("validate")
        self._require_state(WorkflowState.VALIDATION)
        self._last_report = self.validator.validate(self.orders, self.equipment)
        return self._last_report

    def advance_to_generation(self) -> ValidationReport:
        """
        Move to generation when no blocking finding remains.

        Raises:
            ConstraintViolation: With the blocking findings; state unchanged
        """
        report = self.validate()
        if not report.valid:
            logger.info(f"Session {self.session_id}: {len(report.blocking)} blocking finding(s), staying in validation")
            raise ConstraintViolation(
                f"{len(report.blocking)} blocking finding(s) prevent generation",
                findings=report.blocking,
                session_id=self.session_id,
            )
        self._transition(WorkflowState.GENERATION, f"validation passed with {len(report.warnings)} warning(s)")
        return report

    # ==================== Generation ====================

    async def generate(self, timeout_s: Optional[float] = None) -> GenerationOutcome:
        """
        Ask the generation provider for drafts and keep the valid ones.

        Every draft is converted, re-validated and re-scored by the core.
        The state stays GENERATION whatever happens; failures and empty
        rounds are reported in-band and the call can simply be retried.
        """
        async with self._exclusive("generate"):
            self._require_state(WorkflowState.GENERATION)
            self._round += 1
            orders = self.orders
            equipment = self.equipment
            provider = _provider_name(self.generation_provider)
            timeout = timeout_s if timeout_s is not None else self.config.generation_timeout_seconds

            task = asyncio.create_task(self.generation_provider.propose(orders, equipment))
            self._tasks.add(task)
            try:
                drafts = await asyncio.wait_for(task, timeout)
            except asyncio.TimeoutError:
                return self._generation_failed(WorkflowError(
                    code=ErrorCode.PROVIDER_TIMEOUT,
                    message=f"Generation timed out after {timeout:g}s",
                    recoverable=True,
                    details={"provider": provider},
                ))
            except asyncio.CancelledError:
                if self._status is SessionStatus.CANCELLED:
                    raise SessionClosed(f"Session {self.session_id} was cancelled", session_id=self.session_id) from None
                raise
            except ProviderUnavailable as e:
                return self._generation_failed(WorkflowError.from_exception(e))
            except Exception as e:
                return self._generation_failed(
                    WorkflowError.from_exception(ProviderUnavailable(provider, f"Generation failed: {e!r}"))
                )
            finally:
                self._tasks.discard(task)
            self._ensure_open()

            accepted: List[CandidatePlan] = []
            rejected: List[RejectedCandidate] = []
            taken = set(self._candidates)
            for draft in list(drafts or []):
                outcome = self._evaluate_draft(draft, orders, equipment, provider, taken)
                if isinstance(outcome, CandidatePlan):
                    accepted.append(outcome)
                    taken.add(outcome.plan_id)
                else:
                    rejected.append(outcome)
                    logger.info(f"Session {self.session_id}: rejected draft '{outcome.name}': {outcome.reason}")

            for candidate in accepted:
                self._candidates[candidate.plan_id] = candidate
            self._rejected.extend(rejected)

            error = None
            if not accepted:
                message = f"No valid candidate in this round (round {self._round}, {len(rejected)} rejected)"
                if self._candidates:
                    message += f"; {len(self._candidates)} candidate(s) from earlier rounds remain selectable"
                error = WorkflowError(
                    code=ErrorCode.NO_VALID_CANDIDATES,
                    message=message,
                    recoverable=True,
                    details={
                        "provider": provider,
                        "round": self._round,
                        "earlier_candidates": len(self._candidates),
                    },
                )
                logger.warning(f"Session {self.session_id}: {error.message}")
            else:
                logger.info(
                    f"Session {self.session_id}: round {self._round} accepted {len(accepted)}, "
                    f"rejected {len(rejected)}"
                )

            return GenerationOutcome(
                candidates=self.candidates,
                new_candidates=tuple(c.plan_id for c in accepted),
                rejected=tuple(rejected),
                error=error,
            )

    def _generation_failed(self, error: WorkflowError) -> GenerationOutcome:
        logger.warning(f"Session {self.session_id}: generation failed: {error.message}")
        return GenerationOutcome(candidates=self.candidates, error=error)

    def _evaluate_draft(
        self,
        draft: Any,
        orders: List[Order],
        equipment: List[Equipment],
        provider: str,
        taken: Set[str],
    ) -> Any:
        name = getattr(draft, "name", None) or "unnamed draft"
        draft_id = getattr(draft, "plan_id", None)
        try:
            if not isinstance(draft, PlanDraft):
                draft = PlanDraft.model_validate(draft)
                name, draft_id = draft.name, draft.plan_id
            plan = self._draft_to_plan(draft, self._unique_id(draft, taken), provider)
        except GMPFlowError as e:
            return RejectedCandidate(
                name=name,
                draft_id=draft_id,
                reason=f"malformed draft: {e.message}",
                error=WorkflowError.from_exception(e),
            )
        except (ValueError, TypeError) as e:
            error = WorkflowError.from_exception(InvalidRecord(f"Malformed draft: {e}"))
            return RejectedCandidate(name=name, draft_id=draft_id, reason=error.message, error=error)

        report = self.validator.validate(orders, equipment, plan)
        if not report.valid:
            return RejectedCandidate(
                name=draft.name,
                draft_id=draft.plan_id,
                reason=f"{len(report.blocking)} blocking finding(s)",
                findings=tuple(report.blocking),
            )

        kpis = self.scorer.score(plan, orders)
        return CandidatePlan(
            plan=plan.with_kpis(kpis),
            report=report,
            claimed_kpis=draft.kpis.model_dump() if draft.kpis else None,
            kpi_discrepancies=_kpi_discrepancies(draft.kpis, kpis),
            generation_round=self._round,
        )

    @staticmethod
    def _unique_id(draft: PlanDraft, taken: Set[str]) -> str:
        base = _slug(draft.plan_id or draft.name or "plan")
        plan_id = base
        suffix = 2
        while plan_id in taken:
            plan_id = f"{base}-{suffix}"
            suffix += 1
        return plan_id

    @staticmethod
    def _draft_to_plan(draft: PlanDraft, plan_id: str, provider: str) -> ProductionPlan:
        items = []
        for raw in draft.items:
            try:
                process = ProcessType(raw.process_type.strip().lower())
            except ValueError:
                raise InvalidRecord(
                    f"'{raw.process_type}' is not a process type",
                    order_id=raw.order_id,
                    field="process_type",
                )
            items.append(ScheduleItem(
                order_id=raw.order_id,
                equipment_id=raw.equipment_id,
                start=parse_datetime(raw.start, "start"),
                end=parse_datetime(raw.end, "end"),
                process_type=process,
                notes=raw.notes,
            ))
        return ProductionPlan(
            plan_id=plan_id,
            name=draft.name,
            items=tuple(items),
            description=draft.description,
            source=provider,
            strategy=draft.strategy,
        )

    # ==================== Decision ====================

    def select_plan(self, plan_id: str) -> ProductionPlan:
        """
        Confirm a candidate and book its equipment windows.

        Raises:
            UnknownCandidate: If plan_id is not a valid candidate
            ConstraintViolation: If the plan no longer validates
            DoubleBooking: If another session holds an overlapping window
        """
        self._check_idle("select_plan")
        self._require_state(WorkflowState.GENERATION, WorkflowState.DECISION)
        candidate = self._candidates.get(plan_id)
        if candidate is None:
            raise UnknownCandidate(
                f"Plan {plan_id} is not a candidate of session {self.session_id}",
                plan_id=plan_id,
                session_id=self.session_id,
            )

        report = self.validator.validate(self.orders, self.equipment, candidate.plan)
        if not report.valid:
            raise ConstraintViolation(
                f"Plan {plan_id} no longer validates",
                findings=report.blocking,
                plan_id=plan_id,
            )

        self.ledger.book(self.session_id, candidate.plan)
        for order_id in candidate.plan.order_ids:
            if order_id in self._orders:
                self._orders[order_id] = self._orders[order_id].with_status(OrderStatus.SCHEDULED)
        self._confirmed = candidate
        self._transition(WorkflowState.DECISION, f"selected {plan_id}")
        return candidate.plan

    def discard_decision(self) -> None:
        """Release the confirmed plan and return to generation; candidates are kept."""
        self._check_idle("discard_decision")
        self._require_state(WorkflowState.DECISION, WorkflowState.GENERATION)
        self.ledger.release(self.session_id)
        if self._confirmed is not None:
            for order_id in self._confirmed.plan.order_ids:
                if order_id in self._orders:
                    self._orders[order_id] = self._orders[order_id].with_status(OrderStatus.PENDING)
        discarded = self._confirmed.plan_id if self._confirmed else "none"
        self._confirmed = None
        self._transition(WorkflowState.GENERATION, f"discarded {discarded}")

    def export(self) -> PlanExport:
        """Read-only production instruction for the confirmed plan."""
        self._check_idle("export")
        self._require_state(WorkflowState.DECISION)
        candidate = self._confirmed
        plan = candidate.plan
        return PlanExport(
            session_id=self.session_id,
            plan_id=plan.plan_id,
            name=plan.name,
            strategy=plan.strategy,
            score=plan.score,
            kpis=plan.kpis or PlanKPIs(),
            items=plan.items,
            cards=tuple(build_production_cards(plan, self.orders, self.equipment)),
            warnings=tuple(candidate.report.warnings),
        )

    # ==================== Cancellation ====================

    def cancel(self) -> None:
        """Stop the session: cancel in-flight provider calls and release bookings."""
        if self._status is SessionStatus.CANCELLED:
            return
        self._status = SessionStatus.CANCELLED
        for task in list(self._tasks):
            task.cancel()
        self.ledger.release(self.session_id)
        self._confirmed = None
        logger.info(f"Session {self.session_id} cancelled in state {self._state.value}")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "status": self._status.value,
            "history": [e.to_dict() for e in self._history],
            "orders": [o.to_dict() for o in self.orders],
            "rejected_orders": [e.to_dict() for e in self.rejected_orders],
            "candidates": [c.plan_id for c in self.candidates],
            "confirmed_plan": self.confirmed_plan.plan_id if self.confirmed_plan else None,
        }


def _kpi_discrepancies(claimed: Optional[KPIDraft], computed: PlanKPIs) -> Dict[str, Dict[str, Any]]:
    """Provider KPI claims that disagree with the core's figures."""
    if claimed is None:
        return {}
    actual = {
        "total_duration_hours": computed.total_duration_hours,
        "cleaning_cycles": computed.cleaning_cycles,
        "equipment_utilization_pct": computed.equipment_utilization_pct,
    }
    discrepancies = {}
    for key, value in actual.items():
        stated = getattr(claimed, key)
        if stated is None:
            continue
        if abs(float(stated) - float(value)) > KPI_TOLERANCE:
            discrepancies[key] = {"claimed": stated, "computed": value}
    return discrepancies
