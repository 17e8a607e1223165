"""
gmpflow.workflow - Session state machine and shared equipment ledger.
"""

from .transitions import (
    WorkflowState,
    SessionStatus,
    LEGAL_TRANSITIONS,
    TransitionEvent,
    is_valid_transition,
    states_of,
)
from .ledger import Booking, EquipmentBookingLedger, get_shared_ledger, reset_shared_ledger
from .schema import (
    OrderPerception,
    PerceptionSummary,
    CandidatePlan,
    RejectedCandidate,
    GenerationOutcome,
    PlanExport,
)
from .session import SchedulingWorkflow

__all__ = [
    "WorkflowState",
    "SessionStatus",
    "LEGAL_TRANSITIONS",
    "TransitionEvent",
    "is_valid_transition",
    "states_of",
    "Booking",
    "EquipmentBookingLedger",
    "get_shared_ledger",
    "reset_shared_ledger",
    "OrderPerception",
    "PerceptionSummary",
    "CandidatePlan",
    "RejectedCandidate",
    "GenerationOutcome",
    "PlanExport",
    "SchedulingWorkflow",
]
