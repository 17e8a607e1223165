"""
workflow/transitions.py - Workflow states and legal transitions.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class WorkflowState(Enum):
    PERCEPTION = "perception"
    VALIDATION = "validation"
    GENERATION = "generation"
    DECISION = "decision"


class SessionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


# ==================== Legal State Transitions ====================
# Maps each state to the states it can transition to

LEGAL_TRANSITIONS: Dict[WorkflowState, List[WorkflowState]] = {
    WorkflowState.PERCEPTION: [
        WorkflowState.VALIDATION,
    ],

    WorkflowState.VALIDATION: [
        WorkflowState.GENERATION,
    ],

    WorkflowState.GENERATION: [
        WorkflowState.DECISION,
    ],

    # Explicit discard of the selected plan
    WorkflowState.DECISION: [
        WorkflowState.GENERATION,
    ],
}


def is_valid_transition(from_state: WorkflowState, to_state: WorkflowState) -> bool:
    return to_state in LEGAL_TRANSITIONS.get(from_state, [])


# ==================== Transition Event ====================

@dataclass(frozen=True)
class TransitionEvent:
    """Record of one entered state."""
    to_state: str
    from_state: Optional[str] = None
    reason: str = ""
    session_id: str = ""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def states_of(history: Tuple[TransitionEvent, ...]) -> List[WorkflowState]:
    return [WorkflowState(e.to_state) for e in history]
