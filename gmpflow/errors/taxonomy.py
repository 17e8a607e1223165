"""
errors/taxonomy.py - Error classification system

Exception hierarchy raised by the scheduling engine, plus the structured
in-band WorkflowError that sessions return instead of raising.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from gmpflow.validators.taxonomy import ValidationFinding


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""
    # Entity construction (1xxx)
    ENTITY = "entity"

    # Constraint checks (2xxx)
    CONSTRAINT = "constraint"

    # External providers (3xxx)
    PROVIDER = "provider"

    # Session / state machine (4xxx)
    WORKFLOW = "workflow"

    # Interchange format (5xxx)
    SERIALIZATION = "serialization"

    # Anything else (9xxx)
    INTERNAL = "internal"


class ErrorCode(Enum):
    """Specific error codes."""

    # Entity (1xxx)
    INVALID_QUANTITY = 1001
    INVALID_INTERVAL = 1002
    INVALID_CAPACITY = 1003
    INVALID_RECORD = 1004

    # Constraint (2xxx)
    CONSTRAINT_VIOLATION = 2001

    # Provider (3xxx)
    PROVIDER_UNAVAILABLE = 3001
    PROVIDER_TIMEOUT = 3002
    DRAFT_REJECTED = 3003
    MISSING_IMAGE = 3004

    # Workflow (4xxx)
    INVALID_TRANSITION = 4001
    SESSION_BUSY = 4002
    SESSION_CLOSED = 4003
    NO_VALID_CANDIDATES = 4004
    UNKNOWN_CANDIDATE = 4005
    DOUBLE_BOOKING = 4006

    # Serialization (5xxx)
    UNSUPPORTED_SCHEMA = 5001

    # Internal (9xxx)
    INTERNAL = 9001


_CATEGORY_BY_PREFIX = {
    1: ErrorCategory.ENTITY,
    2: ErrorCategory.CONSTRAINT,
    3: ErrorCategory.PROVIDER,
    4: ErrorCategory.WORKFLOW,
    5: ErrorCategory.SERIALIZATION,
}

RECOVERABLE_CODES = frozenset({
    ErrorCode.PROVIDER_UNAVAILABLE,
    ErrorCode.PROVIDER_TIMEOUT,
    ErrorCode.MISSING_IMAGE,
    ErrorCode.NO_VALID_CANDIDATES,
    ErrorCode.SESSION_BUSY,
    ErrorCode.DOUBLE_BOOKING,
})


def category_for(code: ErrorCode) -> ErrorCategory:
    """Map an error code to its category by its thousands digit."""
    return _CATEGORY_BY_PREFIX.get(code.value // 1000, ErrorCategory.INTERNAL)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class GMPFlowError(Exception):
    """Base exception for the scheduling engine."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.code)

    @property
    def recoverable(self) -> bool:
        return self.code in RECOVERABLE_CODES

    def as_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.name,
            "numeric_code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": {k: _plain(v) for k, v in self.details.items()},
        }


class InvalidQuantity(GMPFlowError, ValueError):
    """Order quantity is not a positive number."""
    code = ErrorCode.INVALID_QUANTITY


class InvalidInterval(GMPFlowError, ValueError):
    """Schedule item ends at or before it starts."""
    code = ErrorCode.INVALID_INTERVAL


class InvalidCapacity(GMPFlowError, ValueError):
    """Equipment capacity is not a positive number."""
    code = ErrorCode.INVALID_CAPACITY


class InvalidRecord(GMPFlowError, ValueError):
    """A record could not be turned into an entity (missing field, bad enum)."""
    code = ErrorCode.INVALID_RECORD


class ConstraintViolation(GMPFlowError):
    """Blocking findings prevent the requested step."""
    code = ErrorCode.CONSTRAINT_VIOLATION

    def __init__(self, message: str, findings: Optional[List["ValidationFinding"]] = None, **details: Any):
        super().__init__(message, **details)
        self.findings = list(findings or [])

    def as_dict(self) -> Dict[str, Any]:
        data = super().as_dict()
        data["findings"] = [f.to_dict() for f in self.findings]
        return data


class ProviderUnavailable(GMPFlowError):
    """Perception or generation provider failed or timed out."""
    code = ErrorCode.PROVIDER_UNAVAILABLE

    def __init__(self, provider: str, message: Optional[str] = None, **details: Any):
        super().__init__(message or f"Provider '{provider}' is unavailable", provider=provider, **details)
        self.provider = provider


class NoValidCandidates(GMPFlowError):
    """Generation produced no plan that passed validation."""
    code = ErrorCode.NO_VALID_CANDIDATES


class InvalidTransition(GMPFlowError):
    """Requested workflow step is not legal from the current state."""
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, from_state: Any, to_state: Any, reason: str = ""):
        from_name = getattr(from_state, "value", from_state)
        to_name = getattr(to_state, "value", to_state)
        message = f"Cannot transition {from_name} -> {to_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, from_state=from_name, to_state=to_name)
        self.from_state = from_state
        self.to_state = to_state


class SessionBusy(GMPFlowError):
    """Another operation on the same session is in flight."""
    code = ErrorCode.SESSION_BUSY


class SessionClosed(GMPFlowError):
    """Session was cancelled."""
    code = ErrorCode.SESSION_CLOSED


class UnknownCandidate(GMPFlowError):
    """Selected plan id is not a valid candidate of the session."""
    code = ErrorCode.UNKNOWN_CANDIDATE


class DoubleBooking(GMPFlowError):
    """Equipment window is already held by another session."""
    code = ErrorCode.DOUBLE_BOOKING


class UnsupportedSchema(GMPFlowError):
    """Interchange payload has an unknown version or kind."""
    code = ErrorCode.UNSUPPORTED_SCHEMA


# =============================================================================
# IN-BAND ERROR
# =============================================================================

@dataclass
class WorkflowError:
    """Structured error returned by workflow operations instead of raised."""

    code: ErrorCode
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    order_id: Optional[str] = None
    equipment_id: Optional[str] = None
    rule_id: Optional[str] = None
    recoverable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.code)

    @classmethod
    def from_exception(cls, exc: BaseException, **context: Any) -> "WorkflowError":
        """Wrap any exception, keeping the code of engine errors."""
        if isinstance(exc, GMPFlowError):
            code = exc.code
            message = exc.message
            details = dict(exc.details)
        else:
            code = ErrorCode.INTERNAL
            message = str(exc) or type(exc).__name__
            details = {"exception": type(exc).__name__}
        return cls(
            code=code,
            message=message,
            order_id=context.pop("order_id", None),
            equipment_id=context.pop("equipment_id", None),
            rule_id=context.pop("rule_id", None),
            recoverable=code in RECOVERABLE_CODES,
            details={**details, **context},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.name,
            "numeric_code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "order_id": self.order_id,
            "equipment_id": self.equipment_id,
            "rule_id": self.rule_id,
            "recoverable": self.recoverable,
            "details": {k: _plain(v) for k, v in self.details.items()},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
