"""
gmpflow.errors - Error taxonomy.
"""

from .taxonomy import (
    ErrorSeverity,
    ErrorCategory,
    ErrorCode,
    RECOVERABLE_CODES,
    category_for,
    GMPFlowError,
    InvalidQuantity,
    InvalidInterval,
    InvalidCapacity,
    InvalidRecord,
    ConstraintViolation,
    ProviderUnavailable,
    NoValidCandidates,
    InvalidTransition,
    SessionBusy,
    SessionClosed,
    UnknownCandidate,
    DoubleBooking,
    UnsupportedSchema,
    WorkflowError,
)

__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorCode",
    "RECOVERABLE_CODES",
    "category_for",
    "GMPFlowError",
    "InvalidQuantity",
    "InvalidInterval",
    "InvalidCapacity",
    "InvalidRecord",
    "ConstraintViolation",
    "ProviderUnavailable",
    "NoValidCandidates",
    "InvalidTransition",
    "SessionBusy",
    "SessionClosed",
    "UnknownCandidate",
    "DoubleBooking",
    "UnsupportedSchema",
    "WorkflowError",
]
