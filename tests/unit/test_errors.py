"""
tests/unit/test_errors.py - Tests for the error taxonomy.
"""

import pytest

from gmpflow.core.enums import ProcessType
from gmpflow.errors import (
    ConstraintViolation,
    DoubleBooking,
    ErrorCategory,
    ErrorCode,
    GMPFlowError,
    InvalidQuantity,
    InvalidTransition,
    ProviderUnavailable,
    SessionBusy,
    WorkflowError,
    category_for,
)
from gmpflow.validators import Severity, ValidationFinding


class TestErrorCodes:
    """Code to category mapping."""

    @pytest.mark.parametrize("code,category", [
        (ErrorCode.INVALID_QUANTITY, ErrorCategory.ENTITY),
        (ErrorCode.CONSTRAINT_VIOLATION, ErrorCategory.CONSTRAINT),
        (ErrorCode.PROVIDER_TIMEOUT, ErrorCategory.PROVIDER),
        (ErrorCode.SESSION_BUSY, ErrorCategory.WORKFLOW),
        (ErrorCode.UNSUPPORTED_SCHEMA, ErrorCategory.SERIALIZATION),
        (ErrorCode.INTERNAL, ErrorCategory.INTERNAL),
    ])
    def test_category(self, code, category):
        assert category_for(code) is category

    def test_recoverable(self):
        assert ProviderUnavailable("camera").recoverable
        assert SessionBusy("busy").recoverable
        assert DoubleBooking("taken").recoverable
        assert not InvalidQuantity("bad").recoverable


class TestExceptions:
    """Exception payloads."""

    def test_value_error_compatibility(self):
        with pytest.raises(ValueError):
            raise InvalidQuantity("quantity must be positive", value=-1)

    def test_as_dict_flattens_enums(self):
        error = GMPFlowError("boom", process=ProcessType.DRYING, stages=[ProcessType.WASHING])

        data = error.as_dict()

        assert data["code"] == "INTERNAL"
        assert data["details"] == {"process": "drying", "stages": ["washing"]}

    def test_invalid_transition_message(self):
        error = InvalidTransition("perception", "decision", "perception pending for ord-1")

        assert error.message == "Cannot transition perception -> decision: perception pending for ord-1"
        assert error.details == {"from_state": "perception", "to_state": "decision"}

    def test_constraint_violation_carries_findings(self):
        finding = ValidationFinding("tox:1", "toxicity_isolation", Severity.BLOCKING, "no gap")

        error = ConstraintViolation("1 blocking finding(s)", findings=[finding])

        assert error.as_dict()["findings"][0]["finding_id"] == "tox:1"

    def test_provider_default_message(self):
        error = ProviderUnavailable("llm-perception")
        assert "llm-perception" in error.message
        assert error.details["provider"] == "llm-perception"


class TestWorkflowError:
    """In-band errors."""

    def test_from_engine_exception(self):
        error = WorkflowError.from_exception(
            ProviderUnavailable("camera", "lens fogged"),
            order_id="ord-101",
            attempt=2,
        )

        assert error.code is ErrorCode.PROVIDER_UNAVAILABLE
        assert error.order_id == "ord-101"
        assert error.recoverable
        assert error.details == {"provider": "camera", "attempt": 2}

    def test_from_foreign_exception(self):
        error = WorkflowError.from_exception(KeyError("x"), equipment_id="eq1")

        assert error.code is ErrorCode.INTERNAL
        assert error.equipment_id == "eq1"
        assert error.details["exception"] == "KeyError"
        assert not error.recoverable

    def test_to_dict(self):
        data = WorkflowError(ErrorCode.MISSING_IMAGE, "no photo", order_id="ord-1", recoverable=True).to_dict()

        assert data["code"] == "MISSING_IMAGE"
        assert data["numeric_code"] == 3004
        assert data["category"] == "provider"
        assert data["severity"] == "error"
