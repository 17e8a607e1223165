"""
llm/exceptions.py - LLM client exceptions.

Raised inside the LLM layer only; the perception and generation providers
translate them into ProviderUnavailable at their boundary.
"""

from __future__ import annotations

from typing import Optional


class LLMError(Exception):
    """Base exception for LLM calls."""

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.request_id = request_id

    def __str__(self) -> str:
        if self.request_id:
            return f"{self.message} [request_id={self.request_id}]"
        return self.message


class RateLimitError(LLMError):
    """Local request budget exhausted."""

    def __init__(
        self,
        retry_after_seconds: Optional[float] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__("Rate limit exceeded", recoverable=True, request_id=request_id)
        self.retry_after_seconds = retry_after_seconds


class ProviderUnavailableError(LLMError):
    """Backend cannot be reached or its client cannot be built."""

    def __init__(
        self,
        provider: str,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message or f"LLM provider '{provider}' is unavailable",
            recoverable=True,
            request_id=request_id,
        )
        self.provider = provider


class ValidationError(LLMError):
    """Response is not JSON or doesn't match the expected schema."""

    def __init__(
        self,
        message: str = "Response validation failed",
        raw_response: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message, recoverable=False, request_id=request_id)
        self.raw_response = raw_response


class TimeoutError(LLMError):
    """Request exceeded its time budget."""

    def __init__(self, timeout_seconds: float, request_id: Optional[str] = None):
        super().__init__(
            f"Request timed out after {timeout_seconds}s",
            recoverable=True,
            request_id=request_id,
        )
        self.timeout_seconds = timeout_seconds


class TransientError(LLMError):
    """Failure worth retrying (overload, 5xx, dropped connection)."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message, recoverable=True, request_id=request_id)
        self.original_error = original_error
