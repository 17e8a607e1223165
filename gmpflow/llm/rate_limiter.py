"""
llm/rate_limiter.py - Token bucket request limiter.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict

logger = logging.getLogger("llm.rate_limiter")


@dataclass
class RateLimiter:
    """Allows bursts up to `burst_capacity`, then `requests_per_minute`."""

    requests_per_minute: int = 60
    burst_capacity: int = 10
    _tokens: float = field(init=False)
    _updated: float = field(init=False)
    _denied: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        self._tokens = float(self.burst_capacity)
        self._updated = time.monotonic()

    @property
    def _rate_per_second(self) -> float:
        return self.requests_per_minute / 60.0

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(
            float(self.burst_capacity),
            self._tokens + (now - self._updated) * self._rate_per_second,
        )
        self._updated = now

    def allow(self) -> bool:
        """Consume a token if one is available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            self._denied += 1
        logger.warning(f"Rate limit reached ({self._denied} denied so far)")
        return False

    def wait_time(self) -> float:
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) / self._rate_per_second

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests_per_minute": self.requests_per_minute,
            "denied_requests": self._denied,
            "current_tokens": round(self._tokens, 2),
        }
