"""
Retry policy and attempt bookkeeping for feed transfers.

Transfers retry the whole fetch (reconnect, list, download) with a fixed
delay between attempts up to a ceiling.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-delay retry configuration.

    Examples:
        >>> policy = RetryPolicy(max_attempts=3, delay=0.5)
        >>> policy.should_retry(attempt=1)
        True
        >>> policy.should_retry(attempt=3)
        False
    """

    # Total attempts including the first one
    max_attempts: int = 10

    # Seconds to wait between attempts
    delay: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def should_retry(self, attempt: int) -> bool:
        """Whether another attempt follows ``attempt`` (1-indexed)."""
        return attempt < self.max_attempts


@dataclass
class RetryState:
    """
    State tracking for a retried operation.

    Stores failure history for logging and for the error finally surfaced.
    """

    operation: str
    attempt: int = 0
    total_attempts: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    delays: list[float] = field(default_factory=list)
    result: Any = None
    final_error: Exception | None = None
    succeeded: bool = False

    def record_failure(self, error: Exception) -> None:
        self.total_attempts += 1
        self.final_error = error
        self.failures.append(
            {
                "attempt": self.attempt,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "timestamp": time.time(),
            }
        )

    def record_delay(self, delay: float) -> None:
        self.delays.append(delay)

    def mark_success(self, result: Any) -> None:
        self.total_attempts += 1
        self.succeeded = True
        self.result = result


DEFAULT_TRANSFER_POLICY = RetryPolicy(max_attempts=10, delay=5.0)
