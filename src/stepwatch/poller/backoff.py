"""Exponential backoff for repeated refresh failures.

Tracks consecutive failures of the data refresh and turns the count into
the delay before the next attempt: ``min(base * 2**(n - 1), max)``.
No jitter.
"""

import time
from dataclasses import dataclass


@dataclass
class BackoffConfig:
    """Configuration for backoff behavior."""

    base_delay: float = 1.0
    """Seconds to wait after the first failure."""

    max_delay: float = 60.0
    """Ceiling for any single delay."""


@dataclass
class PollState:
    """Consecutive-failure counter behind the backoff delay."""

    consecutive_error_count: int = 0
    last_attempt: float | None = None
    """``time.monotonic()`` of the most recent attempt."""


class Backoff:
    """Track refresh success/failure and compute the next delay.

    Usage::

        backoff = Backoff()
        outcome = refresh()
        if outcome.ok:
            backoff.record_success()
            delay = refresh_interval
        else:
            delay = backoff.record_failure()
    """

    def __init__(self, config: BackoffConfig | None = None):
        self.config = config or BackoffConfig()
        self.state = PollState()

    @property
    def consecutive_errors(self) -> int:
        return self.state.consecutive_error_count

    def delay_for(self, consecutive_errors: int) -> float:
        """Delay after *consecutive_errors* failures in a row (0 means no backoff)."""
        if consecutive_errors <= 0:
            return 0.0
        # Cap the exponent so huge failure counts cannot overflow
        exponent = min(consecutive_errors - 1, 32)
        return min(self.config.base_delay * (2**exponent), self.config.max_delay)

    def record_failure(self) -> float:
        """Count a failure and return the delay before the next attempt."""
        self.state.consecutive_error_count += 1
        self.state.last_attempt = time.monotonic()
        return self.delay_for(self.state.consecutive_error_count)

    def record_success(self) -> None:
        self.state.consecutive_error_count = 0
        self.state.last_attempt = time.monotonic()

    def reset(self) -> None:
        """Forget all failures (explicit resume)."""
        self.state = PollState()

    def next_delay(self) -> float:
        """Delay the *next* failure would produce."""
        return self.delay_for(self.state.consecutive_error_count + 1)

    def get_status(self) -> dict:
        return {
            "consecutive_errors": self.state.consecutive_error_count,
            "next_failure_delay": self.next_delay(),
            "last_attempt": self.state.last_attempt,
        }
