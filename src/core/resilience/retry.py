"""
Retry budget and backoff configuration.

Retry decisions are made by the caller, which knows how its failures are
classified (transport codes for token acquisition, for example). This module
only answers two questions: is there budget left, and how long to wait.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # If False, delays are exactly base_delay * exponential_base**attempt
    jitter: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # Keep boolean if already bool, otherwise convert
        # (bool('false') would be True, so we need this check)
        if not isinstance(self.jitter, bool):
            self.jitter = str(self.jitter).strip().lower() in ("1", "true", "yes", "on")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def fixed(cls, retries: int, interval: float) -> "RetryConfig":
        """Budget of ``retries`` retries after the first attempt, evenly spaced."""
        return cls(
            max_attempts=int(retries) + 1,
            base_delay=interval,
            max_delay=max(float(interval), 0.0),
            exponential_base=1.0,
            jitter=False,
        )

    @property
    def retries(self) -> int:
        """Number of retries allowed after the initial attempt."""
        return self.max_attempts - 1

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before the next attempt.

        Args:
            attempt: 0-indexed attempt number that just failed

        Returns:
            Delay in seconds
        """
        base_delay = self.base_delay * (self.exponential_base**attempt)

        if self.jitter:
            # Equal jitter: half fixed, half random
            base_delay = (base_delay / 2) + random.uniform(0, base_delay / 2)

        return min(base_delay, self.max_delay)

    def should_retry(self, attempt: int, retriable: bool = True) -> bool:
        """
        Determine if a failed attempt should be retried.

        Args:
            attempt: 0-indexed attempt number that just failed
            retriable: Whether the failure was classified as retriable

        Returns:
            True if budget remains and the failure is retriable
        """
        if not retriable:
            return False
        return attempt < self.max_attempts - 1


# Token acquisition: four retries, two seconds apart
TOKEN_RETRY = RetryConfig.fixed(retries=4, interval=2.0)


__all__ = [
    "RetryConfig",
    "TOKEN_RETRY",
]
