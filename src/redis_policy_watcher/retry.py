# redis_policy_watcher/retry.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Backoff policy for re-subscribing after broker failures."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RetryPolicy:
    """Exponential backoff between subscription attempts.

    Attributes:
        initial_delay: Delay in seconds after the first failure.
        max_delay: Upper bound for any single delay.
        multiplier: Growth factor applied per consecutive failure.
        max_retries: Consecutive failures tolerated before the loop gives up.
            None retries forever.
    """

    initial_delay: float = 0.1
    max_delay: float = 30.0
    multiplier: float = 2.0
    max_retries: Optional[int] = None

    def delay_for(self, attempt: int) -> float:
        """Return the delay before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        try:
            delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        except OverflowError:
            return self.max_delay
        return min(self.max_delay, delay)

    def exhausted(self, attempt: int) -> bool:
        """Return True once ``attempt`` consecutive failures exceed the limit."""
        if self.max_retries is None:
            return False
        return attempt > self.max_retries
