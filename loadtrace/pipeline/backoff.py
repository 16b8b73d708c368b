"""
Exponential backoff for export retries
"""

import random
import threading

from loadtrace.config import RetryPolicy


class BackoffTimer:
    """Exponential backoff timer

    Provides exponential backoff with jitter for retry operations. Waits are
    interruptible through a threading.Event so that a shutdown never sits out
    a long backoff.
    """

    def __init__(self,
                 initial: float = 0.1,
                 maximum: float = 30.0,
                 factor: float = 2.0,
                 jitter: float = 0.2):
        """Initialize backoff timer

        Args:
            initial: Initial delay (seconds)
            maximum: Maximum delay (seconds)
            factor: Growth factor
            jitter: Jitter ratio (0-1)
        """
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self.jitter = jitter
        self.attempts = 0

    @classmethod
    def from_policy(cls, policy: RetryPolicy) -> "BackoffTimer":
        return cls(
            initial=policy.initial_backoff,
            maximum=policy.max_backoff,
            factor=policy.multiplier,
            jitter=policy.jitter,
        )

    def reset(self):
        """Reset attempt count"""
        self.attempts = 0

    def next_delay(self) -> float:
        """Get next delay time (seconds)

        Returns:
            float: Delay time (seconds)
        """
        delay = min(self.initial * (self.factor ** self.attempts), self.maximum)

        if self.jitter > 0:
            jitter_amount = delay * self.jitter
            delay = delay - jitter_amount + (random.random() * jitter_amount * 2)

        self.attempts += 1
        return max(delay, 0.0)

    def wait(self, stop_event: threading.Event) -> bool:
        """Sleep for the next delay unless stop_event is set first

        Returns:
            bool: True if the full delay elapsed, False if interrupted
        """
        return not stop_event.wait(self.next_delay())
