"""Token bucket primitive.

A bucket holds up to ``capacity`` tokens and regains them linearly, a full
bucket's worth per ``window`` seconds.  Every observation goes through
:meth:`refill` first, so ``0 <= tokens <= capacity`` always holds when callers
look.

The bucket knows nothing about clocks: callers pass ``now`` explicitly, which
keeps it deterministic in tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

__all__ = ["TokenBucket"]


@dataclass
class TokenBucket:
    """Mutable state of one rate-limit key.

    Attributes:
        capacity: Maximum number of tokens (equals the request budget).
        tokens: Current token count; fractional between refills.
        window: Seconds needed to refill an empty bucket.
        last_refill_at: Clock timestamp (seconds) of the last refill.
    """

    capacity: int
    tokens: float
    window: float
    last_refill_at: float

    @classmethod
    def full(cls, capacity: int, window: float, now: float) -> TokenBucket:
        """Create a full bucket that regains *capacity* tokens per *window*."""
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        return cls(capacity=capacity, tokens=float(capacity), window=window, last_refill_at=now)

    @property
    def refill_rate_per_second(self) -> float:
        return self.capacity / self.window

    def refill(self, now: float) -> None:
        # A clock that went backwards adds nothing and never moves the anchor back.
        elapsed = max(0.0, now - self.last_refill_at)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.capacity / self.window)
        self.last_refill_at = max(self.last_refill_at, now)

    def try_consume(self, now: float) -> bool:
        """Refill, then take one token if a whole one is available."""
        self.refill(now)
        if self.tokens < 1.0:
            return False
        self.tokens -= 1.0
        return True

    @property
    def remaining(self) -> int:
        """Whole tokens currently available."""
        return max(0, math.floor(self.tokens))

    def retry_after(self) -> float:
        """Seconds until one whole token will be available."""
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.refill_rate_per_second
