"""Token-bucket rate limiting for user actions and outbound calls."""

from adrefresh.ratelimit.limiter import (
    ClientRateLimiter,
    RateLimitResult,
    build_api_rate_limiter,
    build_pick_rate_limiter,
)
from adrefresh.ratelimit.token_bucket import TokenBucket

__all__ = [
    "TokenBucket",
    "ClientRateLimiter",
    "RateLimitResult",
    "build_pick_rate_limiter",
    "build_api_rate_limiter",
]
