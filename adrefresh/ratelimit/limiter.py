"""Client-side rate limiter built on per-key token buckets.

:class:`ClientRateLimiter` answers "may this action happen now?" for a key.
Buckets are created lazily, full, the first time a key is checked and live
for the lifetime of the limiter (or until :meth:`ClientRateLimiter.reset`).

After every decision the bucket is written to a
:class:`~adrefresh.storage.kv_store.KeyValueStore` under ``rate_limit_<key>``.
That write is best-effort and advisory: failures are logged and swallowed,
and the persisted state is never read back when a bucket is created.

The limiter fails open.  If the check itself raises, the request is allowed
with ``remaining = max_requests - 1``.

Typical usage::

    limiter = build_pick_rate_limiter(settings, store)

    result = await limiter.check_limit("pick")
    if not result.allowed:
        show_cooldown(result.retry_after)
"""

from __future__ import annotations

import json
import logging
import socket
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from adrefresh.core import events
from adrefresh.ratelimit.token_bucket import TokenBucket
from adrefresh.storage.kv_store import KeyValueStore, MemoryKeyValueStore

if TYPE_CHECKING:
    from adrefresh.core.settings import Settings

__all__ = [
    "RateLimitResult",
    "ClientRateLimiter",
    "STORAGE_KEY_PREFIX",
    "build_pick_rate_limiter",
    "build_api_rate_limiter",
]

logger = logging.getLogger(__name__)

#: Persisted bucket state lives under ``rate_limit_<key>``.
STORAGE_KEY_PREFIX = "rate_limit_"

_DEFAULT_KEY = "default"


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for one :meth:`ClientRateLimiter.check_limit` call.

    Attributes:
        allowed: Whether the action may proceed.
        remaining: Whole tokens left after the decision.
        reset_at: Clock timestamp one full window after the decision.
        retry_after: Seconds until a token is available; only set when
            ``allowed`` is ``False``.
    """

    allowed: bool
    remaining: int
    reset_at: float
    retry_after: float | None = None


class ClientRateLimiter:
    """Per-key token-bucket limiter.

    Args:
        max_requests: Bucket capacity.
        window: Seconds in which a full bucket's worth of tokens is regained.
        store: Where bucket state is persisted.  Defaults to a fresh
            :class:`~adrefresh.storage.kv_store.MemoryKeyValueStore`.
        clock: Callable returning the current time in seconds.  Defaults to
            :func:`time.time`.  Override in tests for deterministic refill.
        key_generator: Supplies the key when :meth:`check_limit` is called
            without one.  Defaults to the constant ``"default"``.
    """

    def __init__(
        self,
        max_requests: int,
        window: float,
        *,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
        key_generator: Callable[[], str] | None = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self._max_requests = max_requests
        self._window = window
        self._store = store if store is not None else MemoryKeyValueStore()
        self._clock = clock
        self._key_generator = key_generator or (lambda: _DEFAULT_KEY)
        self._buckets: dict[str, TokenBucket] = {}

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window(self) -> float:
        return self._window

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check_limit(self, key: str | None = None) -> RateLimitResult:
        """Consume one token for *key* if possible.

        The decision is taken before the first ``await``, so concurrent
        callers on the same event loop never double-spend a token.

        Args:
            key: Bucket key.  ``None`` asks the key generator.

        Returns:
            A :class:`RateLimitResult`.  Never raises.
        """
        try:
            resolved = key if key is not None else self._key_generator()
            now = self._clock()
            bucket = self._buckets.get(resolved)
            if bucket is None:
                bucket = TokenBucket.full(self._max_requests, self._window, now)
                self._buckets[resolved] = bucket

            allowed = bucket.try_consume(now)
            reset_at = now + self._window
            result = RateLimitResult(
                allowed=allowed,
                remaining=bucket.remaining,
                reset_at=reset_at,
                retry_after=None if allowed else bucket.retry_after(),
            )
        except Exception:
            logger.warning(
                "Rate limit check failed; allowing request",
                exc_info=True,
                extra={"event": events.RATE_LIMIT_FAIL_OPEN},
            )
            return RateLimitResult(
                allowed=True,
                remaining=self._max_requests - 1,
                reset_at=time.time() + self._window,
            )

        if not allowed:
            logger.info(
                "Rate limit exceeded for %r; retry in %.2f s",
                resolved,
                result.retry_after,
                extra={"event": events.RATE_LIMIT_DENIED},
            )

        await self._persist(resolved, bucket, reset_at)
        return result

    async def reset(self, key: str | None = None) -> None:
        """Forget the bucket for *key*; the next check starts full."""
        resolved = key if key is not None else self._key_generator()
        self._buckets.pop(resolved, None)
        try:
            await self._store.delete(STORAGE_KEY_PREFIX + resolved)
        except Exception:
            logger.warning(
                "Failed to delete persisted rate-limit state for %r",
                resolved,
                exc_info=True,
                extra={"event": events.RATE_LIMIT_PERSIST_ERROR},
            )

    def tracked_keys(self) -> list[str]:
        """Keys that currently have a live bucket."""
        return sorted(self._buckets)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _persist(self, key: str, bucket: TokenBucket, reset_at: float) -> None:
        payload = json.dumps(
            {
                "tokens": bucket.tokens,
                "last_refill": bucket.last_refill_at,
                "reset_at": reset_at,
            }
        )
        try:
            await self._store.set(STORAGE_KEY_PREFIX + key, payload)
        except Exception:
            logger.warning(
                "Failed to persist rate-limit state for %r",
                key,
                exc_info=True,
                extra={"event": events.RATE_LIMIT_PERSIST_ERROR},
            )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_pick_rate_limiter(
    settings: Settings,
    store: KeyValueStore | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> ClientRateLimiter:
    """Limiter guarding the user-facing pick action (30 per minute by default).

    Keyless checks share one bucket per host, ``picker_<hostname>``.
    """
    host_key = f"picker_{socket.gethostname()}"
    return ClientRateLimiter(
        settings.pick_rate_limit_max_requests,
        settings.pick_rate_limit_window,
        store=store,
        clock=clock,
        key_generator=lambda: host_key,
    )


def build_api_rate_limiter(
    settings: Settings,
    store: KeyValueStore | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> ClientRateLimiter:
    """Limiter guarding outbound API calls (10 per minute by default).

    Keyless checks use a session key, ``session_<random>``, fixed for the
    lifetime of the returned limiter.
    """
    session_key = f"session_{uuid.uuid4().hex[:12]}"
    return ClientRateLimiter(
        settings.api_rate_limit_max_requests,
        settings.api_rate_limit_window,
        store=store,
        clock=clock,
        key_generator=lambda: session_key,
    )
