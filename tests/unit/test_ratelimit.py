"""Unit tests for the token bucket and :class:`ClientRateLimiter`.

Tests cover:
- ``TokenBucket`` refill arithmetic, capacity cap and retry estimate.
- ``check_limit``: capacity exhaustion, refill after a window, per-key
  isolation, default and per-factory key generation.
- Best-effort persistence: state written under ``rate_limit_<key>``,
  store failures swallowed, persisted state never read back.
- Fail-open behaviour and ``reset``.
- Settings-driven factories.
"""

from __future__ import annotations

import json
import socket
from typing import Any
from unittest.mock import AsyncMock

import pytest

from adrefresh.core.exceptions import StorageError
from adrefresh.ratelimit.limiter import (
    STORAGE_KEY_PREFIX,
    ClientRateLimiter,
    build_api_rate_limiter,
    build_pick_rate_limiter,
)
from adrefresh.ratelimit.token_bucket import TokenBucket
from adrefresh.storage.kv_store import MemoryKeyValueStore

# ---------------------------------------------------------------------------
# TokenBucket
# ---------------------------------------------------------------------------


class TestTokenBucket:
    def test_full_bucket_starts_at_capacity(self) -> None:
        bucket = TokenBucket.full(5, 10.0, now=0.0)
        assert bucket.tokens == 5.0
        assert bucket.refill_rate_per_second == pytest.approx(0.5)

    def test_refill_is_linear_and_capped(self) -> None:
        bucket = TokenBucket(capacity=4, tokens=0.0, window=8.0, last_refill_at=0.0)
        bucket.refill(2.0)
        assert bucket.tokens == pytest.approx(1.0)
        bucket.refill(100.0)
        assert bucket.tokens == 4.0

    def test_clock_going_backwards_adds_nothing(self) -> None:
        bucket = TokenBucket(capacity=4, tokens=1.0, window=8.0, last_refill_at=10.0)
        bucket.refill(5.0)
        assert bucket.tokens == 1.0
        assert bucket.last_refill_at == 10.0

    def test_time_is_not_credited_twice_after_clock_steps_back(self) -> None:
        bucket = TokenBucket(capacity=4, tokens=0.0, window=8.0, last_refill_at=10.0)
        bucket.refill(6.0)
        bucket.refill(12.0)
        # Only 10 -> 12 is new time: 2 s at 0.5 tokens/s.
        assert bucket.tokens == pytest.approx(1.0)
        assert bucket.last_refill_at == 12.0

    def test_try_consume_needs_a_whole_token(self) -> None:
        bucket = TokenBucket(capacity=2, tokens=0.5, window=2.0, last_refill_at=0.0)
        assert bucket.try_consume(0.0) is False
        assert bucket.retry_after() == pytest.approx(0.5)
        assert bucket.try_consume(0.5) is True
        assert bucket.tokens == pytest.approx(0.0)

    @pytest.mark.parametrize(("capacity", "window"), [(0, 1.0), (1, 0.0), (1, -5.0)])
    def test_invalid_parameters_rejected(self, capacity: int, window: float) -> None:
        with pytest.raises(ValueError):
            TokenBucket.full(capacity, window, now=0.0)


# ---------------------------------------------------------------------------
# ClientRateLimiter.check_limit
# ---------------------------------------------------------------------------


class TestCheckLimit:
    @pytest.mark.asyncio
    async def test_capacity_then_denied(self, clock: Any) -> None:
        limiter = ClientRateLimiter(10, 60.0, clock=clock)

        results = [await limiter.check_limit("session") for _ in range(10)]
        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == list(range(9, -1, -1))
        assert all(r.retry_after is None for r in results)

        denied = await limiter.check_limit("session")
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.retry_after == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_reset_at_is_one_window_ahead(self, clock: Any) -> None:
        limiter = ClientRateLimiter(3, 60.0, clock=clock)
        result = await limiter.check_limit("k")
        assert result.reset_at == pytest.approx(clock() + 60.0)

    @pytest.mark.asyncio
    async def test_full_window_restores_capacity(self, clock: Any) -> None:
        limiter = ClientRateLimiter(10, 60.0, clock=clock)
        for _ in range(10):
            await limiter.check_limit("k")
        assert (await limiter.check_limit("k")).allowed is False

        clock.advance(60.0)
        results = [await limiter.check_limit("k") for _ in range(10)]
        assert all(r.allowed for r in results)
        assert (await limiter.check_limit("k")).allowed is False

    @pytest.mark.asyncio
    async def test_partial_refill_allows_one(self, clock: Any) -> None:
        limiter = ClientRateLimiter(10, 60.0, clock=clock)
        for _ in range(10):
            await limiter.check_limit("k")
        clock.advance(6.0)
        assert (await limiter.check_limit("k")).allowed is True
        assert (await limiter.check_limit("k")).allowed is False

    @pytest.mark.asyncio
    async def test_retry_after_shrinks_with_elapsed_time(self, clock: Any) -> None:
        limiter = ClientRateLimiter(1, 10.0, clock=clock)
        await limiter.check_limit("k")
        clock.advance(4.0)
        denied = await limiter.check_limit("k")
        assert denied.retry_after == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_keys_are_isolated(self, clock: Any) -> None:
        limiter = ClientRateLimiter(1, 60.0, clock=clock)
        assert (await limiter.check_limit("a")).allowed is True
        assert (await limiter.check_limit("a")).allowed is False
        assert (await limiter.check_limit("b")).allowed is True
        assert limiter.tracked_keys() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_key_generator_supplies_missing_key(self, clock: Any) -> None:
        limiter = ClientRateLimiter(2, 60.0, clock=clock, key_generator=lambda: "gen")
        await limiter.check_limit()
        assert limiter.tracked_keys() == ["gen"]

    @pytest.mark.asyncio
    async def test_default_key(self, clock: Any) -> None:
        limiter = ClientRateLimiter(2, 60.0, clock=clock)
        await limiter.check_limit()
        assert limiter.tracked_keys() == ["default"]

    def test_invalid_configuration_rejected(self) -> None:
        with pytest.raises(ValueError):
            ClientRateLimiter(0, 60.0)
        with pytest.raises(ValueError):
            ClientRateLimiter(1, 0.0)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    @pytest.mark.asyncio
    async def test_state_written_after_each_decision(self, clock: Any) -> None:
        store = MemoryKeyValueStore()
        limiter = ClientRateLimiter(5, 60.0, store=store, clock=clock)

        await limiter.check_limit("pick")
        saved = json.loads(await store.get("rate_limit_pick"))
        assert saved["tokens"] == pytest.approx(4.0)
        assert saved["last_refill"] == clock()
        assert saved["reset_at"] == pytest.approx(clock() + 60.0)

    @pytest.mark.asyncio
    async def test_store_failure_does_not_change_decision(self, clock: Any) -> None:
        store = MemoryKeyValueStore()
        store.set = AsyncMock(side_effect=StorageError("disk full"))  # type: ignore[method-assign]
        limiter = ClientRateLimiter(1, 60.0, store=store, clock=clock)

        assert (await limiter.check_limit("k")).allowed is True
        assert (await limiter.check_limit("k")).allowed is False
        assert store.set.await_count == 2

    @pytest.mark.asyncio
    async def test_persisted_state_is_not_restored(self, clock: Any) -> None:
        store = MemoryKeyValueStore()
        await store.set("rate_limit_k", json.dumps({"tokens": 0.0, "last_refill": clock()}))
        limiter = ClientRateLimiter(3, 60.0, store=store, clock=clock)

        result = await limiter.check_limit("k")
        assert result.allowed is True
        assert result.remaining == 2


# ---------------------------------------------------------------------------
# Fail-open and reset
# ---------------------------------------------------------------------------


class TestFailOpenAndReset:
    @pytest.mark.asyncio
    async def test_failing_clock_fails_open(self) -> None:
        def broken_clock() -> float:
            raise RuntimeError("clock unavailable")

        limiter = ClientRateLimiter(10, 60.0, clock=broken_clock)
        result = await limiter.check_limit("k")
        assert result.allowed is True
        assert result.remaining == 9
        assert result.retry_after is None

    @pytest.mark.asyncio
    async def test_failing_key_generator_fails_open(self, clock: Any) -> None:
        def broken_keys() -> str:
            raise KeyError("no session")

        limiter = ClientRateLimiter(4, 60.0, clock=clock, key_generator=broken_keys)
        result = await limiter.check_limit()
        assert result.allowed is True
        assert result.remaining == 3

    @pytest.mark.asyncio
    async def test_reset_restores_full_bucket_and_deletes_state(self, clock: Any) -> None:
        store = MemoryKeyValueStore()
        limiter = ClientRateLimiter(1, 60.0, store=store, clock=clock)
        await limiter.check_limit("k")
        assert (await limiter.check_limit("k")).allowed is False

        await limiter.reset("k")
        assert await store.get("rate_limit_k") is None
        assert (await limiter.check_limit("k")).allowed is True

    @pytest.mark.asyncio
    async def test_reset_swallows_store_errors(self, clock: Any) -> None:
        store = MemoryKeyValueStore()
        store.delete = AsyncMock(side_effect=StorageError("locked"))  # type: ignore[method-assign]
        limiter = ClientRateLimiter(1, 60.0, store=store, clock=clock)
        await limiter.check_limit("k")
        await limiter.reset("k")
        assert limiter.tracked_keys() == []


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


class TestFactories:
    def test_defaults(self, make_settings: Any) -> None:
        settings = make_settings()
        pick = build_pick_rate_limiter(settings)
        api = build_api_rate_limiter(settings)
        assert (pick.max_requests, pick.window) == (30, 60.0)
        assert (api.max_requests, api.window) == (10, 60.0)

    @pytest.mark.asyncio
    async def test_factory_honours_settings_and_store(self, make_settings: Any, clock: Any) -> None:
        settings = make_settings(api_rate_limit_max_requests=2, api_rate_limit_window=5.0)
        store = MemoryKeyValueStore()
        limiter = build_api_rate_limiter(settings, store, clock=clock)
        await limiter.check_limit("x")
        await limiter.check_limit("x")
        assert (await limiter.check_limit("x")).allowed is False
        assert await store.get("rate_limit_x") is not None

    @pytest.mark.asyncio
    async def test_keyless_checks_use_distinct_keys(self, make_settings: Any, clock: Any) -> None:
        settings = make_settings()
        store = MemoryKeyValueStore()
        pick = build_pick_rate_limiter(settings, store, clock=clock)
        api = build_api_rate_limiter(settings, store, clock=clock)

        await pick.check_limit()
        await api.check_limit()

        (pick_key,) = pick.tracked_keys()
        (api_key,) = api.tracked_keys()
        assert pick_key == f"picker_{socket.gethostname()}"
        assert api_key.startswith("session_")
        assert await store.get(STORAGE_KEY_PREFIX + pick_key) is not None
        assert await store.get(STORAGE_KEY_PREFIX + api_key) is not None
        assert await store.get(STORAGE_KEY_PREFIX + "default") is None

    @pytest.mark.asyncio
    async def test_api_session_key_is_stable_per_limiter(self, make_settings: Any, clock: Any) -> None:
        settings = make_settings()
        api = build_api_rate_limiter(settings, clock=clock)
        other = build_api_rate_limiter(settings, clock=clock)

        await api.check_limit()
        await api.check_limit()
        await other.check_limit()

        assert len(api.tracked_keys()) == 1
        assert api.tracked_keys() != other.tracked_keys()
