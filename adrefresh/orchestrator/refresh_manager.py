"""Ad refresh orchestrator.

:class:`AdRefreshManager` coordinates one page's ad refreshes.  It owns the
only mutable orchestration state (the in-flight guard and the timestamp of
the last accepted refresh) and never raises to its caller: every path ends
in a :class:`~adrefresh.core.models.RefreshResult`, and every attempt is
handed to the :class:`~adrefresh.orchestrator.metrics.MetricsAggregator`.

State machine
~~~~~~~~~~~~~
::

    Idle ──(refresh accepted)──▶ Refreshing ──(finally)──▶ Idle

One :meth:`~AdRefreshManager.refresh` call proceeds as follows:

1. **Throttle**: a non-forced request arriving less than
   ``min_refresh_interval`` after the last accepted one is rejected
   (``TIMEOUT``, not retryable).
2. **In progress**: a non-forced request arriving while another refresh is
   running is rejected (``PROVIDER``, retryable, but not retried).
3. The guard is taken and the attempt loop starts.  Each attempt stamps the
   refresh time, waits the request delay, purges cached ad assets
   (best-effort), resolves the active provider and races its adapter
   against the provider's timeout budget.
4. Retryable failures are re-attempted after ``retry_delay`` until
   ``max_retry_attempts`` retries have run.  A non-forced retry is throttled
   only by a refresh other than its own, such as a forced one that ran
   during the retry wait.

Timeouts are logical only: the adapter task that loses the race is not
cancelled.  It is kept referenced until it settles and its late outcome is
logged; it may still mutate the page after the failure was reported.  The
budget is measured with the injected ``sleep``, so a virtual clock advances
by the full budget on a timeout.

Typical usage::

    manager = AdRefreshManager(settings, page, cache_storage=caches)
    manager.setup_auto_refresh()

    result = await manager.manual_refresh()
    if not result.success:
        logger.debug("Ads not refreshed: %s", result.error)

    await manager.aclose()
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Final

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from adrefresh.browser.cache import CacheStorage, clear_ad_cache
from adrefresh.browser.page import AdPage, PageEvent, PageEventType
from adrefresh.core import events
from adrefresh.core.exceptions import (
    AdRefreshError,
    CacheError,
    ProviderError,
    RefreshTimeoutError,
)
from adrefresh.core.logging_config import REFRESH_ID_CTX
from adrefresh.core.models import (
    AdProvider,
    ProviderInfo,
    RefreshRequest,
    RefreshResult,
    RefreshTrigger,
)
from adrefresh.core.profiles import RefreshProfile, provider_timeout
from adrefresh.core.settings import Settings
from adrefresh.orchestrator.metrics import MetricsAggregator, write_metrics_file
from adrefresh.providers.base import BaseAdAdapter
from adrefresh.providers.dispatch import build_adapter, resolve_provider_info

__all__ = ["AdRefreshManager", "AdapterFactory", "CLOSE_TIMEOUT_S"]

logger = logging.getLogger(__name__)

#: How long :meth:`AdRefreshManager.aclose` waits for pending tasks.
CLOSE_TIMEOUT_S: Final = 10.0

#: Builds the adapter for a provider snapshot; extra keyword arguments are
#: forwarded to the adapter constructor.
AdapterFactory = Callable[..., BaseAdAdapter]


def _should_retry(result: RefreshResult) -> bool:
    return not result.success and result.error is not None and result.error.retryable


def _last_result(retry_state: RetryCallState) -> RefreshResult:
    assert retry_state.outcome is not None
    return retry_state.outcome.result()


class AdRefreshManager:
    """Serialises, throttles, times out and retries ad refreshes for a page.

    Args:
        settings: Provider selection and network configuration.  The
            provider snapshot is re-resolved from it on every attempt.
        page: The page whose ads are refreshed.
        profile: Timing knobs.  Defaults to ``settings.refresh_profile``.
        metrics: Receives every attempt outcome.  Defaults to an aggregator
            built from *settings*.
        cache_storage: Cache Storage to purge ad assets from.  ``None``
            skips purging, as on a page without Cache Storage.
        timeouts: Per-provider timeout budgets overriding
            :data:`~adrefresh.core.profiles.PROVIDER_TIMEOUTS`.
        clock: Monotonic clock (seconds) used for throttling and durations.
        sleep: Awaitable sleep used for request delays, retry waits,
            timeout budgets and adapter settle delays.
        adapter_factory: Builds the adapter for a provider snapshot.
    """

    def __init__(
        self,
        settings: Settings,
        page: AdPage,
        *,
        profile: RefreshProfile | None = None,
        metrics: MetricsAggregator | None = None,
        cache_storage: CacheStorage | None = None,
        timeouts: Mapping[AdProvider, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        adapter_factory: AdapterFactory = build_adapter,
    ) -> None:
        self._settings = settings
        self._page = page
        self._profile = profile if profile is not None else settings.refresh_profile
        self._metrics = metrics if metrics is not None else MetricsAggregator.from_settings(settings)
        self._cache_storage = cache_storage
        self._timeouts = timeouts
        self._clock = clock
        self._sleep = sleep
        self._adapter_factory = adapter_factory

        self._in_flight = 0
        self._last_refresh_at: float | None = None
        self._auto_refresh_installed = False
        self._listener_tasks: set[asyncio.Task[RefreshResult]] = set()
        self._late_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_refreshing(self) -> bool:
        return self._in_flight > 0

    @property
    def metrics(self) -> MetricsAggregator:
        return self._metrics

    @property
    def profile(self) -> RefreshProfile:
        return self._profile

    @property
    def last_refresh_at(self) -> float | None:
        """Clock timestamp of the last accepted attempt, if any."""
        return self._last_refresh_at

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def refresh(self, request: RefreshRequest | None = None) -> RefreshResult:
        """Refresh all ads on the page.

        Args:
            request: Options for this refresh.  Defaults to a non-forced,
                undelayed request that purges cached ad assets.

        Returns:
            The final :class:`RefreshResult`.  Never raises.
        """
        request = request if request is not None else RefreshRequest()

        if not request.force:
            rejection = self._throttle_rejection(request) or self._in_progress_rejection(request)
            if rejection is not None:
                self._record(rejection)
                return rejection

        self._in_flight += 1
        token = REFRESH_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            return await self._run_attempts(request)
        finally:
            self._in_flight -= 1
            REFRESH_ID_CTX.reset(token)

    async def manual_refresh(self) -> RefreshResult:
        """Forced refresh issued by an explicit user action."""
        return await self.refresh(RefreshRequest.for_trigger(RefreshTrigger.MANUAL))

    async def mount_refresh(self) -> RefreshResult:
        """Refresh issued when an ad component mounts."""
        return await self.refresh(RefreshRequest.for_trigger(RefreshTrigger.COMPONENT_MOUNT))

    def setup_auto_refresh(self) -> None:
        """Refresh on visibility, focus and back/forward-cache restore.  Idempotent."""
        if self._auto_refresh_installed:
            return
        self._page.add_event_listener(PageEventType.VISIBILITY_CHANGE, self._on_visibility_change)
        self._page.add_event_listener(PageEventType.FOCUS, self._on_focus)
        self._page.add_event_listener(PageEventType.PAGE_SHOW, self._on_page_show)
        self._auto_refresh_installed = True
        logger.info("Auto ad refresh setup completed", extra={"event": events.AUTO_REFRESH_SETUP})

    def teardown_auto_refresh(self) -> None:
        """Remove the listeners installed by :meth:`setup_auto_refresh`."""
        if not self._auto_refresh_installed:
            return
        self._page.remove_event_listener(PageEventType.VISIBILITY_CHANGE, self._on_visibility_change)
        self._page.remove_event_listener(PageEventType.FOCUS, self._on_focus)
        self._page.remove_event_listener(PageEventType.PAGE_SHOW, self._on_page_show)
        self._auto_refresh_installed = False
        logger.debug("Auto ad refresh removed", extra={"event": events.AUTO_REFRESH_TEARDOWN})

    async def aclose(self, timeout: float = CLOSE_TIMEOUT_S) -> None:
        """Remove listeners and wait for listener refreshes and late adapters.

        The wait is bounded by *timeout* seconds of loop time.  Tasks still
        pending after that are cancelled, so a vendor call that never
        settles cannot block shutdown.  When ``settings.metrics_path`` is
        set, a metrics snapshot is written there last.
        """
        self.teardown_auto_refresh()
        pending = {*self._listener_tasks, *self._late_tasks}
        if pending:
            _, stuck = await asyncio.wait(pending, timeout=timeout)
            if stuck:
                logger.warning(
                    "Cancelling %d task(s) still pending after %g s",
                    len(stuck),
                    timeout,
                    extra={"event": events.REFRESH_CLOSE_CANCELLED},
                )
            # A listener refresh cancelled mid-race hands its adapter task over as late.
            while stuck:
                for task in stuck:
                    task.cancel()
                await asyncio.gather(*stuck, return_exceptions=True)
                stuck = set(self._late_tasks)
        if self._settings.metrics_path:
            write_metrics_file(self._metrics, self._settings.metrics_path)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _throttled(self, now: float) -> bool:
        return (
            self._last_refresh_at is not None
            and now - self._last_refresh_at < self._profile.min_refresh_interval
        )

    def _throttle_rejection(self, request: RefreshRequest) -> RefreshResult | None:
        started = self._clock()
        if not self._throttled(started):
            return None
        provider = resolve_provider_info(self._settings).provider_name
        logger.debug("Ad refresh skipped - too frequent", extra={"event": events.REFRESH_THROTTLED})
        return RefreshResult.failed(
            provider,
            self._clock() - started,
            RefreshTimeoutError("Ad refresh skipped - too frequent", provider=provider, retryable=False),
            request.retry_count,
        )

    def _stamped_by(self, stamps: list[float]) -> bool:
        return bool(stamps) and self._last_refresh_at == stamps[-1]

    def _in_progress_rejection(self, request: RefreshRequest) -> RefreshResult | None:
        if not self.is_refreshing:
            return None
        provider = resolve_provider_info(self._settings).provider_name
        logger.debug("Ad refresh already in progress", extra={"event": events.REFRESH_IN_PROGRESS})
        return RefreshResult.failed(
            provider,
            0.0,
            ProviderError("Ad refresh already in progress", provider=provider, retryable=True),
            request.retry_count,
        )

    # ------------------------------------------------------------------
    # Attempt loop
    # ------------------------------------------------------------------

    async def _run_attempts(self, request: RefreshRequest) -> RefreshResult:
        retries_left = max(0, self._profile.max_retry_attempts - request.retry_count)
        result: RefreshResult | None = None
        stamps: list[float] = []

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(retries_left + 1),
            wait=wait_fixed(self._profile.retry_delay),
            retry=retry_if_result(_should_retry),
            retry_error_callback=_last_result,
            sleep=self._sleep,
            before_sleep=self._log_retry,
        ):
            with attempt:
                current = request.model_copy(
                    update={"retry_count": request.retry_count + attempt.retry_state.attempt_number - 1}
                )
                result = await self._attempt(current, stamps)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(result)

        assert result is not None
        if not result.success:
            logger.info(
                "Ad refresh failed after %d retries: %s",
                result.retry_count,
                result.error,
                extra={"event": events.REFRESH_FAILED},
            )
        return result

    def _log_retry(self, retry_state: RetryCallState) -> None:
        result = _last_result(retry_state)
        logger.warning(
            "Ad refresh failed (%s), retrying... (%d/%d)",
            result.error.kind.value if result.error else "?",
            result.retry_count + 1,
            self._profile.max_retry_attempts,
            extra={"event": events.REFRESH_RETRY},
        )

    async def _attempt(self, request: RefreshRequest, stamps: list[float]) -> RefreshResult:
        """Run one attempt and record its outcome.

        *stamps* collects the start times of this refresh's accepted
        attempts.  A non-forced retry is throttled only when the last
        accepted refresh belongs to someone else.
        """
        started = self._clock()
        info = resolve_provider_info(self._settings)
        provider = info.provider_name

        if request.retry_count > 0 and not request.force and not self._stamped_by(stamps):
            rejection = self._throttle_rejection(request)
            if rejection is not None:
                self._record(rejection)
                return rejection

        self._last_refresh_at = started
        stamps.append(started)
        logger.debug(
            "Ad refresh attempt %d for %s",
            request.retry_count,
            provider,
            extra={"event": events.REFRESH_START},
        )

        try:
            if request.delay > 0:
                await self._sleep(request.delay)
            if request.clear_cache:
                await self._clear_cache()
            info = resolve_provider_info(self._settings)
            provider = info.provider_name
            await self._dispatch(info)
        except Exception as exc:
            error = AdRefreshError.from_exception(exc, provider)
            result = RefreshResult.failed(provider, self._clock() - started, error, request.retry_count)
        else:
            result = RefreshResult.ok(provider, self._clock() - started, request.retry_count)
            logger.info(
                "Ad refresh completed for provider: %s",
                provider,
                extra={"event": events.REFRESH_SUCCESS},
            )

        self._record(result)
        return result

    async def _dispatch(self, info: ProviderInfo) -> None:
        """Race the active provider's adapter against its timeout budget.

        Raises:
            ProviderError: No active provider (not retryable).
            RefreshTimeoutError: The adapter did not settle in time.
            AdRefreshError: Whatever the adapter raised.
        """
        adapter = self._adapter_factory(info, self._page, self._settings, sleep=self._sleep)
        budget = provider_timeout(adapter.provider, self._timeouts)

        task = asyncio.create_task(adapter.refresh())
        timer: asyncio.Task[Any] | None = None
        try:
            # One loop turn: an adapter that never suspends settles before the timer starts.
            await asyncio.sleep(0)
            if not task.done():
                timer = asyncio.create_task(self._sleep(budget))
                await asyncio.wait({task, timer}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if timer is not None:
                timer.cancel()
            self._track_late(task)
            raise

        if task.done():
            if timer is not None:
                timer.cancel()
            task.result()
            return

        self._track_late(task)
        raise RefreshTimeoutError(
            f"Ad refresh timeout after {budget:g} s",
            provider=info.provider_name,
            retryable=True,
        )

    def _track_late(self, task: asyncio.Task[None]) -> None:
        self._late_tasks.add(task)
        task.add_done_callback(self._on_late_settle)

    def _on_late_settle(self, task: asyncio.Task[None]) -> None:
        self._late_tasks.discard(task)
        if task.cancelled():
            logger.debug("Timed-out adapter task was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.info(
                "Timed-out adapter settled late with error: %s",
                exc,
                extra={"event": events.REFRESH_LATE_SETTLE},
            )
        else:
            logger.info(
                "Timed-out adapter settled late",
                extra={"event": events.REFRESH_LATE_SETTLE},
            )

    async def _clear_cache(self) -> None:
        if self._cache_storage is None:
            return
        try:
            removed = await clear_ad_cache(self._cache_storage)
        except CacheError as exc:
            logger.warning(
                "Failed to clear ad cache: %s",
                exc,
                extra={"event": events.CACHE_CLEAR_ERROR},
            )
            return
        logger.debug("Ad cache cleared (%d entries)", removed, extra={"event": events.CACHE_CLEARED})

    def _record(self, result: RefreshResult) -> None:
        if self._profile.enable_analytics:
            self._metrics.record(result)

    # ------------------------------------------------------------------
    # Page listeners
    # ------------------------------------------------------------------

    def _on_visibility_change(self, event: PageEvent) -> None:
        if not self._page.hidden:
            self._spawn(RefreshRequest.for_trigger(RefreshTrigger.VISIBILITY_CHANGE))

    def _on_focus(self, event: PageEvent) -> None:
        self._spawn(RefreshRequest.for_trigger(RefreshTrigger.FOCUS))

    def _on_page_show(self, event: PageEvent) -> None:
        if event.persisted:
            self._spawn(RefreshRequest.for_trigger(RefreshTrigger.PAGE_SHOW))

    def _spawn(self, request: RefreshRequest) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Page event outside a running event loop; refresh skipped")
            return
        task = loop.create_task(self.refresh(request))
        self._listener_tasks.add(task)
        task.add_done_callback(self._listener_tasks.discard)
