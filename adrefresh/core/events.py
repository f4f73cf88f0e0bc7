"""Structured log event names.

Key transitions pass one of these constants as ``extra={"event": ...}``.  In
``LOG_FORMAT=json`` mode it surfaces as ``extra.event``; in text mode the
message is self-describing and the event is not printed.

Usage example::

    import logging
    from adrefresh.core import events

    logger = logging.getLogger(__name__)

    logger.info("Refresh succeeded", extra={"event": events.REFRESH_SUCCESS})
"""

from __future__ import annotations

__all__ = [
    # Refresh lifecycle
    "REFRESH_START",
    "REFRESH_SUCCESS",
    "REFRESH_FAILED",
    "REFRESH_THROTTLED",
    "REFRESH_IN_PROGRESS",
    "REFRESH_RETRY",
    "REFRESH_LATE_SETTLE",
    "REFRESH_CLOSE_CANCELLED",
    # Collaborators
    "CACHE_CLEARED",
    "CACHE_CLEAR_ERROR",
    "PROVIDER_DISPATCH",
    "AUTO_REFRESH_SETUP",
    "AUTO_REFRESH_TEARDOWN",
    # Rate limiting
    "RATE_LIMIT_DENIED",
    "RATE_LIMIT_PERSIST_ERROR",
    "RATE_LIMIT_FAIL_OPEN",
    # Metrics
    "METRICS_FLUSH",
    "METRICS_EXPORT_ERROR",
]

# ---------------------------------------------------------------------------
# Refresh lifecycle
# ---------------------------------------------------------------------------

#: An attempt passed the timing guards and entered the refreshing state.
REFRESH_START: str = "REFRESH_START"

#: The adapter settled successfully within its budget.
REFRESH_SUCCESS: str = "REFRESH_SUCCESS"

#: An attempt ended with an :class:`~adrefresh.core.exceptions.AdRefreshError`.
REFRESH_FAILED: str = "REFRESH_FAILED"

#: Rejected because the previous refresh was too recent.
REFRESH_THROTTLED: str = "REFRESH_THROTTLED"

#: Rejected because another refresh is still running.
REFRESH_IN_PROGRESS: str = "REFRESH_IN_PROGRESS"

#: A retryable failure is about to be re-attempted.
REFRESH_RETRY: str = "REFRESH_RETRY"

#: An adapter task that lost its timeout race has finally settled.
REFRESH_LATE_SETTLE: str = "REFRESH_LATE_SETTLE"

#: Shutdown gave up waiting and cancelled pending refresh or adapter tasks.
REFRESH_CLOSE_CANCELLED: str = "REFRESH_CLOSE_CANCELLED"

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

CACHE_CLEARED: str = "CACHE_CLEARED"

#: Cache purge failed; the refresh continues regardless.
CACHE_CLEAR_ERROR: str = "CACHE_CLEAR_ERROR"

#: Adapter selected for the active provider.
PROVIDER_DISPATCH: str = "PROVIDER_DISPATCH"

AUTO_REFRESH_SETUP: str = "AUTO_REFRESH_SETUP"
AUTO_REFRESH_TEARDOWN: str = "AUTO_REFRESH_TEARDOWN"

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

RATE_LIMIT_DENIED: str = "RATE_LIMIT_DENIED"

#: Best-effort persistence of bucket state failed; the decision stands.
RATE_LIMIT_PERSIST_ERROR: str = "RATE_LIMIT_PERSIST_ERROR"

#: The check itself failed and the request was allowed anyway.
RATE_LIMIT_FAIL_OPEN: str = "RATE_LIMIT_FAIL_OPEN"

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

#: The analytics event queue was drained.
METRICS_FLUSH: str = "METRICS_FLUSH"

#: The exporter raised while handling a flushed batch.
METRICS_EXPORT_ERROR: str = "METRICS_EXPORT_ERROR"
