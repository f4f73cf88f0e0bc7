"""Refresh outcome metrics and analytics event batching.

:class:`MetricsAggregator` is the only owner of the refresh counters.  The
orchestrator hands it every :class:`~adrefresh.core.models.RefreshResult`
(throttle and in-progress rejections included) through :meth:`record`.

Two output paths exist besides the in-memory snapshot:

1. **Event batches**: every record is queued (bounded, oldest dropped) and
   the queue is flushed when it reaches ``batch_size`` or every
   ``flush_interval`` seconds once :meth:`MetricsAggregator.start` has been
   awaited.  A flush logs a one-line summary and hands the batch to the
   optional exporter (see :mod:`adrefresh.orchestrator.export`).
2. **JSON metrics file**: :func:`write_metrics_file` dumps
   :meth:`MetricsAggregator.as_dict` for operator inspection.

Flushing never touches the counters.  Exporter and file-write failures are
logged at WARNING and never propagated.

Typical usage::

    metrics = MetricsAggregator.from_settings(settings)
    await metrics.start()

    metrics.record(result)
    logger.info("%s", metrics.format_summary())

    await metrics.stop()          # final flush
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from adrefresh.core import events
from adrefresh.core.exceptions import AdRefreshErrorKind
from adrefresh.core.models import RefreshMetrics, RefreshResult

if TYPE_CHECKING:
    from adrefresh.core.settings import Settings

__all__ = [
    "EventExporter",
    "MetricsAggregator",
    "write_metrics_file",
]

logger = logging.getLogger(__name__)

#: Number of successful durations the rolling average covers.
_DEFAULT_WINDOW_SIZE: Final[int] = 100

_DEFAULT_BATCH_SIZE: Final[int] = 10
_DEFAULT_FLUSH_INTERVAL: Final[float] = 30.0
_DEFAULT_MAX_EVENTS: Final[int] = 100

#: Async callable receiving each flushed batch of serialised results.
EventExporter = Callable[[list[dict[str, Any]]], Awaitable[None]]


class MetricsAggregator:
    """Aggregates refresh outcomes.

    Args:
        window_size: Successful durations kept for the rolling average.
        batch_size: Queue length that triggers an immediate flush.
        flush_interval: Seconds between periodic flushes.
        max_events: Queue bound; the oldest events are dropped beyond it.
        exporter: Optional async callable receiving each flushed batch.
        now: Returns the current UTC time.  Override in tests.
    """

    def __init__(
        self,
        *,
        window_size: int = _DEFAULT_WINDOW_SIZE,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        flush_interval: float = _DEFAULT_FLUSH_INTERVAL,
        max_events: int = _DEFAULT_MAX_EVENTS,
        exporter: EventExporter | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        if batch_size < 1 or window_size < 1 or max_events < 1:
            raise ValueError("window_size, batch_size and max_events must be >= 1")
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._exporter = exporter
        self._now = now or (lambda: datetime.now(UTC))

        self._total = 0
        self._successful = 0
        self._failed = 0
        self._last_refresh_at: datetime | None = None
        self._durations: deque[float] = deque(maxlen=window_size)
        self._average = 0.0
        self._errors: Counter[AdRefreshErrorKind] = Counter()
        self._queue: deque[dict[str, Any]] = deque(maxlen=max_events)

        self._flush_task: asyncio.Task[None] | None = None
        self._export_tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        exporter: EventExporter | None = None,
    ) -> MetricsAggregator:
        return cls(
            batch_size=settings.analytics_batch_size,
            flush_interval=settings.analytics_flush_interval,
            max_events=settings.analytics_max_events,
            exporter=exporter,
        )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, result: RefreshResult) -> None:
        """Account for one refresh outcome.

        Args:
            result: Any attempt outcome, successful or not.
        """
        self._total += 1
        self._last_refresh_at = self._now()

        if result.success:
            self._successful += 1
            self._durations.append(result.duration_s)
            self._average = sum(self._durations) / len(self._durations)
            logger.info(
                "Ad refresh successful for %s (%.3f s)",
                result.provider,
                result.duration_s,
            )
        else:
            self._failed += 1
            if result.error is not None:
                self._errors[result.error.kind] += 1
            logger.warning(
                "Ad refresh failed for %s: %s",
                result.provider,
                result.error.message if result.error is not None else "unknown error",
            )

        event = result.as_dict()
        event["recorded_at"] = self._last_refresh_at.isoformat()
        self._queue.append(event)
        if len(self._queue) >= self._batch_size:
            self.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_metrics(self) -> RefreshMetrics:
        """Return an immutable snapshot of the counters."""
        return RefreshMetrics(
            total_refreshes=self._total,
            successful_refreshes=self._successful,
            failed_refreshes=self._failed,
            average_refresh_duration_s=self._average,
            last_refresh_at=self._last_refresh_at,
        )

    def get_success_rate(self) -> float:
        """Successful share of all records, in ``[0, 1]``; ``0.0`` when empty."""
        if self._total == 0:
            return 0.0
        return self._successful / self._total

    def get_error_distribution(self) -> dict[AdRefreshErrorKind, int]:
        """Failed records per error kind since the last :meth:`reset`."""
        return {kind: self._errors.get(kind, 0) for kind in AdRefreshErrorKind}

    @property
    def pending_events(self) -> int:
        return len(self._queue)

    def format_summary(self) -> str:
        """One-line performance summary suitable for ``logger.info()``.

        Example::

            ad refresh: 87.5% success, 0.412 s avg, 8 total (1 failed)
        """
        return (
            f"ad refresh: {self.get_success_rate() * 100:.1f}% success, "
            f"{self._average:.3f} s avg, {self._total} total ({self._failed} failed)"
        )

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable view of the current metrics."""
        return {
            "total_refreshes": self._total,
            "successful_refreshes": self._successful,
            "failed_refreshes": self._failed,
            "success_rate": round(self.get_success_rate(), 4),
            "average_refresh_duration_s": round(self._average, 4),
            "last_refresh_at": (
                self._last_refresh_at.isoformat() if self._last_refresh_at else None
            ),
            "error_distribution": {
                kind.value: count for kind, count in self.get_error_distribution().items()
            },
            "pending_events": len(self._queue),
        }

    # ------------------------------------------------------------------
    # Reset / flush
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Zero every counter and drop the queue and the duration window."""
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._last_refresh_at = None
        self._durations.clear()
        self._average = 0.0
        self._errors.clear()
        self._queue.clear()

    def flush(self) -> list[dict[str, Any]]:
        """Drain the event queue.

        Logs a success/failure summary of the batch and, when an exporter is
        configured and an event loop is running, schedules the export.

        Returns:
            The drained batch (empty if there was nothing to flush).
        """
        if not self._queue:
            return []
        batch = list(self._queue)
        self._queue.clear()

        successes = sum(1 for event in batch if event["success"])
        logger.info(
            "Analytics batch flush: %d successes, %d failures",
            successes,
            len(batch) - successes,
            extra={"event": events.METRICS_FLUSH},
        )

        if self._exporter is not None:
            self._schedule_export(batch)
        return batch

    # ------------------------------------------------------------------
    # Periodic flush lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic flush task.  Idempotent."""
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_loop(), name="metrics-flush")

    async def stop(self) -> None:
        """Stop periodic flushing, flush once more and await pending exports."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None
        self.flush()
        if self._export_tasks:
            await asyncio.gather(*self._export_tasks, return_exceptions=True)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            self.flush()

    def _schedule_export(self, batch: list[dict[str, Any]]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; batch of %d not exported", len(batch))
            return
        task = loop.create_task(self._export(batch))
        self._export_tasks.add(task)
        task.add_done_callback(self._export_tasks.discard)

    async def _export(self, batch: list[dict[str, Any]]) -> None:
        assert self._exporter is not None
        try:
            await self._exporter(batch)
        except Exception:
            logger.warning(
                "Exporting analytics batch of %d events failed",
                len(batch),
                exc_info=True,
                extra={"event": events.METRICS_EXPORT_ERROR},
            )


# ---------------------------------------------------------------------------
# Metrics file writer
# ---------------------------------------------------------------------------


def write_metrics_file(aggregator: MetricsAggregator, path: str) -> None:
    """Write a JSON snapshot of *aggregator* to *path*.

    Errors are logged at ``WARNING`` level and never propagated.
    """
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(aggregator.as_dict(), fh, indent=2)
    except OSError:
        logger.warning("Failed to write metrics file '%s'.", path, exc_info=True)
