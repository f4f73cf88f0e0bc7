"""Refresh orchestration, outcome metrics and analytics export.

Public API
----------
* :class:`~adrefresh.orchestrator.refresh_manager.AdRefreshManager`:
  throttled, serialised, timed-out and retried ad refreshes for one page.
* :class:`~adrefresh.orchestrator.metrics.MetricsAggregator`: outcome
  counters, rolling duration average and batched analytics events.
* :func:`~adrefresh.orchestrator.metrics.write_metrics_file`: JSON metrics
  snapshot for operator inspection.
* :class:`~adrefresh.orchestrator.export.HttpEventExporter`: POSTs flushed
  analytics batches to an HTTP endpoint.
"""

from adrefresh.orchestrator.export import HttpEventExporter
from adrefresh.orchestrator.metrics import MetricsAggregator, write_metrics_file
from adrefresh.orchestrator.refresh_manager import AdRefreshManager

__all__ = [
    "AdRefreshManager",
    "MetricsAggregator",
    "write_metrics_file",
    "HttpEventExporter",
]
