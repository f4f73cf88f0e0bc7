"""HTTP exporter for flushed analytics batches.

:class:`HttpEventExporter` is the ``exporter`` a
:class:`~adrefresh.orchestrator.metrics.MetricsAggregator` hands each
flushed batch to.  It POSTs the batch as JSON to the configured analytics
endpoint through :class:`httpx.AsyncClient`:

* transport errors and HTTP 5xx are retried by :mod:`tenacity` with
  exponential back-off;
* any other non-2xx status fails immediately;
* every failure is logged at WARNING and swallowed.  Analytics must never
  disturb the refresh path.

Typical usage::

    async with HttpEventExporter(settings.analytics_endpoint) as exporter:
        metrics = MetricsAggregator.from_settings(settings, exporter=exporter)
        ...
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from adrefresh.core import events
from adrefresh.core.exceptions import NetworkError

__all__ = ["HttpEventExporter"]

logger = logging.getLogger(__name__)

#: Gateway and server errors worth another attempt.
RETRY_STATUSES: Final = frozenset({500, 502, 503, 504})

EXPORT_ATTEMPTS: Final = 3
EXPORT_TIMEOUT_S: Final = 10.0


class _RetryableExportError(NetworkError):
    """Internal: signals a 5xx status for tenacity to retry."""


class HttpEventExporter:
    """POST flushed analytics batches to an HTTP endpoint.

    Args:
        endpoint: Absolute URL receiving ``{"events": [...]}``.
        client: Shared :class:`httpx.AsyncClient`.  When omitted the exporter
            opens its own and closes it in :meth:`close`.
        max_attempts: Total attempts including the first (>= 1).
        wait: Tenacity wait strategy between attempts.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = EXPORT_ATTEMPTS,
        wait: wait_base | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts!r}.")
        self._endpoint = endpoint
        self._max_attempts = max_attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=0.5, max=8.0)
        self._owns_client = client is None
        self._http = client

    async def __aenter__(self) -> HttpEventExporter:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        if self._owns_client:
            self._http = None

    async def __call__(self, batch: list[dict[str, Any]]) -> None:
        """Deliver *batch*; failures are logged, never raised."""
        if not batch:
            return
        try:
            await self._post_with_retry({"events": batch})
        except (NetworkError, httpx.HTTPError) as exc:
            logger.warning(
                "Analytics export of %d events to %s failed: %s",
                len(batch),
                self._endpoint,
                exc,
                extra={"event": events.METRICS_EXPORT_ERROR},
            )
        else:
            logger.debug("Exported %d analytics events to %s", len(batch), self._endpoint)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=EXPORT_TIMEOUT_S)
            self._owns_client = True
        return self._http

    async def _post_with_retry(self, payload: dict[str, Any]) -> None:
        async for attempt in AsyncRetrying(
            wait=self._wait,
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type((_RetryableExportError, httpx.TransportError)),
            reraise=True,
            before_sleep=self._log_retry,
        ):
            with attempt:
                await self._post_once(payload)

    def _log_retry(self, state: RetryCallState) -> None:
        assert state.outcome is not None
        logger.debug(
            "Analytics export to %s failed on attempt %d of %d: %r",
            self._endpoint,
            state.attempt_number,
            self._max_attempts,
            state.outcome.exception(),
        )

    async def _post_once(self, payload: dict[str, Any]) -> None:
        response = await self._client().post(self._endpoint, json=payload)
        if response.is_success:
            return
        if response.status_code in RETRY_STATUSES:
            raise _RetryableExportError(f"HTTP {response.status_code} from {self._endpoint}")
        raise NetworkError(
            f"HTTP {response.status_code} from {self._endpoint}",
            retryable=False,
        )
