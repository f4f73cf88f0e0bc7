"""Unit tests for :class:`~adrefresh.orchestrator.export.HttpEventExporter`."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest
from tenacity import wait_none

from adrefresh.orchestrator.export import HttpEventExporter

_ENDPOINT = "https://analytics.example.test/events"
_BATCH = [{"success": True, "provider": "ezoic", "duration_s": 0.2}]


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _Responder:
    """Serves the queued status codes in order, then 200."""

    def __init__(self, *statuses: int) -> None:
        self._statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self._statuses.pop(0) if self._statuses else 200
        return httpx.Response(status)


class TestHttpEventExporter:
    async def test_posts_events_envelope(self) -> None:
        responder = _Responder()
        async with _client(responder) as client:
            await HttpEventExporter(_ENDPOINT, client=client)(_BATCH)

        assert len(responder.requests) == 1
        request = responder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == _ENDPOINT
        assert json.loads(request.content) == {"events": _BATCH}

    async def test_empty_batch_is_not_sent(self) -> None:
        responder = _Responder()
        async with _client(responder) as client:
            await HttpEventExporter(_ENDPOINT, client=client)([])
        assert responder.requests == []

    async def test_server_errors_are_retried(self) -> None:
        responder = _Responder(503, 502)
        async with _client(responder) as client:
            await HttpEventExporter(_ENDPOINT, client=client, wait=wait_none())(_BATCH)
        assert len(responder.requests) == 3

    async def test_client_errors_are_not_retried(self, caplog: pytest.LogCaptureFixture) -> None:
        responder = _Responder(400)
        async with _client(responder) as client:
            await HttpEventExporter(_ENDPOINT, client=client, wait=wait_none())(_BATCH)

        assert len(responder.requests) == 1
        assert "HTTP 400" in caplog.text

    async def test_exhausted_retries_are_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        responder = _Responder(500, 500, 500, 500)
        async with _client(responder) as client:
            exporter = HttpEventExporter(_ENDPOINT, client=client, max_attempts=2, wait=wait_none())
            await exporter(_BATCH)

        assert len(responder.requests) == 2
        assert "Analytics export of 1 events" in caplog.text

    async def test_transport_errors_are_retried_then_swallowed(self) -> None:
        attempts: list[httpx.Request] = []

        def _refuse(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(_refuse) as client:
            await HttpEventExporter(_ENDPOINT, client=client, wait=wait_none())(_BATCH)

        assert len(attempts) == 3

    async def test_shared_client_is_left_open(self) -> None:
        async with _client(_Responder()) as client:
            async with HttpEventExporter(_ENDPOINT, client=client) as exporter:
                await exporter(_BATCH)
            assert not client.is_closed

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError):
            HttpEventExporter(_ENDPOINT, max_attempts=0)
