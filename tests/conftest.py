"""Fixtures shared by the adrefresh unit tests: logging, isolated settings
and a fake clock."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest
from pydantic_settings import SettingsConfigDict

from adrefresh.core import configure_logging
from adrefresh.core.settings import Settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove adrefresh env vars and disable ``.env`` loading for one test."""
    prefixes = (
        "AD_",
        "EZOIC_",
        "ADSENSE_",
        "MONETAG_",
        "ADSTERRA_",
        "PICK_RATE_",
        "API_RATE_",
        "RATE_LIMIT_",
        "ANALYTICS_",
        "METRICS_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(env_file=None, env_file_encoding="utf-8", extra="ignore"),
    )


@pytest.fixture()
def make_settings(clean_env: None) -> Callable[..., Settings]:
    """Factory building isolated :class:`Settings` from keyword overrides."""

    def _make(**overrides: Any) -> Settings:
        return Settings(**overrides)

    return _make


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic clock; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
