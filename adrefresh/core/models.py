"""Adrefresh core domain models.

Defines the value types passed between the orchestrator, the provider
adapters and the metrics aggregator:

* :class:`AdProvider`: closed set of supported ad networks (plus ``NONE``).
* :class:`RefreshTrigger`: the events that start a refresh, with their
  fixed pre-refresh delays.
* :class:`RefreshRequest`: validated request descriptor.
* :class:`RefreshResult`: outcome of one refresh attempt.
* :class:`RefreshMetrics`: immutable metrics snapshot.
* :class:`ProviderInfo`: snapshot of the configured provider selection.

Typical usage::

    from adrefresh.core.models import RefreshRequest

    request = RefreshRequest(force=True, delay=0.5)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from adrefresh.core.exceptions import AdRefreshError

__all__ = [
    "AdProvider",
    "AD_NETWORKS",
    "RefreshTrigger",
    "REFRESH_DELAYS",
    "RefreshRequest",
    "RefreshResult",
    "RefreshMetrics",
    "ProviderInfo",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AdProvider(StrEnum):
    """Canonical names of the supported ad networks.

    ``NONE`` is the "ads disabled" selection; it never has an adapter.
    """

    EZOIC = "ezoic"
    ADSENSE = "adsense"
    MONETAG = "monetag"
    ADSTERRA = "adsterra"
    NONE = "none"


#: Networks in dispatch-priority order (``NONE`` excluded).
AD_NETWORKS: tuple[AdProvider, ...] = (
    AdProvider.EZOIC,
    AdProvider.ADSENSE,
    AdProvider.MONETAG,
    AdProvider.ADSTERRA,
)


class RefreshTrigger(StrEnum):
    """What caused a refresh to be requested."""

    VISIBILITY_CHANGE = "visibility_change"
    FOCUS = "focus"
    PAGE_SHOW = "page_show"
    MANUAL = "manual"
    COMPONENT_MOUNT = "component_mount"


#: Pre-refresh delay (seconds) applied for each trigger.
REFRESH_DELAYS: Mapping[RefreshTrigger, float] = MappingProxyType(
    {
        RefreshTrigger.VISIBILITY_CHANGE: 1.0,
        RefreshTrigger.FOCUS: 0.5,
        RefreshTrigger.PAGE_SHOW: 1.0,
        RefreshTrigger.MANUAL: 0.0,
        RefreshTrigger.COMPONENT_MOUNT: 0.1,
    }
)

# ---------------------------------------------------------------------------
# Request / result
# ---------------------------------------------------------------------------


class RefreshRequest(BaseModel):
    """Descriptor for one logical refresh.

    Attributes:
        force: Bypass the minimum-interval throttle and the in-progress guard.
        delay: Seconds to wait before touching the page.
        clear_cache: Purge cached ad-network responses before dispatching.
        retry_count: Attempt index, maintained by the orchestrator.  Callers
            leave it at ``0``.
    """

    model_config = ConfigDict(frozen=True)

    force: bool = False
    delay: float = Field(default=0.0, ge=0.0)
    clear_cache: bool = True
    retry_count: int = Field(default=0, ge=0)

    @classmethod
    def for_trigger(cls, trigger: RefreshTrigger, **overrides: Any) -> RefreshRequest:
        """Build the request a *trigger* issues, using its fixed delay."""
        params: dict[str, Any] = {"delay": REFRESH_DELAYS[trigger]}
        if trigger in (RefreshTrigger.PAGE_SHOW, RefreshTrigger.MANUAL):
            params["force"] = True
        params.update(overrides)
        return cls(**params)


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one refresh attempt.

    ``error`` is present if and only if ``success`` is ``False``.
    """

    success: bool
    provider: str
    duration_s: float
    error: AdRefreshError | None = None
    retry_count: int = 0

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("A successful RefreshResult cannot carry an error.")
        if not self.success and self.error is None:
            raise ValueError("A failed RefreshResult must carry an error.")

    @classmethod
    def ok(cls, provider: str, duration_s: float, retry_count: int = 0) -> RefreshResult:
        return cls(True, provider, duration_s, None, retry_count)

    @classmethod
    def failed(
        cls,
        provider: str,
        duration_s: float,
        error: AdRefreshError,
        retry_count: int = 0,
    ) -> RefreshResult:
        return cls(False, provider, duration_s, error, retry_count)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return {
            "success": self.success,
            "provider": self.provider,
            "duration_s": round(self.duration_s, 4),
            "error": self.error.as_dict() if self.error is not None else None,
            "retry_count": self.retry_count,
        }


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RefreshMetrics:
    """Point-in-time copy of the aggregated refresh metrics.

    Attributes:
        total_refreshes: Every recorded outcome, rejections included.
        successful_refreshes: Outcomes with ``success=True``.
        failed_refreshes: Outcomes with ``success=False``.
        average_refresh_duration_s: Mean duration of the most recent
            successful refreshes (rolling window).
        last_refresh_at: UTC wall-clock time of the latest record.
    """

    total_refreshes: int = 0
    successful_refreshes: int = 0
    failed_refreshes: int = 0
    average_refresh_duration_s: float = 0.0
    last_refresh_at: datetime | None = None


@dataclass(frozen=True)
class ProviderInfo:
    """Snapshot of which ad provider is selected and which are usable.

    Attributes:
        active_provider: The configured selection (may be ``NONE``).
        active_flags: Per-network flag; ``True`` only for the selected
            network, and only when it is minimally configured.
    """

    active_provider: AdProvider
    active_flags: Mapping[AdProvider, bool] = field(default_factory=dict)

    @property
    def provider_name(self) -> str:
        return self.active_provider.value

    @property
    def is_active(self) -> bool:
        """``True`` when some network is selected (``NONE`` is not)."""
        return self.active_provider is not AdProvider.NONE

    def dispatch_target(self) -> AdProvider | None:
        """Return the first active network in dispatch order, if any."""
        for provider in AD_NETWORKS:
            if self.active_flags.get(provider, False):
                return provider
        return None
