"""Refresh timing profiles and per-provider timeout budgets.

Two profiles exist:

* ``development``: short intervals for fast local iteration.
* ``production``: conservative intervals for live traffic.

The profile is selected once at startup from
:attr:`~adrefresh.core.settings.Settings.ad_refresh_profile`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from adrefresh.core.models import AdProvider

__all__ = [
    "RefreshProfile",
    "DEVELOPMENT_PROFILE",
    "PRODUCTION_PROFILE",
    "PROFILES",
    "PROVIDER_TIMEOUTS",
    "provider_timeout",
]


@dataclass(frozen=True)
class RefreshProfile:
    """Timing knobs of the refresh orchestrator.

    Attributes:
        name: Profile label.
        min_refresh_interval: Seconds that must separate two non-forced
            refreshes.
        max_retry_attempts: Retries allowed after the first attempt.
        retry_delay: Seconds to wait between attempts.
        cache_timeout: Lifetime (seconds) of cached ad assets.
        enable_analytics: Whether outcomes feed the metrics aggregator.
    """

    name: str
    min_refresh_interval: float
    max_retry_attempts: int
    retry_delay: float
    cache_timeout: float
    enable_analytics: bool = True

    def __post_init__(self) -> None:
        if self.min_refresh_interval < 0 or self.retry_delay < 0:
            raise ValueError("Profile intervals must be non-negative.")
        if self.max_retry_attempts < 0:
            raise ValueError("max_retry_attempts must be >= 0.")


DEVELOPMENT_PROFILE: Final[RefreshProfile] = RefreshProfile(
    name="development",
    min_refresh_interval=2.0,
    max_retry_attempts=2,
    retry_delay=1.0,
    cache_timeout=30.0,
)

PRODUCTION_PROFILE: Final[RefreshProfile] = RefreshProfile(
    name="production",
    min_refresh_interval=5.0,
    max_retry_attempts=3,
    retry_delay=2.0,
    cache_timeout=300.0,
)

PROFILES: Mapping[str, RefreshProfile] = MappingProxyType(
    {p.name: p for p in (DEVELOPMENT_PROFILE, PRODUCTION_PROFILE)}
)

#: Seconds the orchestrator waits for each provider's adapter to settle.
PROVIDER_TIMEOUTS: Mapping[AdProvider, float] = MappingProxyType(
    {
        AdProvider.EZOIC: 10.0,
        AdProvider.ADSENSE: 8.0,
        AdProvider.MONETAG: 6.0,
        AdProvider.ADSTERRA: 6.0,
    }
)


def provider_timeout(
    provider: AdProvider | str,
    timeouts: Mapping[AdProvider, float] | None = None,
) -> float:
    """Return the timeout budget for *provider*.

    Unknown providers fall back to the AdSense budget.
    """
    table = PROVIDER_TIMEOUTS if timeouts is None else timeouts
    try:
        key = AdProvider(str(provider).lower())
    except ValueError:
        key = AdProvider.ADSENSE
    if key in table:
        return table[key]
    return table.get(AdProvider.ADSENSE, PROVIDER_TIMEOUTS[AdProvider.ADSENSE])
