"""Adrefresh application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``AD_PROVIDER`` →
``ad_provider``).  Settings are read once at startup; provider selection is
process-wide configuration.

Typical usage::

    from adrefresh.core.settings import Settings

    settings = Settings()                  # loads from env + .env
    profile = settings.refresh_profile     # development / production knobs
    print(settings.adsense_configured)     # True / False
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from adrefresh.core.logging_config import FORMATS, LEVELS
from adrefresh.core.models import AdProvider
from adrefresh.core.profiles import PROFILES, RefreshProfile

__all__ = ["Settings", "ADSENSE_PLACEHOLDER_PUBLISHER_ID", "ADSENSE_PLACEHOLDER_SLOT"]

logger = logging.getLogger(__name__)

#: Values shipped in the sample ``.env``; AdSense is inactive while they remain.
ADSENSE_PLACEHOLDER_PUBLISHER_ID = "ca-pub-XXXXXXXXXXXXXXXXX"
ADSENSE_PLACEHOLDER_SLOT = "1234567890"


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------
    ad_provider: AdProvider = Field(
        default=AdProvider.NONE,
        description="Active ad network: ezoic, adsense, monetag, adsterra or none.",
    )
    ad_refresh_profile: str = Field(
        default="production",
        description="Refresh timing profile: 'development' or 'production'.",
    )

    # ------------------------------------------------------------------
    # Ezoic
    # ------------------------------------------------------------------
    ezoic_placement_banner: int = Field(default=101, ge=1)
    ezoic_placement_sidebar: int = Field(default=102, ge=1)
    ezoic_placement_footer: int = Field(default=103, ge=1)
    ezoic_placement_content: int = Field(default=104, ge=1)
    ezoic_limit_cookies: bool = Field(default=True, description="GDPR cookie limiting.")
    ezoic_anchor_ad_position: str = Field(default="bottom", description="'top' or 'bottom'.")

    # ------------------------------------------------------------------
    # AdSense
    # ------------------------------------------------------------------
    adsense_publisher_id: str = Field(default=ADSENSE_PLACEHOLDER_PUBLISHER_ID)
    adsense_banner_slot: str = Field(default=ADSENSE_PLACEHOLDER_SLOT)

    # ------------------------------------------------------------------
    # Monetag
    # ------------------------------------------------------------------
    monetag_ad_url: str = Field(default="", description="Monetag loader script URL.")

    # ------------------------------------------------------------------
    # Adsterra
    # ------------------------------------------------------------------
    adsterra_key: str = Field(default="", description="Adsterra placement key.")
    adsterra_format: str = Field(default="iframe")
    adsterra_height: int = Field(default=60, ge=1)
    adsterra_width: int = Field(default=468, ge=1)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------
    pick_rate_limit_max_requests: int = Field(default=30, ge=1)
    pick_rate_limit_window: float = Field(default=60.0, gt=0.0, description="Seconds.")
    api_rate_limit_max_requests: int = Field(default=10, ge=1)
    api_rate_limit_window: float = Field(default=60.0, gt=0.0, description="Seconds.")
    rate_limit_db_path: str = Field(
        default="",
        description="SQLite file for advisory rate-limit state (empty = in-memory).",
    )

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    analytics_batch_size: int = Field(default=10, ge=1)
    analytics_flush_interval: float = Field(default=30.0, gt=0.0, description="Seconds.")
    analytics_max_events: int = Field(default=100, ge=1)
    analytics_endpoint: str = Field(
        default="",
        description="URL receiving flushed event batches (empty = log only).",
    )
    metrics_path: str = Field(
        default="",
        description="JSON metrics snapshot written on manager shutdown (empty = disabled).",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("ad_provider", mode="before")
    @classmethod
    def _normalise_provider(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower() or AdProvider.NONE.value
        return v

    @field_validator("ad_refresh_profile")
    @classmethod
    def _validate_profile(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in PROFILES:
            raise ValueError(f"ad_refresh_profile must be one of {set(PROFILES)}, got {v!r}")
        return v_lower

    @field_validator("ezoic_anchor_ad_position")
    @classmethod
    def _validate_anchor(cls, v: str) -> str:
        allowed = {"top", "bottom"}
        if v not in allowed:
            raise ValueError(f"ezoic_anchor_ad_position must be one of {allowed}, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        if v.upper() not in LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, v: str) -> str:
        if v.lower() not in FORMATS:
            raise ValueError(f"log_format must be text or json, got {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def _validate_analytics_bounds(self) -> Settings:
        """The event queue must be able to hold at least one batch."""
        if self.analytics_batch_size > self.analytics_max_events:
            raise ValueError(
                f"analytics_batch_size ({self.analytics_batch_size}) "
                f"> analytics_max_events ({self.analytics_max_events})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def refresh_profile(self) -> RefreshProfile:
        """The :class:`RefreshProfile` selected by ``ad_refresh_profile``."""
        return PROFILES[self.ad_refresh_profile]

    @property
    def ezoic_placements(self) -> dict[str, int]:
        """Ezoic placement ids keyed by slot name."""
        return {
            "banner": self.ezoic_placement_banner,
            "sidebar": self.ezoic_placement_sidebar,
            "footer": self.ezoic_placement_footer,
            "in_content": self.ezoic_placement_content,
        }

    @property
    def adsense_configured(self) -> bool:
        """``True`` once both AdSense ids differ from the sample placeholders."""
        return (
            bool(self.adsense_publisher_id)
            and bool(self.adsense_banner_slot)
            and self.adsense_publisher_id != ADSENSE_PLACEHOLDER_PUBLISHER_ID
            and self.adsense_banner_slot != ADSENSE_PLACEHOLDER_SLOT
        )

    @property
    def adsense_script_url(self) -> str:
        return (
            "https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js"
            f"?client={self.adsense_publisher_id}"
        )

    @property
    def adsterra_script_url(self) -> str:
        return f"//www.highperformanceformat.com/{self.adsterra_key}/invoke.js"

    @property
    def rate_limit_db_path_resolved(self) -> Path | None:
        """Resolved SQLite path, or ``None`` for the in-memory store."""
        if not self.rate_limit_db_path:
            return None
        return Path(self.rate_limit_db_path).resolve()
