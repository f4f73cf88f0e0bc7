"""Ezoic adapter.

Ezoic renders into ``ezoic-pub-ad-placeholder-<id>`` elements and exposes
an ``ezstandalone`` namespace with a ``cmd`` queue.  A refresh empties the
placeholders, then queues a ``config`` call and a ``showAds`` call for every
configured placement.
"""

from __future__ import annotations

from typing import Any

from adrefresh.core.models import AdProvider
from adrefresh.providers.base import BaseAdAdapter

__all__ = ["EzoicAdapter", "EZOIC_CONTAINER_PREFIX"]

EZOIC_CONTAINER_PREFIX = "ezoic-pub-ad-placeholder-"


class EzoicAdapter(BaseAdAdapter):
    provider = AdProvider.EZOIC
    label = "Ezoic"

    def is_available(self) -> bool:
        return self.page.globals.get("ezstandalone") is not None

    @property
    def options(self) -> dict[str, Any]:
        return {
            "limitCookies": self.settings.ezoic_limit_cookies,
            "anchorAdPosition": self.settings.ezoic_anchor_ad_position,
        }

    async def _reinitialise(self) -> None:
        self._clear_prefixed(EZOIC_CONTAINER_PREFIX)

        ez = self.page.globals["ezstandalone"]
        options = self.options
        placements = tuple(self.settings.ezoic_placements.values())

        def _configure() -> None:
            config = getattr(ez, "config", None)
            if config is not None:
                config(options)

        def _show() -> None:
            show_ads = getattr(ez, "show_ads", None)
            if show_ads is not None:
                show_ads(*placements)

        ez.cmd.append(_configure)
        ez.cmd.append(_show)
