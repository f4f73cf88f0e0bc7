"""Monetag adapter.

Monetag containers use ``monetag-`` ids.  A refresh empties them and appends
a fresh loader script (``MONETAG_AD_URL``) to the document head.
"""

from __future__ import annotations

from adrefresh.browser.page import ScriptTag
from adrefresh.core.models import AdProvider
from adrefresh.providers.base import BaseAdAdapter

__all__ = ["MonetagAdapter", "MONETAG_CONTAINER_PREFIX"]

MONETAG_CONTAINER_PREFIX = "monetag-"


class MonetagAdapter(BaseAdAdapter):
    provider = AdProvider.MONETAG
    label = "Monetag"

    def is_available(self) -> bool:
        return bool(self.settings.monetag_ad_url)

    async def _reinitialise(self) -> None:
        self._clear_prefixed(MONETAG_CONTAINER_PREFIX)
        self.page.append_head_script(
            ScriptTag(
                src=self.settings.monetag_ad_url,
                is_async=True,
                attributes={"data-cfasync": "false"},
            )
        )
