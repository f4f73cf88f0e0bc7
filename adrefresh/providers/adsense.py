"""Google AdSense adapter.

AdSense marks every filled ``.adsbygoogle`` slot with
``data-adsbygoogle-status``.  A refresh strips that marker and the creative
from each filled slot, waits for the DOM to settle, then pushes an empty
config object onto the ``adsbygoogle`` queue so the library fills the slots
again.
"""

from __future__ import annotations

import logging

from adrefresh.core.models import AdProvider
from adrefresh.providers.base import BaseAdAdapter

__all__ = ["AdSenseAdapter", "ADSENSE_SLOT_CLASS", "ADSENSE_STATUS_ATTR"]

logger = logging.getLogger(__name__)

ADSENSE_SLOT_CLASS = "adsbygoogle"
ADSENSE_STATUS_ATTR = "data-adsbygoogle-status"


class AdSenseAdapter(BaseAdAdapter):
    provider = AdProvider.ADSENSE
    label = "AdSense"

    def is_available(self) -> bool:
        return self.page.globals.get("adsbygoogle") is not None

    async def _reinitialise(self) -> None:
        cleared = 0
        for slot in self.page.query_class(ADSENSE_SLOT_CLASS):
            if slot.attributes.pop(ADSENSE_STATUS_ATTR, None):
                slot.inner_html = ""
                cleared += 1
        logger.debug("Cleared %d filled AdSense slots", cleared)

        await self._sleep(self._script_delay)
        self.page.globals["adsbygoogle"].append({})
