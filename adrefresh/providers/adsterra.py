"""Adsterra adapter.

Adsterra reads its placement from the ``atOptions`` global and renders next
to the ``invoke.js`` script that follows it.  A refresh empties every
``adsterra-`` container, resets ``atOptions``, waits for the DOM to settle
and appends a new ``invoke.js`` script inside each container.
"""

from __future__ import annotations

import logging
from typing import Any

from adrefresh.browser.page import ScriptTag
from adrefresh.core.models import AdProvider
from adrefresh.providers.base import BaseAdAdapter

__all__ = ["AdsterraAdapter", "ADSTERRA_CONTAINER_PREFIX"]

logger = logging.getLogger(__name__)

ADSTERRA_CONTAINER_PREFIX = "adsterra-"


class AdsterraAdapter(BaseAdAdapter):
    provider = AdProvider.ADSTERRA
    label = "Adsterra"

    def is_available(self) -> bool:
        return bool(self.settings.adsterra_key)

    @property
    def at_options(self) -> dict[str, Any]:
        return {
            "key": self.settings.adsterra_key,
            "format": self.settings.adsterra_format,
            "height": self.settings.adsterra_height,
            "width": self.settings.adsterra_width,
            "params": {},
        }

    async def _reinitialise(self) -> None:
        containers = self._clear_prefixed(ADSTERRA_CONTAINER_PREFIX)
        if not containers:
            logger.debug("No Adsterra containers on the page; nothing to refresh")
            return

        self.page.globals["atOptions"] = self.at_options
        await self._sleep(self._script_delay)
        for container in containers:
            container.append_script(
                ScriptTag(
                    src=self.settings.adsterra_script_url,
                    is_async=True,
                    attributes={"data-cfasync": "false"},
                )
            )
