"""Adapter contract for the supported ad networks.

Every network subclasses :class:`BaseAdAdapter`, declares its
:attr:`~BaseAdAdapter.provider` and implements :meth:`~BaseAdAdapter.is_available`
and :meth:`~BaseAdAdapter._reinitialise`.

:meth:`BaseAdAdapter.refresh` is the single entry point the orchestrator
calls.  It resolves once the vendor's reinitialisation request has been
*issued*, not once a creative has rendered.  Failures are always tagged:

* vendor library absent or unconfigured: ``SCRIPT_LOAD``, not retryable;
* anything raised while touching the page or the vendor namespace:
  ``SCRIPT_LOAD``, retryable.

Typical usage::

    class MyNetworkAdapter(BaseAdAdapter):
        provider = AdProvider.MONETAG

        def is_available(self) -> bool:
            return bool(self.settings.monetag_ad_url)

        async def _reinitialise(self) -> None:
            ...
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, ClassVar

from adrefresh.core.exceptions import AdRefreshError, ScriptLoadError
from adrefresh.core.models import AdProvider

if TYPE_CHECKING:
    from adrefresh.browser.page import AdContainer, AdPage
    from adrefresh.core.settings import Settings

__all__ = ["BaseAdAdapter", "SCRIPT_SETTLE_DELAY"]

logger = logging.getLogger(__name__)

#: Seconds between clearing markup and re-issuing the vendor request.
SCRIPT_SETTLE_DELAY: float = 0.1


class BaseAdAdapter(ABC):
    """Abstract base for one ad network's refresh routine.

    Args:
        page: The page whose containers and vendor globals are refreshed.
        settings: Provides the network's ids, keys and URLs.
        sleep: Awaitable sleep used for settle delays.  Injected in tests.
        script_delay: Seconds waited where the network needs the cleared
            markup to settle before the vendor is called again.
    """

    provider: ClassVar[AdProvider]

    #: Display name used in error messages.
    label: ClassVar[str]

    def __init__(
        self,
        page: AdPage,
        settings: Settings,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        script_delay: float = SCRIPT_SETTLE_DELAY,
    ) -> None:
        self.page = page
        self.settings = settings
        self._sleep = sleep
        self._script_delay = script_delay

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider.value!r})"

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Clear rendered creative and re-issue the vendor request.

        Raises:
            ScriptLoadError: ``retryable=False`` when the vendor library is
                absent; ``retryable=True`` for any other failure.
        """
        if not self.is_available():
            raise ScriptLoadError(
                f"{self.label} not available",
                provider=self.provider.value,
                retryable=False,
            )
        try:
            await self._reinitialise()
        except AdRefreshError:
            raise
        except Exception as exc:
            raise ScriptLoadError(
                f"{self.label} refresh failed: {exc}",
                provider=self.provider.value,
                retryable=True,
            ) from exc
        logger.debug("%s ads refreshed", self.label)

    @abstractmethod
    def is_available(self) -> bool:
        """``True`` when the vendor library (or its configuration) is present."""

    @abstractmethod
    async def _reinitialise(self) -> None:
        """Network-specific clearing and reinitialisation."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clear_prefixed(self, prefix: str) -> list[AdContainer]:
        containers = self.page.query_id_prefix(prefix)
        for container in containers:
            container.clear()
        return containers
