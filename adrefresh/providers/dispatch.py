"""Provider selection and adapter dispatch.

:func:`resolve_provider_info` turns the current settings into a
:class:`~adrefresh.core.models.ProviderInfo` snapshot;
:func:`build_adapter` maps that snapshot to the adapter for the active
network.  Having no usable network is a dispatch-level ``PROVIDER`` error,
never an adapter error.

Typical usage::

    info = resolve_provider_info(settings)
    adapter = build_adapter(info, page, settings)
    await adapter.refresh()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from adrefresh.core import events
from adrefresh.core.exceptions import ProviderError
from adrefresh.core.models import AD_NETWORKS, AdProvider, ProviderInfo
from adrefresh.providers.adsense import AdSenseAdapter
from adrefresh.providers.adsterra import AdsterraAdapter
from adrefresh.providers.base import BaseAdAdapter
from adrefresh.providers.ezoic import EzoicAdapter
from adrefresh.providers.monetag import MonetagAdapter

if TYPE_CHECKING:
    from adrefresh.browser.page import AdPage
    from adrefresh.core.settings import Settings

__all__ = ["resolve_provider_info", "build_adapter"]

logger = logging.getLogger(__name__)


def resolve_provider_info(settings: Settings) -> ProviderInfo:
    """Snapshot which network is selected and which can be dispatched to.

    A network's flag is set only when it is the selected provider; AdSense
    additionally needs a real publisher id and banner slot.
    """
    selected = settings.ad_provider
    flags = {network: network is selected for network in AD_NETWORKS}
    if selected is AdProvider.ADSENSE and not settings.adsense_configured:
        logger.debug("AdSense selected but publisher id / banner slot are placeholders")
        flags[AdProvider.ADSENSE] = False
    return ProviderInfo(active_provider=selected, active_flags=flags)


def build_adapter(
    info: ProviderInfo,
    page: AdPage,
    settings: Settings,
    **adapter_kwargs: Any,
) -> BaseAdAdapter:
    """Return the adapter for the active network in *info*.

    Raises:
        ProviderError: ``retryable=False`` when no network is active.
    """
    adapter_cls: type[BaseAdAdapter]
    match info.dispatch_target():
        case AdProvider.EZOIC:
            adapter_cls = EzoicAdapter
        case AdProvider.ADSENSE:
            adapter_cls = AdSenseAdapter
        case AdProvider.MONETAG:
            adapter_cls = MonetagAdapter
        case AdProvider.ADSTERRA:
            adapter_cls = AdsterraAdapter
        case _:
            raise ProviderError(
                "No active ad provider found",
                provider=info.provider_name,
                retryable=False,
            )
    logger.debug(
        "Dispatching refresh to %s",
        adapter_cls.__name__,
        extra={"event": events.PROVIDER_DISPATCH},
    )
    return adapter_cls(page, settings, **adapter_kwargs)
