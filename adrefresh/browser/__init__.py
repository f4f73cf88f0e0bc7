"""Page and Cache Storage collaborators the refresh layer operates on."""

from adrefresh.browser.cache import (
    AD_DOMAINS,
    MemoryCacheStorage,
    clear_ad_cache,
    is_ad_related_url,
)
from adrefresh.browser.page import (
    AdContainer,
    AdPage,
    EzStandalone,
    PageEvent,
    PageEventType,
    ScriptTag,
)

__all__ = [
    "AD_DOMAINS",
    "MemoryCacheStorage",
    "clear_ad_cache",
    "is_ad_related_url",
    "AdContainer",
    "AdPage",
    "EzStandalone",
    "PageEvent",
    "PageEventType",
    "ScriptTag",
]
