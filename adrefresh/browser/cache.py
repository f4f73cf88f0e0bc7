"""Cache Storage model and ad-asset purging.

:class:`CacheStorage` and :class:`Cache` mirror the browser Cache Storage
API (``caches.keys()``, ``caches.open(name)``, ``cache.keys()``,
``cache.delete(url)``).  :class:`MemoryCacheStorage` is the in-process
implementation.

:func:`clear_ad_cache` walks every cache and deletes entries whose URL
belongs to an ad network (:data:`AD_DOMAINS`).  It raises
:class:`~adrefresh.core.exceptions.CacheError` on failure; the orchestrator
treats that as best-effort and carries on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Final, Protocol, runtime_checkable

from adrefresh.core.exceptions import CacheError

__all__ = [
    "AD_DOMAINS",
    "Cache",
    "CacheStorage",
    "MemoryCache",
    "MemoryCacheStorage",
    "is_ad_related_url",
    "clear_ad_cache",
]

logger = logging.getLogger(__name__)

#: Hosts serving ad scripts and creatives for the supported networks.
AD_DOMAINS: Final[tuple[str, ...]] = (
    "googlesyndication.com",
    "googletagservices.com",
    "doubleclick.net",
    "ezojs.com",
    "ezoic.com",
    "highperformanceformat.com",
    "adsterra.com",
    "monetag.com",
)


@runtime_checkable
class Cache(Protocol):
    async def keys(self) -> list[str]: ...

    async def delete(self, url: str) -> bool: ...


@runtime_checkable
class CacheStorage(Protocol):
    async def keys(self) -> list[str]: ...

    async def open(self, name: str) -> Cache: ...  # noqa: A003


class MemoryCache:
    """A named cache holding request URLs and their response bodies."""

    def __init__(self, entries: dict[str, bytes] | None = None) -> None:
        self._entries: dict[str, bytes] = dict(entries or {})

    async def keys(self) -> list[str]:
        return list(self._entries)

    async def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    def put(self, url: str, body: bytes = b"") -> None:
        self._entries[url] = body

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class MemoryCacheStorage:
    """In-process :class:`CacheStorage`; ``open`` creates caches on demand."""

    def __init__(self) -> None:
        self._caches: dict[str, MemoryCache] = {}

    async def keys(self) -> list[str]:
        return list(self._caches)

    async def open(self, name: str) -> MemoryCache:  # noqa: A003
        return self._caches.setdefault(name, MemoryCache())

    def seed(self, name: str, urls: Iterable[str]) -> MemoryCache:
        """Create (or extend) cache *name* with empty responses for *urls*."""
        cache = self._caches.setdefault(name, MemoryCache())
        for url in urls:
            cache.put(url)
        return cache


def is_ad_related_url(url: str) -> bool:
    """Return ``True`` if *url* mentions any of :data:`AD_DOMAINS`."""
    return any(domain in url for domain in AD_DOMAINS)


async def _purge_cache(storage: CacheStorage, name: str) -> int:
    cache = await storage.open(name)
    urls = [url for url in await cache.keys() if is_ad_related_url(url)]
    results = await asyncio.gather(*(cache.delete(url) for url in urls))
    return sum(1 for deleted in results if deleted)


async def clear_ad_cache(storage: CacheStorage) -> int:
    """Delete ad-related entries from every cache in *storage*.

    Returns:
        Number of entries deleted.

    Raises:
        CacheError: If listing, opening or deleting fails.
    """
    try:
        names = await storage.keys()
        counts = await asyncio.gather(*(_purge_cache(storage, name) for name in names))
    except Exception as exc:
        raise CacheError(f"Failed to clear ad cache: {exc}") from exc
    removed = sum(counts)
    logger.debug("Removed %d ad-related cache entries from %d caches", removed, len(names))
    return removed
