"""Refresh adapters for the supported ad networks."""

from adrefresh.providers.adsense import AdSenseAdapter
from adrefresh.providers.adsterra import AdsterraAdapter
from adrefresh.providers.base import BaseAdAdapter
from adrefresh.providers.dispatch import build_adapter, resolve_provider_info
from adrefresh.providers.ezoic import EzoicAdapter
from adrefresh.providers.monetag import MonetagAdapter

__all__ = [
    "BaseAdAdapter",
    "EzoicAdapter",
    "AdSenseAdapter",
    "MonetagAdapter",
    "AdsterraAdapter",
    "build_adapter",
    "resolve_provider_info",
]
