"""Core domain models, settings, logging configuration and the error taxonomy."""

from adrefresh.core.exceptions import (
    AdRefreshBaseError,
    AdRefreshError,
    AdRefreshErrorKind,
    CacheError,
    ConfigError,
    NetworkError,
    ProviderError,
    RefreshTimeoutError,
    ScriptLoadError,
    StorageError,
)
from adrefresh.core.logging_config import JsonFormatter, configure_logging
from adrefresh.core.models import (
    AdProvider,
    ProviderInfo,
    RefreshMetrics,
    RefreshRequest,
    RefreshResult,
    RefreshTrigger,
)
from adrefresh.core.profiles import PROFILES, RefreshProfile, provider_timeout
from adrefresh.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "AdProvider",
    "ProviderInfo",
    "RefreshMetrics",
    "RefreshRequest",
    "RefreshResult",
    "RefreshTrigger",
    # Settings / profiles
    "Settings",
    "RefreshProfile",
    "PROFILES",
    "provider_timeout",
    # Exceptions
    "AdRefreshBaseError",
    "ConfigError",
    "StorageError",
    "AdRefreshError",
    "AdRefreshErrorKind",
    "NetworkError",
    "ScriptLoadError",
    "ProviderError",
    "CacheError",
    "RefreshTimeoutError",
]
