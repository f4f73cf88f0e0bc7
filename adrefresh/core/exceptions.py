"""Adrefresh exception taxonomy.

Every custom exception inherits from :class:`AdRefreshBaseError`.  Failures of
a refresh attempt are modelled by :class:`AdRefreshError`, which carries a
closed :class:`AdRefreshErrorKind` tag and a ``retryable`` flag that drives the
orchestrator's retry loop:

    Layer hierarchy
    ---------------
    AdRefreshBaseError
    ├── ConfigError
    ├── StorageError
    └── AdRefreshError
        ├── NetworkError          (NETWORK)
        ├── ScriptLoadError       (SCRIPT_LOAD)
        ├── ProviderError         (PROVIDER)
        ├── CacheError            (CACHE)
        └── RefreshTimeoutError   (TIMEOUT)

Retryability is a property of the kind in the common case
(:data:`DEFAULT_RETRYABLE`) but every raise site may override it, e.g. a
``PROVIDER`` error for "no active provider" is never retryable.

Usage::

    from adrefresh.core.exceptions import ScriptLoadError

    raise ScriptLoadError("Ezoic not available", provider="ezoic", retryable=False)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Any, ClassVar

__all__ = [
    "AdRefreshBaseError",
    # Config / storage
    "ConfigError",
    "StorageError",
    # Refresh taxonomy
    "AdRefreshErrorKind",
    "DEFAULT_RETRYABLE",
    "AdRefreshError",
    "NetworkError",
    "ScriptLoadError",
    "ProviderError",
    "CacheError",
    "RefreshTimeoutError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class AdRefreshBaseError(Exception):
    """Root exception for all adrefresh errors."""


class ConfigError(AdRefreshBaseError):
    """Raised when the application configuration is invalid or incomplete."""


class StorageError(AdRefreshBaseError):
    """Raised when a key-value persistence operation fails."""


# ---------------------------------------------------------------------------
# Refresh taxonomy
# ---------------------------------------------------------------------------


class AdRefreshErrorKind(StrEnum):
    """Closed set of failure kinds for a refresh attempt."""

    NETWORK = "NETWORK"
    SCRIPT_LOAD = "SCRIPT_LOAD"
    PROVIDER = "PROVIDER"
    CACHE = "CACHE"
    TIMEOUT = "TIMEOUT"


#: Retryability of each kind when the raise site does not say otherwise.
DEFAULT_RETRYABLE: Mapping[AdRefreshErrorKind, bool] = MappingProxyType(
    {
        AdRefreshErrorKind.NETWORK: True,
        AdRefreshErrorKind.SCRIPT_LOAD: True,
        AdRefreshErrorKind.PROVIDER: True,
        AdRefreshErrorKind.CACHE: False,
        AdRefreshErrorKind.TIMEOUT: True,
    }
)


class AdRefreshError(AdRefreshBaseError):
    """A tagged refresh failure.

    Args:
        kind: The :class:`AdRefreshErrorKind` of the failure.
        message: Human-readable error description.
        provider: Name of the ad provider involved, if known.
        retryable: Whether the orchestrator may re-attempt the refresh.
            ``None`` selects the kind's default from :data:`DEFAULT_RETRYABLE`.
    """

    def __init__(
        self,
        kind: AdRefreshErrorKind,
        message: str,
        provider: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.kind = AdRefreshErrorKind(kind)
        self.message = message
        self.provider = provider
        self.retryable = DEFAULT_RETRYABLE[self.kind] if retryable is None else retryable
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, message={self.message!r}, "
            f"provider={self.provider!r}, retryable={self.retryable})"
        )

    @classmethod
    def from_exception(cls, exc: BaseException, provider: str | None = None) -> AdRefreshError:
        """Return *exc* unchanged if it is already tagged, else wrap it.

        Foreign exceptions become retryable ``PROVIDER`` errors.
        """
        if isinstance(exc, AdRefreshError):
            return exc
        message = str(exc) or type(exc).__name__
        return ProviderError(message, provider=provider, retryable=True)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of the error."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "provider": self.provider,
            "retryable": self.retryable,
        }


class _KindBoundError(AdRefreshError):
    """Subclasses bind :attr:`KIND` so raise sites only pass the message."""

    KIND: ClassVar[AdRefreshErrorKind]

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(self.KIND, message, provider=provider, retryable=retryable)


class NetworkError(_KindBoundError):
    """A network request needed for the refresh failed."""

    KIND = AdRefreshErrorKind.NETWORK


class ScriptLoadError(_KindBoundError):
    """The vendor library is absent or its reinitialisation call failed."""

    KIND = AdRefreshErrorKind.SCRIPT_LOAD


class ProviderError(_KindBoundError):
    """Provider-level failure: no active provider or a refresh already running."""

    KIND = AdRefreshErrorKind.PROVIDER


class CacheError(_KindBoundError):
    """Purging cached ad assets failed."""

    KIND = AdRefreshErrorKind.CACHE


class RefreshTimeoutError(_KindBoundError):
    """The adapter did not settle within its budget, or the refresh was throttled."""

    KIND = AdRefreshErrorKind.TIMEOUT
