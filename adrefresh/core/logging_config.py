"""Process-wide logging setup for adrefresh.

Modules never configure logging themselves; they only create a logger::

    import logging
    logger = logging.getLogger(__name__)

The entry-point calls :func:`configure_logging` once.  Level and format come
from the arguments, then from ``$LOG_LEVEL`` / ``$LOG_FORMAT``, then from the
defaults ``INFO`` / ``text``.

Every record passing the root handler is stamped with the id of the refresh
that emitted it (see :data:`REFRESH_ID_CTX`), so interleaved refreshes can be
told apart in both output formats.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable, Collection
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "REFRESH_ID_CTX", "RefreshContextFilter"]

#: Id of the refresh currently executing in this context, ``"-"`` outside one.
#: :meth:`~adrefresh.orchestrator.refresh_manager.AdRefreshManager.refresh`
#: sets it to ``uuid4().hex[:8]``.  Adapter tasks created during the refresh
#: copy the context, so a late settlement still logs under the right id.
REFRESH_ID_CTX: ContextVar[str] = ContextVar("refresh_id", default="-")

LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
FORMATS: Final[frozenset[str]] = frozenset({"text", "json"})

#: Third-party loggers held at WARNING unless DEBUG is requested.
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio", "aiosqlite")

_TEXT_LAYOUT = "%(asctime)s %(levelname)-8s [%(refresh_id)s] %(name)s: %(message)s"


class RefreshContextFilter(logging.Filter):
    """Copy :data:`REFRESH_ID_CTX` onto the record as ``refresh_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.refresh_id = REFRESH_ID_CTX.get()
        return True


def _pick(
    explicit: str | None,
    env_var: str,
    default: str,
    allowed: Collection[str],
    normalise: Callable[[str], str],
) -> str:
    value = normalise(explicit or os.environ.get(env_var) or default)
    if value not in allowed:
        raise ValueError(f"{env_var}={value!r} is not one of {sorted(allowed)}")
    return value


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        fmt: ``"text"`` or ``"json"``.
        force: Replace existing root handlers.  Without it, a second call
            only adjusts the level.

    Raises:
        ValueError: For an unknown level or format.
    """
    level_name = _pick(level, "LOG_LEVEL", "INFO", LEVELS, str.upper)
    fmt_name = _pick(fmt, "LOG_FORMAT", "text", FORMATS, str.lower)

    root = logging.getLogger()
    root.setLevel(level_name)
    if root.handlers and not force:
        return

    formatter: logging.Formatter = (
        JsonFormatter() if fmt_name == "json" else logging.Formatter(_TEXT_LAYOUT)
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level_name)
    handler.addFilter(RefreshContextFilter())
    handler.setFormatter(formatter)

    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)

    quiet_level = logging.DEBUG if level_name == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


#: Attributes every LogRecord carries; anything else arrived via ``extra``
#: or a filter.
_BUILTIN_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render each record as one line of JSON.

    Keys: ``ts`` (UTC, millisecond ISO-8601), ``level``, ``logger``,
    ``message`` and ``extra`` (the structured ``event``, the
    ``refresh_id`` and any other non-standard attributes).  ``exc_info``
    appears only for records logged with a traceback.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        doc: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {k: v for k, v in vars(record).items() if k not in _BUILTIN_ATTRS},
        }
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            doc["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(doc, default=str)
