"""Asynchronous key-value stores.

The rate limiter persists advisory bucket state through the
:class:`KeyValueStore` interface.  Two implementations exist:

* :class:`MemoryKeyValueStore`: a dict; the default when no database path
  is configured.
* :class:`SqliteKeyValueStore`: the ``kv_store`` table opened by
  :func:`~adrefresh.storage.database.open_db`.

Every failure of the backing store surfaces as
:class:`~adrefresh.core.exceptions.StorageError`.

Typical usage::

    store = await open_store(settings.rate_limit_db_path_resolved)
    await store.set("rate_limit_pick", '{"tokens": 29.0}')
    await store.aclose()
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

import aiosqlite

from adrefresh.core.exceptions import StorageError
from adrefresh.storage.database import open_db

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "open_store",
]

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String-to-string persistence used for best-effort side state."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value for *key*, or ``None`` if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:  # noqa: A003
        """Insert or replace *key*."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; deleting an absent key is not an error."""

    async def aclose(self) -> None:
        """Release backing resources.  No-op by default."""
        return None

    async def __aenter__(self) -> KeyValueStore:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store backed by a dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:  # noqa: A003
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class SqliteKeyValueStore(KeyValueStore):
    """Store backed by the ``kv_store`` SQLite table.

    Args:
        conn: Open connection whose schema was bootstrapped by
            :func:`~adrefresh.storage.database.open_db`.  The store takes
            ownership and closes it in :meth:`aclose`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> str | None:
        try:
            cursor = await self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read key {key!r}: {exc}") from exc
        return row[0] if row is not None else None

    async def set(self, key: str, value: str) -> None:  # noqa: A003
        try:
            await self._conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (key, value, time.time()),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to write key {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to delete key {key!r}: {exc}") from exc

    async def aclose(self) -> None:
        await self._conn.close()


async def open_store(path: Path | None = None) -> KeyValueStore:
    """Return a SQLite-backed store at *path*, or a memory store if ``None``."""
    if path is None:
        logger.debug("No database path configured; using in-memory key-value store")
        return MemoryKeyValueStore()
    return SqliteKeyValueStore(await open_db(path))
