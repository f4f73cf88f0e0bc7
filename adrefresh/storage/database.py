"""SQLite database initialisation for the key-value store.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Switching the journal to WAL.
* Bootstrapping the ``kv_store`` table via ``CREATE TABLE IF NOT EXISTS``,
  which is idempotent and safe on every startup.

Typical usage::

    from adrefresh.storage.database import open_db

    async def main() -> None:
        conn = await open_db(Path("adrefresh.db"))
        # ... wrap conn in SqliteKeyValueStore ...
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("adrefresh.db")

#: key         Namespaced key, e.g. ``rate_limit_pick``.
#: value       Opaque text payload (JSON for rate-limit state).
#: updated_at  Unix timestamp of the last write.
_DDL_KV_STORE = """\
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT  NOT NULL,
    value       TEXT  NOT NULL,
    updated_at  REAL  NOT NULL,
    PRIMARY KEY (key)
)"""


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database.

    Args:
        path: Filesystem path for the SQLite file.  Defaults to
            :data:`DEFAULT_DB_PATH`.  ``":memory:"`` opens a private
            in-memory database.

    Returns:
        An open :class:`aiosqlite.Connection`.  The caller closes it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    if path == ":memory:":
        conn = await aiosqlite.connect(":memory:")
        await create_schema(conn)
        return conn

    db_path = Path(path or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", db_path)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    cursor = await conn.execute("PRAGMA journal_mode=WAL")
    row = await cursor.fetchone()
    if not row or row[0] != "wal":
        logger.warning("Requested WAL journal mode but SQLite reported: %r", row[0] if row else None)

    await create_schema(conn)
    logger.info("SQLite key-value store ready at %s", db_path)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the ``kv_store`` table if it does not already exist."""
    await conn.execute(_DDL_KV_STORE)
    await conn.commit()
