"""Key-value persistence for advisory side state."""

from adrefresh.storage.database import DEFAULT_DB_PATH, create_schema, open_db
from adrefresh.storage.kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    open_store,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "open_store",
]
