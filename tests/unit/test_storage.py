"""Unit tests for the key-value stores and SQLite bootstrap."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest

from adrefresh.core.exceptions import StorageError
from adrefresh.storage.database import create_schema, open_db
from adrefresh.storage.kv_store import (
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    open_store,
)


async def _open_memory_store() -> SqliteKeyValueStore:
    return SqliteKeyValueStore(await open_db(":memory:"))


class TestMemoryKeyValueStore:
    async def test_get_missing_returns_none(self) -> None:
        assert await MemoryKeyValueStore().get("nope") is None

    async def test_set_get_delete(self) -> None:
        store = MemoryKeyValueStore()
        await store.set("rate_limit_pick", "{}")
        assert await store.get("rate_limit_pick") == "{}"
        assert len(store) == 1
        await store.delete("rate_limit_pick")
        await store.delete("rate_limit_pick")
        assert len(store) == 0


class TestSqliteKeyValueStore:
    async def test_upsert_overwrites(self) -> None:
        store = await _open_memory_store()
        try:
            await store.set("k", "one")
            await store.set("k", "two")
            assert await store.get("k") == "two"
        finally:
            await store.aclose()

    async def test_delete_absent_key_is_not_an_error(self) -> None:
        store = await _open_memory_store()
        try:
            await store.delete("missing")
            assert await store.get("missing") is None
        finally:
            await store.aclose()

    async def test_errors_become_storage_error(self) -> None:
        conn = await aiosqlite.connect(":memory:")
        store = SqliteKeyValueStore(conn)  # schema never created
        try:
            with pytest.raises(StorageError):
                await store.get("k")
            with pytest.raises(StorageError):
                await store.set("k", "v")
        finally:
            await store.aclose()

    async def test_schema_creation_is_idempotent(self) -> None:
        conn = await open_db(":memory:")
        try:
            await create_schema(conn)
            await create_schema(conn)
        finally:
            await conn.close()


class TestOpenStore:
    async def test_none_path_gives_memory_store(self) -> None:
        store = await open_store(None)
        assert isinstance(store, MemoryKeyValueStore)

    async def test_file_store_persists_across_connections(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "state.db"
        async with await open_store(db_path) as store:
            await store.set("rate_limit_api", '{"tokens": 3.0}')
        assert db_path.exists()

        async with await open_store(db_path) as store:
            assert await store.get("rate_limit_api") == '{"tokens": 3.0}'
