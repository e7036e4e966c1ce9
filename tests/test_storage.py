from __future__ import annotations

import asyncio

import pytest

from app.cache import TTLCache
from app.database import Database
from app.storage import DatabaseKeyValueStore, MemoryKeyValueStore


@pytest.mark.anyio
async def test_memory_store_round_trips_json_values() -> None:
    store = MemoryKeyValueStore()

    assert await store.set("settings", {"quality": 720, "tags": ["a", "b"]})
    assert await store.get("settings") == {"quality": 720, "tags": ["a", "b"]}
    assert await store.get("missing") is None


@pytest.mark.anyio
async def test_memory_store_refuses_writes_over_capacity() -> None:
    store = MemoryKeyValueStore(capacity_bytes=40)

    assert await store.set("a", "x" * 10)
    used = store.used_bytes
    assert not await store.set("b", "y" * 40)
    assert await store.get("b") is None
    assert store.used_bytes == used


@pytest.mark.anyio
async def test_memory_store_overwrite_releases_previous_size() -> None:
    store = MemoryKeyValueStore(capacity_bytes=30)

    assert await store.set("a", "x" * 20)
    assert await store.set("a", "y" * 20)
    await store.remove("a")

    assert store.used_bytes == 0


@pytest.mark.anyio
async def test_memory_store_lists_keys_by_prefix_in_insertion_order() -> None:
    store = MemoryKeyValueStore()
    for key in ("cache:b", "favorites:list", "cache:a"):
        await store.set(key, 1)
    await store.set("cache:b", 2)

    assert await store.list_keys("cache:") == ["cache:b", "cache:a"]
    assert len(await store.list_keys()) == 3


@pytest.mark.anyio
async def test_memory_store_rejects_unserialisable_values() -> None:
    store = MemoryKeyValueStore()

    assert not await store.set("bad", {"value": object()})


def test_database_store_persists_between_instances(tmp_path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"

    async def write() -> None:
        database = Database(url)
        await database.create_all()
        store = DatabaseKeyValueStore(database)
        assert await store.set("cache:th:trending?page=1", [{"id": "1"}])
        assert await store.set("progress:history", [])
        assert await store.set("cache:th:latest?page=1", [])
        assert await store.set("cache:th:trending?page=1", [{"id": "2"}])
        await database.dispose()

    async def read() -> tuple[object, list[str], list[str]]:
        database = Database(url)
        await database.create_all()
        store = DatabaseKeyValueStore(database)
        value = await store.get("cache:th:trending?page=1")
        cached = await store.list_keys("cache:")
        await store.remove("cache:th:latest?page=1")
        remaining = await store.list_keys()
        await database.dispose()
        return value, cached, remaining

    asyncio.run(write())
    value, cached, remaining = asyncio.run(read())

    assert value == [{"id": "2"}]
    assert cached == ["cache:th:trending?page=1", "cache:th:latest?page=1"]
    assert remaining == ["cache:th:trending?page=1", "progress:history"]


def test_database_store_prefix_is_not_a_pattern(tmp_path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"

    async def scenario() -> list[str]:
        database = Database(url)
        await database.create_all()
        store = DatabaseKeyValueStore(database)
        await store.set("cache_x", 1)
        await store.set("cacheAx", 1)
        keys = await store.list_keys("cache_")
        await database.dispose()
        return keys

    assert asyncio.run(scenario()) == ["cache_x"]


def test_database_store_concurrent_writes_to_one_key_both_succeed(tmp_path, clock) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"

    async def scenario() -> tuple[list[bool], object, object, list[str]]:
        database = Database(url)
        await database.create_all()
        store = DatabaseKeyValueStore(database)
        cache = TTLCache(store, ttl_seconds=300, clock=clock)
        await cache.put("th:latest?page=1", ["keep me"])
        await store.set("progress:history", [{"drama_id": "1"}])

        written = await asyncio.gather(
            store.set("cache:th:trending?page=1", [1]),
            store.set("cache:th:trending?page=1", [2]),
        )
        await asyncio.gather(
            cache.put("th:hot?page=1", [1]), cache.put("th:hot?page=1", [1])
        )

        kept = await cache.get("th:latest?page=1")
        hot = await cache.get("th:hot?page=1")
        keys = await store.list_keys()
        await database.dispose()
        return list(written), kept, hot, keys

    written, kept, hot, keys = asyncio.run(scenario())

    assert written == [True, True]
    assert kept == ["keep me"]
    assert hot == [1]
    assert keys == [
        "cache:th:latest?page=1",
        "progress:history",
        "cache:th:trending?page=1",
        "cache:th:hot?page=1",
    ]
