"""Key-value backends behind the distance cache."""

import asyncio
import os
import threading
from unittest.mock import AsyncMock

import pytest

from market_distance.core.config import Settings
from market_distance.services.storage import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    build_storage,
)


class TestFileStore:
    @pytest.mark.asyncio
    async def test_round_trip_and_remove(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "kv.json"))

        assert await store.get("a") is None
        await store.set("a", "1")
        await store.set("b", "2")
        await store.remove("a")

        assert await store.get("a") is None
        assert await store.get("b") == "2"

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "kv.json")
        await FileKeyValueStore(path).set("a", "1")
        assert await FileKeyValueStore(path).get("a") == "1"

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "kv.json"
        path.write_text("{not json")
        store = FileKeyValueStore(str(path))

        assert await store.get("a") is None
        await store.set("a", "1")
        assert await store.get("a") == "1"

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "kv.json"))
        await store.set("a", "1")
        assert os.listdir(tmp_path) == ["kv.json"]

    @pytest.mark.asyncio
    async def test_disk_io_runs_off_event_loop(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "kv.json"))
        loop_thread = threading.get_ident()
        threads = []
        write_all = store._write_all

        def recording_write(data):
            threads.append(threading.get_ident())
            write_all(data)

        store._write_all = recording_write
        await store.set("a", "1")

        assert threads and loop_thread not in threads
        assert await store.get("a") == "1"

    @pytest.mark.asyncio
    async def test_concurrent_writes_keep_every_key(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "kv.json"))
        await asyncio.gather(*(store.set(f"coords:{i}", str(i)) for i in range(10)))

        for i in range(10):
            assert await store.get(f"coords:{i}") == str(i)


class TestRedisStore:
    @pytest.mark.asyncio
    async def test_delegates_to_client(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=b"value")
        store = RedisKeyValueStore(client=client)

        assert await store.get("k") == "value"
        await store.set("k", "v")
        await store.remove("k")

        client.set.assert_awaited_once_with("k", "v")
        client.delete.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_errors_degrade(self):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=ConnectionError("down"))
        client.set = AsyncMock(side_effect=ConnectionError("down"))
        store = RedisKeyValueStore(client=client)

        assert await store.get("k") is None
        await store.set("k", "v")

    def test_requires_url(self):
        with pytest.raises(ValueError):
            RedisKeyValueStore()


class TestBuildStorage:
    def test_file_by_default(self, tmp_path):
        settings = Settings(DISTANCE_CACHE_FILE=str(tmp_path / "kv.json"))
        assert isinstance(build_storage(settings), FileKeyValueStore)

    def test_redis_when_enabled(self):
        settings = Settings(ENABLE_REDIS=True, REDIS_URL="redis://localhost:6379/0")
        assert isinstance(build_storage(settings), RedisKeyValueStore)


@pytest.mark.asyncio
async def test_in_memory_store():
    store = InMemoryKeyValueStore({"a": "1"})
    await store.remove("missing")
    assert await store.get("a") == "1"
