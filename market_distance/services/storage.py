# market_distance/services/storage.py
"""Durable key-value stores backing the distance cache.

All backends share the same small async API: get, set and remove on string
values. The file store is the default; Redis is used when enabled in settings.
"""
import asyncio
import json
import os
import tempfile
from typing import Dict, Optional, Protocol

import structlog
from redis.asyncio import Redis

from market_distance.core.config import Settings

logger = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str) -> None: ...
    async def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store. Does not survive a restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.store: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str) -> None:
        self.store[key] = value

    async def remove(self, key: str) -> None:
        self.store.pop(key, None)


class FileKeyValueStore:
    """
    JSON document on disk holding every key.

    Writes go to a temp file in the same directory and are swapped in with
    os.replace, so a crash mid-write leaves the previous document intact.
    Unlike the other backends, set/remove raise OSError when the disk write
    fails; callers decide whether persistence is best-effort.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("kv_file_unreadable", path=self.path, error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("kv_file_unexpected_shape", path=self.path)
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # Disk access happens off the event loop.
    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = value
            await asyncio.to_thread(self._write_all, data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if key in data:
                del data[key]
                await asyncio.to_thread(self._write_all, data)


class RedisKeyValueStore:
    """Thin async wrapper around redis.asyncio; errors are logged, reads degrade to None."""

    def __init__(self, url: Optional[str] = None, client: Optional[Redis] = None):
        if client is None:
            if not url:
                raise ValueError("REDIS_URL is not set in the environment")
            client = Redis.from_url(url, decode_responses=True)
        self._redis = client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._redis.get(key)
        except Exception as e:
            logger.error("redis_get_error", key=key, error=str(e))
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value)
        except Exception as e:
            logger.error("redis_set_error", key=key, error=str(e))

    async def remove(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except Exception as e:
            logger.error("redis_delete_error", key=key, error=str(e))

    async def close(self) -> None:
        await self._redis.aclose()


def build_storage(settings: Settings) -> KeyValueStore:
    """Pick the configured backend: Redis when enabled, otherwise the on-disk file."""
    if settings.ENABLE_REDIS and settings.REDIS_URL:
        logger.info("kv_backend_selected", backend="redis")
        return RedisKeyValueStore(settings.REDIS_URL)
    logger.info("kv_backend_selected", backend="file", path=settings.DISTANCE_CACHE_FILE)
    return FileKeyValueStore(settings.DISTANCE_CACHE_FILE)
