# market_distance/services/distance_cache.py
"""Time-expiring distance cache persisted as a single blob.

The blob is ``{"data": {key: label}, "timestamp": epoch_ms}`` stored under one
well-known key. There is one timestamp for the whole blob, so the cache
expires all at once and every save resets the clock for every entry.
"""
import asyncio
import json
import re
import time
from typing import Callable, Dict, Optional

import structlog

from market_distance.core.config import settings
from market_distance.models.dto import Coordinates, MarketEntity, VendorEntity
from market_distance.services.storage import KeyValueStore

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def make_cache_key(name: str, address: str, location_bucket: Optional[str] = None) -> str:
    """Normalize '<name>-<address>' to lowercase with whitespace runs turned into hyphens."""
    key = _WHITESPACE.sub("-", f"{name}-{address}".strip().lower())
    if location_bucket:
        key = f"{key}@{location_bucket}"
    return key


def location_bucket(coords: Coordinates, precision: int) -> str:
    """Round the shopper location so nearby positions share cache entries."""
    return f"{round(coords.lat, precision)},{round(coords.lng, precision)}"


def entity_key(entity: MarketEntity) -> str:
    """Result key for an entity: vendors by their id, markets by name and address."""
    if isinstance(entity, VendorEntity):
        return entity.id
    return make_cache_key(entity.name, entity.address)


def cache_key(entity: MarketEntity, user_coords: Optional[Coordinates] = None) -> str:
    """
    Key the entity's label is persisted under.

    Same as entity_key unless DISTANCE_CACHE_KEY_BY_LOCATION is on, in which
    case the rounded shopper location is appended so a move misses the cache.
    Result mappings handed to callers always use entity_key.
    """
    key = entity_key(entity)
    if settings.DISTANCE_CACHE_KEY_BY_LOCATION and user_coords is not None:
        key = f"{key}@{location_bucket(user_coords, settings.DISTANCE_CACHE_LOCATION_PRECISION)}"
    return key


class DistanceCacheStore:
    """
    Shared distance cache backed by an injected key-value store.

    Construct once per process and hand the same instance to every
    orchestrator so they all see one cache.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str = settings.DISTANCE_CACHE_KEY,
        ttl_seconds: int = settings.DISTANCE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.key = key
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._write_lock = asyncio.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def load(self) -> Dict[str, str]:
        """Return the cached mapping, or {} when absent, expired or corrupt."""
        try:
            raw = await self.storage.get(self.key)
        except Exception as e:
            logger.warning("distance_cache_read_error", key=self.key, error=str(e))
            return {}
        if raw is None:
            return {}

        try:
            blob = json.loads(raw)
            data = blob["data"]
            timestamp = int(blob["timestamp"])
            if not isinstance(data, dict):
                raise ValueError("data is not a mapping")
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            logger.warning("distance_cache_corrupt", key=self.key, error=str(e))
            return {}

        age_ms = self._now_ms() - timestamp
        if age_ms > self.ttl_ms:
            logger.info("distance_cache_expired", key=self.key, age_ms=age_ms)
            return {}

        return {str(k): str(v) for k, v in data.items()}

    async def save(self, entries: Dict[str, str]) -> Dict[str, str]:
        """
        Merge entries into the stored mapping and write it back with a fresh timestamp.

        Persistence is best-effort: a failed write is logged and the merged
        mapping is still returned to the caller.
        """
        async with self._write_lock:
            merged = await self.load()
            merged.update(entries)
            blob = json.dumps({"data": merged, "timestamp": self._now_ms()})
            try:
                await self.storage.set(self.key, blob)
            except Exception as e:
                logger.error("distance_cache_write_error", key=self.key, error=str(e))
            else:
                logger.debug("distance_cache_saved", key=self.key, entries=len(merged))
            return merged

    async def clear(self) -> None:
        async with self._write_lock:
            try:
                await self.storage.remove(self.key)
            except Exception as e:
                logger.error("distance_cache_clear_error", key=self.key, error=str(e))
            else:
                logger.info("distance_cache_cleared", key=self.key)
