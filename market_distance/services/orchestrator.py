# market_distance/services/orchestrator.py
"""Batch distance orchestration for markets and vendors.

Cached labels are surfaced first. Cache misses are resolved in small batches:
batches run one after another, entities inside a batch run concurrently, and
a short pause between batches keeps the Maps quota happy. Each completed batch
is written to the cache and reported through ``on_update`` so callers can
render progressively.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from market_distance.core.config import settings
from market_distance.models.dto import DISTANCE_UNKNOWN, Coordinates, MarketEntity, VendorEntity
from market_distance.services.distance_cache import DistanceCacheStore, cache_key, entity_key
from market_distance.services.geocoding import GeocodingClient
from market_distance.services.road_distance import DistanceMatrixClient
from market_distance.utils.haversine import distance_miles, format_miles

logger = structlog.get_logger(__name__)

UpdateCallback = Callable[[Dict[str, str]], Union[None, Awaitable[None]]]


class OrchestratorState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    BATCHING = "BATCHING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class CancellationToken:
    """Per-run abort signal, checked at every suspension point of a run."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for `delay` seconds; returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


def partition(items: Sequence, size: int) -> List[list]:
    """Split items into consecutive chunks of at most `size`."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class DistanceOrchestrator:
    """
    Produces a distance label per entity for a shopper location.

    Concurrent runs are not serialized against each other; only the cache
    writes are. Cached labels are reused even when the shopper has moved,
    unless the cache is keyed by location (see DISTANCE_CACHE_KEY_BY_LOCATION).
    """

    def __init__(
        self,
        cache: DistanceCacheStore,
        geocoder: GeocodingClient,
        road_distance: DistanceMatrixClient,
        batch_size: int = settings.DISTANCE_BATCH_SIZE,
        batch_delay: float = settings.DISTANCE_BATCH_DELAY_SECONDS,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.cache = cache
        self.geocoder = geocoder
        self.road_distance = road_distance
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.state = OrchestratorState.IDLE

    @property
    def in_progress(self) -> bool:
        return self.state in (OrchestratorState.LOADING, OrchestratorState.BATCHING)

    async def refresh(
        self,
        entities: Sequence[MarketEntity],
        user_coords: Coordinates,
        force: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> Dict[str, str]:
        """Recompute on the caller's schedule. `force` drops the whole cache first."""
        if force:
            await self.cache.clear()
        return await self.compute_distances(entities, user_coords, cancel_token=cancel_token, on_update=on_update)

    async def compute_distances(
        self,
        entities: Sequence[MarketEntity],
        user_coords: Coordinates,
        cancel_token: Optional[CancellationToken] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> Dict[str, str]:
        token = cancel_token or CancellationToken()
        self.state = OrchestratorState.LOADING
        try:
            return await self._run(entities, user_coords, token, on_update)
        finally:
            if self.in_progress:
                # Interrupted by an exception or task cancellation
                self.state = OrchestratorState.IDLE

    async def _run(
        self,
        entities: Sequence[MarketEntity],
        user_coords: Coordinates,
        token: CancellationToken,
        on_update: Optional[UpdateCallback],
    ) -> Dict[str, str]:
        cached = await self.cache.load()

        results: Dict[str, str] = {}
        misses: List[Tuple[str, MarketEntity]] = []
        stored_as: Dict[str, str] = {}
        for entity in entities:
            key = entity_key(entity)
            if key in stored_as:
                continue
            stored_as[key] = cache_key(entity, user_coords)
            if stored_as[key] in cached:
                results[key] = cached[stored_as[key]]
            else:
                misses.append((key, entity))

        logger.info("distance_run_started", entities=len(entities), cached=len(results), misses=len(misses))
        if results:
            await self._notify(on_update, results)

        if not misses:
            self.state = OrchestratorState.DONE
            return results

        self.state = OrchestratorState.BATCHING
        batches = partition(misses, self.batch_size)
        for index, batch in enumerate(batches):
            if token.cancelled:
                return self._cancelled(results)

            labels = await self._run_batch(batch, user_coords, token)
            if labels is None:
                return self._cancelled(results)

            results.update(labels)
            await self.cache.save({stored_as[key]: label for key, label in labels.items()})
            logger.info("distance_batch_completed", batch=index + 1, of=len(batches), size=len(batch))
            await self._notify(on_update, results)

            if index < len(batches) - 1 and await token.sleep(self.batch_delay):
                return self._cancelled(results)

        self.state = OrchestratorState.DONE
        return results

    async def _run_batch(
        self, batch: List[Tuple[str, MarketEntity]], user_coords: Coordinates, token: CancellationToken
    ) -> Optional[Dict[str, str]]:
        """Resolve one batch concurrently. Returns None if cancelled before it finished."""
        gathered = asyncio.ensure_future(
            asyncio.gather(*(self._label_for(key, entity, user_coords) for key, entity in batch))
        )
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({gathered, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not gathered.done():
                gathered.cancel()
        if gathered not in done:
            # Let the in-flight lookups unwind before reporting the cancellation
            await asyncio.wait({gathered})
            return None
        return {key: label for (key, _), label in zip(batch, gathered.result())}

    async def _label_for(self, key: str, entity: MarketEntity, user_coords: Coordinates) -> str:
        """Distance label for one entity; every failure becomes the unknown sentinel."""
        try:
            if not entity.address or not entity.address.strip():
                logger.info("distance_no_address", key=key)
                return DISTANCE_UNKNOWN

            if isinstance(entity, VendorEntity):
                coords = await self.geocoder.resolve_for_entity(entity.id, entity.address)
            else:
                coords = await self.geocoder.resolve(entity.address)
            if coords is None:
                logger.info("distance_no_coordinates", key=key)
                return DISTANCE_UNKNOWN

            road = await self.road_distance.resolve(user_coords.lat, user_coords.lng, coords.lat, coords.lng)
            if road is not None:
                return road.distance

            logger.info("distance_haversine_fallback", key=key)
            return format_miles(distance_miles(user_coords.lat, user_coords.lng, coords.lat, coords.lng))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("distance_entity_failed", key=key, error=str(e))
            return DISTANCE_UNKNOWN

    def _cancelled(self, results: Dict[str, str]) -> Dict[str, str]:
        logger.info("distance_run_cancelled", completed=len(results))
        self.state = OrchestratorState.CANCELLED
        return results

    async def _notify(self, on_update: Optional[UpdateCallback], results: Dict[str, str]) -> None:
        if on_update is None:
            return
        try:
            outcome = on_update(dict(results))
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            logger.error("distance_update_callback_failed", error=str(e))
