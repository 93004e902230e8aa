import asyncio
from market_distance.core.config import settings
from market_distance.services.distance_cache import DistanceCacheStore
from market_distance.services.storage import build_storage

async def clear():
    # Drops every cached distance; the next request recomputes from scratch.
    storage = build_storage(settings)
    await DistanceCacheStore(storage).clear()
    close = getattr(storage, "close", None)
    if close is not None:
        await close()

if __name__ == "__main__":
    asyncio.run(clear())
