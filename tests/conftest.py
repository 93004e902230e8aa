"""
Shared test fixtures.

HTTP clients are exercised against ``httpx.MockTransport`` so no Google Maps
key or network is needed; persistence uses the in-memory key-value store.
"""

from __future__ import annotations

from typing import Callable, List

import httpx
import pytest

from market_distance.models.dto import Coordinates, MarketEntity
from market_distance.services.distance_cache import DistanceCacheStore
from market_distance.services.storage import InMemoryKeyValueStore

SAN_ANTONIO = Coordinates(lat=29.4241, lng=-98.4936)


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """Wraps a handler in an httpx.MockTransport and keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_handler(payload, status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)
    return handler


def markets(count: int) -> List[MarketEntity]:
    return [
        MarketEntity(id=str(i), name=f"Market {i}", address=f"{100 + i} Main St, San Antonio, TX")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(memory_store, clock) -> DistanceCacheStore:
    return DistanceCacheStore(memory_store, key="test_distances", ttl_seconds=24 * 60 * 60, clock=clock)
