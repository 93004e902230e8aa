"""Coordinate resolver against a mocked Geocoding API."""

from __future__ import annotations

import httpx
import pytest

from market_distance.models.dto import Coordinates
from market_distance.services.geocoding import GeocodingClient, parse_coordinates
from market_distance.services.storage import InMemoryKeyValueStore
from tests.conftest import RecordingTransport, json_handler

OK_RESPONSE = {
    "status": "OK",
    "results": [{"geometry": {"location": {"lat": 29.4425, "lng": -98.4792}}}],
}


def make_client(transport: RecordingTransport, **kwargs) -> GeocodingClient:
    kwargs.setdefault("initial_backoff", 0.0)
    return GeocodingClient(api_key="test-key", client=transport.client(), **kwargs)


class TestParseCoordinates:
    def test_lat_lng(self):
        assert parse_coordinates("29.4241, -98.4936") == Coordinates(lat=29.4241, lng=-98.4936)

    def test_comma_decimals_and_space_separator(self):
        assert parse_coordinates("29,4241 -98,4936") == Coordinates(lat=29.4241, lng=-98.4936)

    def test_swapped_order(self):
        assert parse_coordinates("-98.4936, 29.4241") == Coordinates(lat=29.4241, lng=-98.4936)

    @pytest.mark.parametrize("text", ["312 Pearl Pkwy", "78215", "123.4, 456.7", "29.42"])
    def test_not_coordinates(self, text):
        assert parse_coordinates(text) is None


class TestResolve:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["", "   ", None])
    async def test_missing_address_makes_no_call(self, address):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        assert await make_client(transport).resolve(address) is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_success(self):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        coords = await make_client(transport).resolve("312 Pearl Pkwy, San Antonio, TX")

        assert coords == Coordinates(lat=29.4425, lng=-98.4792)
        params = transport.requests[0].url.params
        assert params["address"] == "312 Pearl Pkwy, San Antonio, TX"
        assert params["key"] == "test-key"
        assert params["region"] == "us"

    @pytest.mark.asyncio
    async def test_coordinate_literal_skips_service(self):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        coords = await make_client(transport).resolve("29.4241, -98.4936")
        assert coords == Coordinates(lat=29.4241, lng=-98.4936)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_zero_results(self):
        transport = RecordingTransport(json_handler({"status": "ZERO_RESULTS", "results": []}))
        assert await make_client(transport).resolve("nowhere at all") is None

    @pytest.mark.asyncio
    async def test_server_error(self):
        transport = RecordingTransport(json_handler({"error": "boom"}, status_code=500))
        assert await make_client(transport).resolve("312 Pearl Pkwy") is None

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        transport = RecordingTransport(json_handler({"status": "OK", "results": [{"geometry": {}}]}))
        assert await make_client(transport).resolve("312 Pearl Pkwy") is None

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        transport = RecordingTransport(lambda request: httpx.Response(200, text="<html>"))
        assert await make_client(transport).resolve("312 Pearl Pkwy") is None

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = RecordingTransport(handler)
        assert await make_client(transport).resolve("312 Pearl Pkwy") is None

    @pytest.mark.asyncio
    async def test_timeouts_are_retried_then_give_up(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        transport = RecordingTransport(handler)
        assert await make_client(transport, max_retries=2).resolve("312 Pearl Pkwy") is None
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=OK_RESPONSE)

        transport = RecordingTransport(handler)
        assert await make_client(transport).resolve("312 Pearl Pkwy") == Coordinates(lat=29.4425, lng=-98.4792)

    @pytest.mark.asyncio
    async def test_no_api_key(self):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        client = GeocodingClient(api_key="", client=transport.client())
        assert await client.resolve("312 Pearl Pkwy") is None
        assert transport.requests == []


class TestResolveForEntity:
    @pytest.mark.asyncio
    async def test_geocodes_once_per_entity(self):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        store = InMemoryKeyValueStore()
        client = make_client(transport, coordinate_store=store)

        first = await client.resolve_for_entity("v-1", "312 Pearl Pkwy")
        second = await client.resolve_for_entity("v-1", "312 Pearl Pkwy")

        assert first == second == Coordinates(lat=29.4425, lng=-98.4792)
        assert len(transport.requests) == 1
        assert "coords:v-1" in store.store

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        transport = RecordingTransport(json_handler({"status": "ZERO_RESULTS", "results": []}))
        store = InMemoryKeyValueStore()
        client = make_client(transport, coordinate_store=store)

        assert await client.resolve_for_entity("v-1", "312 Pearl Pkwy") is None
        assert store.store == {}

    @pytest.mark.asyncio
    async def test_unreadable_cached_value_is_ignored(self):
        transport = RecordingTransport(json_handler(OK_RESPONSE))
        store = InMemoryKeyValueStore({"coords:v-1": "garbage"})
        client = make_client(transport, coordinate_store=store)

        assert await client.resolve_for_entity("v-1", "312 Pearl Pkwy") == Coordinates(lat=29.4425, lng=-98.4792)


class TestReverse:
    @pytest.mark.asyncio
    async def test_extracts_zip_city_state(self):
        payload = {
            "status": "OK",
            "results": [
                {
                    "formatted_address": "312 Pearl Pkwy, San Antonio, TX 78215, USA",
                    "address_components": [
                        {"long_name": "San Antonio", "short_name": "San Antonio", "types": ["locality", "political"]},
                        {"long_name": "Texas", "short_name": "TX", "types": ["administrative_area_level_1"]},
                    ],
                },
                {
                    "address_components": [
                        {"long_name": "78215", "short_name": "78215", "types": ["postal_code"]},
                    ],
                },
            ],
        }
        transport = RecordingTransport(json_handler(payload))
        result = await make_client(transport).reverse(29.4425, -98.4792)

        assert result.zipcode == "78215"
        assert result.city == "San Antonio"
        assert result.state == "TX"
        assert result.formatted_address.startswith("312 Pearl Pkwy")
        assert transport.requests[0].url.params["latlng"] == "29.4425,-98.4792"

    @pytest.mark.asyncio
    async def test_failure(self):
        transport = RecordingTransport(json_handler({"status": "REQUEST_DENIED", "results": []}))
        assert await make_client(transport).reverse(0.0, 0.0) is None
