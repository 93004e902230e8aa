# Coordinate resolver: free-text address -> Coordinates, with a per-entity coordinate cache.
# Reverse lookup (coordinates -> zip/city/state) for showing the shopper's area.

import asyncio
import json
import logging
import random
import re
from typing import Optional

import httpx

from market_distance.core.config import settings
from market_distance.models.dto import Coordinates, ReverseGeocodeResult
from market_distance.services.http import MapsServiceClient
from market_distance.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

# "lat,lng", "lat lng" or "lat, lng"; comma accepted as decimal separator (European style)
COORD_PATTERN = re.compile(r'^([-+]?\d{1,3}[.,]\d+)[,\s]+([-+]?\d{1,3}[.,]\d+)$')

COORDS_KEY_PREFIX = "coords:"


def parse_coordinates(text: str) -> Optional[Coordinates]:
    """
    Recognize a literal coordinate pair typed instead of an address.

    Values are read as (lat, lng); if only the swapped order is valid
    (e.g. "-98.49, 29.42") they are swapped. Anything else returns None.
    """
    match = COORD_PATTERN.match(text.strip())
    if not match:
        return None
    try:
        val1 = float(match.group(1).replace(',', '.'))
        val2 = float(match.group(2).replace(',', '.'))
    except ValueError as e:
        logger.error(f"Float conversion error: {e}")
        return None

    if abs(val1) <= 90 and abs(val2) <= 180:
        return Coordinates(lat=val1, lng=val2)
    if abs(val2) <= 90 and abs(val1) <= 180:
        return Coordinates(lat=val2, lng=val1)
    return None


class GeocodingClient(MapsServiceClient):
    """Resolves addresses through the Geocoding API. Every failure degrades to None."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        coordinate_store: Optional[KeyValueStore] = None,
        base_url: str = settings.GEOCODE_API_URL,
        region: Optional[str] = settings.GEOCODE_REGION,
        max_retries: int = settings.GEOCODE_MAX_RETRIES,
        initial_backoff: float = settings.GEOCODE_INITIAL_BACKOFF,
        timeout: Optional[float] = None,
    ):
        super().__init__(api_key=api_key, client=client, timeout=timeout)
        self.coordinate_store = coordinate_store
        self.base_url = base_url
        self.region = region
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff

    async def resolve(self, address: Optional[str]) -> Optional[Coordinates]:
        """
        Geocode a free-text address.

        Returns:
            Coordinates, or None when the address is missing, not found, or
            the geocoding service cannot be reached.
        """
        if not address or not address.strip():
            return None

        query = address.strip()

        direct = parse_coordinates(query)
        if direct is not None:
            logger.info(f"Direct coordinate input detected: {direct.lat}, {direct.lng}")
            return direct

        if not self.api_key:
            logger.warning("No Google Maps API key configured; cannot geocode address.")
            return None

        params = {"address": query, "key": self.api_key}
        if self.region:
            params["region"] = self.region

        data = await self._request(params)
        if data is None:
            return None

        status = data.get("status")
        results = data.get("results") or []
        if status != "OK" or not results:
            logger.info(f"Geocoding failed for '{query}': {status}, {data.get('error_message', 'none')}")
            return None

        try:
            location = results[0]["geometry"]["location"]
            coords = Coordinates(lat=location["lat"], lng=location["lng"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed geocoding response for '{query}': {e}")
            return None

        logger.info(f"Geocoded '{query}' to: {coords.lat}, {coords.lng}")
        return coords

    async def resolve_for_entity(self, entity_id: str, address: Optional[str]) -> Optional[Coordinates]:
        """
        Same as resolve, but remembers coordinates per entity id so a vendor
        is only geocoded once. The store is best-effort in both directions.
        """
        if not address or not address.strip():
            return None
        if self.coordinate_store is None:
            return await self.resolve(address)

        key = f"{COORDS_KEY_PREFIX}{entity_id}"
        try:
            raw = await self.coordinate_store.get(key)
            if raw:
                return Coordinates.model_validate_json(raw)
        except Exception as e:
            logger.warning(f"Ignoring unreadable cached coordinates for {entity_id}: {e}")

        coords = await self.resolve(address)
        if coords is not None:
            try:
                await self.coordinate_store.set(key, coords.model_dump_json())
            except Exception as e:
                logger.error(f"Failed to cache coordinates for {entity_id}: {e}")
        return coords

    async def reverse(self, lat: float, lng: float) -> Optional[ReverseGeocodeResult]:
        """Look up the zip code, city and state for a coordinate pair."""
        if not self.api_key:
            logger.warning("No Google Maps API key configured; cannot reverse geocode.")
            return None

        data = await self._request({"latlng": f"{lat},{lng}", "key": self.api_key})
        if data is None:
            return None

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info(f"Reverse geocoding failed: {data.get('status')}")
            return None

        zipcode = city = state = None
        for result in results:
            for component in result.get("address_components") or []:
                types = component.get("types") or []
                if "postal_code" in types and not zipcode:
                    zipcode = component.get("long_name")
                if "locality" in types and not city:
                    city = component.get("long_name")
                if "administrative_area_level_1" in types and not state:
                    state = component.get("short_name")
            if zipcode and city and state:
                break

        logger.info(f"Reverse geocoded to: {city}, {state} {zipcode}")
        return ReverseGeocodeResult(
            zipcode=zipcode,
            city=city,
            state=state,
            formatted_address=results[0].get("formatted_address"),
        )

    async def _request(self, params: dict) -> Optional[dict]:
        """GET the geocoding endpoint, retrying timeouts with exponential backoff."""
        for attempt in range(self.max_retries + 1):
            try:
                async with self._client() as client:
                    response = await client.get(self.base_url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        logger.warning("Geocoding API returned a non-object body.")
                        return None
                    return data
            except httpx.TimeoutException:
                logger.warning(f"Geocoding attempt {attempt + 1} timed out.")
                if attempt < self.max_retries:
                    wait_time = max(0.0, self.initial_backoff * (2 ** attempt) + random.uniform(-0.2, 0.2))
                    logger.info(f"Retrying in {wait_time:.2f}s...")
                    await asyncio.sleep(wait_time)
            except httpx.HTTPStatusError as e:
                logger.error(f"Geocoding API returned status error: {e.response.status_code}")
                return None
            except (httpx.HTTPError, json.JSONDecodeError) as e:
                logger.error(f"Geocoding request failed: {e}")
                return None
        return None
