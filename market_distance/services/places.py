# Farmers-market search and address autocomplete through the Places API.

import json
import logging
from typing import List, Optional

import httpx

from market_distance.core.config import settings
from market_distance.models.dto import Coordinates, PlaceCandidate, PlaceSuggestion
from market_distance.services.http import MapsServiceClient

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MARKET_NAME_HINTS = ("market", "farmer", "farm")


def is_market_place(place: dict) -> bool:
    """Whether a text-search result looks like a farmers market."""
    name = (place.get("name") or "").lower()
    address = (place.get("formatted_address") or "").lower()
    return any(hint in name for hint in MARKET_NAME_HINTS) or "market" in address


def open_days(opening_hours: Optional[dict]) -> List[str]:
    """Day names the place opens on, Sunday first, from opening_hours.periods."""
    if not opening_hours:
        return []
    days = set()
    for period in opening_hours.get("periods") or []:
        day = (period.get("open") or {}).get("day")
        if isinstance(day, int) and 0 <= day < len(DAY_NAMES):
            days.add(day)
    return [DAY_NAMES[d] for d in sorted(days)]


def to_candidate(place: dict) -> PlaceCandidate:
    location = (place.get("geometry") or {}).get("location") or {}
    geometry = None
    if location.get("lat") is not None and location.get("lng") is not None:
        geometry = Coordinates(lat=location["lat"], lng=location["lng"])
    return PlaceCandidate(
        place_id=place["place_id"],
        name=place["name"],
        address=place.get("formatted_address"),
        rating=place.get("rating"),
        rating_count=place.get("user_ratings_total"),
        opening_hours=place.get("opening_hours"),
        open_days=open_days(place.get("opening_hours")),
        geometry=geometry,
        types=place.get("types") or [],
    )


class PlacesClient(MapsServiceClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = settings.PLACES_TEXTSEARCH_API_URL,
        autocomplete_url: str = settings.PLACES_AUTOCOMPLETE_API_URL,
        radius_meters: int = settings.MARKET_SEARCH_RADIUS_METERS,
        autocomplete_radius_meters: int = settings.AUTOCOMPLETE_RADIUS_METERS,
        limit: int = settings.MARKET_SEARCH_LIMIT,
        timeout: Optional[float] = None,
    ):
        super().__init__(api_key=api_key, client=client, timeout=timeout)
        self.base_url = base_url
        self.autocomplete_url = autocomplete_url
        self.radius_meters = radius_meters
        self.autocomplete_radius_meters = autocomplete_radius_meters
        self.limit = limit

    async def search_markets(self, query: str, location: Optional[Coordinates] = None) -> List[PlaceCandidate]:
        """
        Search for farmers markets matching a free-text query.

        Results are biased toward `location` when given, filtered to places
        that look like markets and capped at the configured limit. Queries
        shorter than two characters and any service failure yield [].
        """
        if not query or len(query.strip()) < 2:
            return []
        if not self.api_key:
            logger.warning("No Google Maps API key configured; cannot search places.")
            return []

        search_query = f"farmers market {query.strip()}"
        params = {"query": search_query, "type": "establishment", "key": self.api_key}
        if location is not None:
            params["location"] = f"{location.lat},{location.lng}"
            params["radius"] = self.radius_meters

        try:
            async with self._client() as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Places API returned status error: {e.response.status_code}")
            return []
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error(f"Places search failed: {e}")
            return []

        candidates: List[PlaceCandidate] = []
        for place in (data.get("results") or []) if isinstance(data, dict) else []:
            if not is_market_place(place):
                continue
            try:
                candidates.append(to_candidate(place))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed place result: {e}")
                continue
            if len(candidates) >= self.limit:
                break

        logger.info(f"Found {len(candidates)} farmers markets for query: {query}")
        return candidates

    async def autocomplete(
        self,
        query: str,
        zipcode: Optional[str] = None,
        location: Optional[Coordinates] = None,
    ) -> List[PlaceSuggestion]:
        """
        Address suggestions for the shopper's location input.

        A zip code adds a US region bias; `location` (usually the geocoded
        zip code) narrows suggestions to the surrounding area.
        """
        if not query or len(query.strip()) < 2:
            return []
        if not self.api_key:
            logger.warning("No Google Maps API key configured; cannot autocomplete.")
            return []

        params = {"input": query.strip(), "key": self.api_key}
        if zipcode:
            params["region"] = "us"
        if location is not None:
            params["location"] = f"{location.lat},{location.lng}"
            params["radius"] = self.autocomplete_radius_meters

        try:
            async with self._client() as client:
                response = await client.get(self.autocomplete_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Places autocomplete returned status error: {e.response.status_code}")
            return []
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error(f"Places autocomplete failed: {e}")
            return []

        suggestions: List[PlaceSuggestion] = []
        for prediction in (data.get("predictions") or []) if isinstance(data, dict) else []:
            try:
                suggestions.append(
                    PlaceSuggestion(
                        place_id=prediction["place_id"],
                        description=prediction["description"],
                        structured_formatting=prediction.get("structured_formatting"),
                        types=prediction.get("types") or [],
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed autocomplete prediction: {e}")

        logger.info(f"Found {len(suggestions)} suggestions for query: {query}")
        return suggestions
