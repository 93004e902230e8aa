# Road-distance resolver backed by the Distance Matrix API.

import json
from typing import Optional

import httpx
import structlog

from market_distance.core.config import settings
from market_distance.models.dto import RoadDistance
from market_distance.services.http import MapsServiceClient

logger = structlog.get_logger(__name__)

METERS_TO_MILES = 0.000621371


class DistanceMatrixClient(MapsServiceClient):
    """Driving distance between two points; any failure is reported as None."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = settings.DISTANCE_MATRIX_API_URL,
        timeout: Optional[float] = None,
    ):
        super().__init__(api_key=api_key, client=client, timeout=timeout)
        self.base_url = base_url

    async def resolve(
        self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float
    ) -> Optional[RoadDistance]:
        if not self.api_key:
            logger.warning("distance_matrix_no_api_key")
            return None

        params = {
            "origins": f"{origin_lat},{origin_lng}",
            "destinations": f"{dest_lat},{dest_lng}",
            "units": "imperial",
            "key": self.api_key,
        }

        try:
            async with self._client() as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("distance_matrix_status_error", status_code=e.response.status_code)
            return None
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error("distance_matrix_request_failed", error=str(e))
            return None

        try:
            if data.get("status") != "OK":
                logger.info("distance_matrix_failed", status=data.get("status"))
                return None
            element = data["rows"][0]["elements"][0]
            if element.get("status") != "OK":
                logger.info("distance_matrix_element_failed", status=element.get("status"))
                return None
            distance_text = element["distance"]["text"]
            distance_meters = element["distance"]["value"]
            duration_text = (element.get("duration") or {}).get("text")
            distance_miles = round(float(distance_meters) * METERS_TO_MILES, 1)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("distance_matrix_malformed_response", error=str(e))
            return None

        logger.info(
            "distance_matrix_resolved",
            distance=distance_text,
            distance_miles=distance_miles,
            duration=duration_text,
        )
        return RoadDistance(distance=distance_text, distance_miles=distance_miles, duration=duration_text)
