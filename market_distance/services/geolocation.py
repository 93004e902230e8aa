# Approximate shopper location from the caller's IP via the Geolocation API.

import json
from typing import Optional

import httpx
import structlog

from market_distance.core.config import settings
from market_distance.models.dto import Coordinates
from market_distance.services.http import MapsServiceClient

logger = structlog.get_logger(__name__)


class GeolocationClient(MapsServiceClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = settings.GEOLOCATION_API_URL,
        timeout: Optional[float] = None,
    ):
        super().__init__(api_key=api_key, client=client, timeout=timeout)
        self.base_url = base_url

    async def locate(self) -> Optional[Coordinates]:
        """IP-based position, or None when the service is unavailable."""
        if not self.api_key:
            logger.warning("geolocation_no_api_key")
            return None
        try:
            async with self._client() as client:
                response = await client.post(
                    self.base_url, params={"key": self.api_key}, json={"considerIp": True}
                )
                response.raise_for_status()
                data = response.json()
            location = data["location"]
            coords = Coordinates(lat=location["lat"], lng=location["lng"])
        except httpx.HTTPStatusError as e:
            logger.error("geolocation_status_error", status_code=e.response.status_code)
            return None
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error("geolocation_request_failed", error=str(e))
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("geolocation_malformed_response", error=str(e))
            return None

        logger.info("geolocation_resolved", lat=coords.lat, lng=coords.lng, accuracy=data.get("accuracy"))
        return coords
