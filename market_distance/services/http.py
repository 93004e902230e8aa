# Shared plumbing for the Google Maps Web Service clients.

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from market_distance.core.config import settings


class MapsServiceClient:
    """
    Base for clients that call a Maps JSON endpoint.

    An httpx.AsyncClient can be injected (tests pass one built on
    httpx.MockTransport, the app passes a shared pooled client); otherwise a
    short-lived client is opened per request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self._http = client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client
