# Application wiring: shared HTTP client, persistent cache and Maps clients.

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import httpx
import structlog
import uuid

from market_distance.core.config import settings
from market_distance.api.routes import router as api_router
from market_distance.logging import configure_logging
from market_distance.middleware.logging import LoggingMiddleware
from market_distance.services.distance_cache import DistanceCacheStore
from market_distance.services.geocoding import GeocodingClient
from market_distance.services.geolocation import GeolocationClient
from market_distance.services.places import PlacesClient
from market_distance.services.road_distance import DistanceMatrixClient
from market_distance.services.storage import build_storage

configure_logging()
logger = structlog.get_logger(__name__)

# --- Application Lifecycle Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application_startup", version=settings.VERSION, env=settings.ENV)
    if not settings.GOOGLE_MAPS_API_KEY:
        logger.warning("google_maps_api_key_missing")

    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
    storage = build_storage(settings)

    app.state.storage = storage
    app.state.distance_cache = DistanceCacheStore(storage)
    app.state.geocoder = GeocodingClient(client=http_client, coordinate_store=storage)
    app.state.road_distance = DistanceMatrixClient(client=http_client)
    app.state.places = PlacesClient(client=http_client)
    app.state.geolocation = GeolocationClient(client=http_client)

    yield

    logger.info("application_shutdown")
    await http_client.aclose()
    close = getattr(storage, "close", None)
    if close is not None:
        await close()

# --- FastAPI Application Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.BRIEF_DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

# --- API Routes ---
app.include_router(api_router, prefix="/api")

# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    return {
        "status": "ok",
        "version": settings.VERSION,
        "maps_configured": bool(settings.GOOGLE_MAPS_API_KEY),
    }

# --- Global Exception Handler (for unhandled errors) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    logger.error("unhandled_exception", error_id=error_id, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_SERVER_ERROR",
                "detail": "An unexpected error occurred. Please report this error ID.",
                "error_id": error_id
            }
        }
    )
