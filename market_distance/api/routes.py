# market_distance/api/routes.py
# HTTP surface over the distance, geocoding and market search services.

from fastapi import APIRouter, Request, HTTPException, status
import logging
import time
from typing import Dict, Union

from market_distance.models.dto import (
    DISTANCE_UNAVAILABLE,
    AutocompleteRequest,
    AutocompleteResponse,
    Coordinates,
    DistanceRequest,
    DistanceResponse,
    ErrorResponse,
    GeocodeRequest,
    MarketSearchRequest,
    MarketSearchResponse,
    ReverseGeocodeResult,
    RoadDistanceRequest,
    RoadDistanceResponse,
)
from market_distance.services.distance_cache import entity_key
from market_distance.services.orchestrator import DistanceOrchestrator
from market_distance.utils.haversine import distance_miles, format_miles

router = APIRouter()
logger = logging.getLogger(__name__)


def build_orchestrator(request: Request) -> DistanceOrchestrator:
    """One orchestrator per run, all sharing the process-wide cache."""
    state = request.app.state
    return DistanceOrchestrator(
        cache=state.distance_cache,
        geocoder=state.geocoder,
        road_distance=state.road_distance,
    )

# ----------------------------------------------------------------------
# Distances for markets and vendors
# ----------------------------------------------------------------------
@router.post("/distances", response_model=DistanceResponse)
async def compute_distances(request: Request, data: DistanceRequest):
    """Distance label for every market and vendor in the request."""
    start_time = time.perf_counter()
    entities = [*data.markets, *data.vendors]

    user = data.user
    if user is None and data.address:
        user = await request.app.state.geocoder.resolve(data.address)

    if user is None:
        logger.info("No shopper location available; distances unavailable.")
        distances: Dict[str, str] = {entity_key(e): DISTANCE_UNAVAILABLE for e in entities}
        return DistanceResponse(distances=distances, user=None, state="DONE")

    orchestrator = build_orchestrator(request)
    distances = await orchestrator.refresh(entities, user, force=data.force)

    logger.info(f"Resolved {len(distances)} distances in {(time.perf_counter() - start_time) * 1000:.0f} ms")
    return DistanceResponse(distances=distances, user=user, state=orchestrator.state.value)

# ----------------------------------------------------------------------
# Geocoding
# ----------------------------------------------------------------------
@router.post(
    "/geocode",
    response_model=Union[Coordinates, ReverseGeocodeResult],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def geocode(request: Request, data: GeocodeRequest):
    """Forward geocode an address, or reverse geocode a lat/lng pair."""
    geocoder = request.app.state.geocoder

    if data.lat is not None and data.lng is not None:
        result = await geocoder.reverse(data.lat, data.lng)
    elif data.address and data.address.strip():
        result = await geocoder.resolve(data.address)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error="ADDRESS_OR_COORDINATES_REQUIRED",
                detail="Provide an address, or both lat and lng.",
            ).model_dump(),
        )

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ErrorResponse(
                error="GEOCODING_FAILED",
                detail="Could not geocode the request. Please check the input and try again.",
            ).model_dump(),
        )
    return result

# ----------------------------------------------------------------------
# Point-to-point road distance
# ----------------------------------------------------------------------
@router.post("/road-distance", response_model=RoadDistanceResponse)
async def road_distance(request: Request, data: RoadDistanceRequest):
    """Driving distance, falling back to the straight-line distance."""
    origin, destination = data.origin, data.destination
    maps_url = (
        f"https://maps.google.com/maps?saddr={origin.lat},{origin.lng}"
        f"&daddr={destination.lat},{destination.lng}"
    )

    road = await request.app.state.road_distance.resolve(origin.lat, origin.lng, destination.lat, destination.lng)
    if road is not None:
        return RoadDistanceResponse(**road.model_dump(), google_maps_url=maps_url)

    miles = distance_miles(origin.lat, origin.lng, destination.lat, destination.lng)
    return RoadDistanceResponse(
        distance=format_miles(miles),
        distance_miles=round(miles, 1),
        fallback=True,
        google_maps_url=maps_url,
    )

# ----------------------------------------------------------------------
# Farmers-market search
# ----------------------------------------------------------------------
@router.post("/markets/search", response_model=MarketSearchResponse, responses={400: {"model": ErrorResponse}})
async def search_markets(request: Request, data: MarketSearchRequest):
    if len(data.query.strip()) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error="QUERY_TOO_SHORT",
                detail="Query must be at least 2 characters.",
            ).model_dump(),
        )
    predictions = await request.app.state.places.search_markets(data.query, data.location)
    return MarketSearchResponse(predictions=predictions)

# ----------------------------------------------------------------------
# Address autocomplete for the shopper's location input
# ----------------------------------------------------------------------
@router.post("/places/autocomplete", response_model=AutocompleteResponse, responses={400: {"model": ErrorResponse}})
async def autocomplete(request: Request, data: AutocompleteRequest):
    """Address suggestions; a zip code biases them toward its surroundings."""
    if len(data.query.strip()) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error="QUERY_TOO_SHORT",
                detail="Query must be at least 2 characters.",
            ).model_dump(),
        )

    location = None
    if data.zipcode and data.zipcode.strip():
        location = await request.app.state.geocoder.resolve(data.zipcode)
        if location is None:
            logger.info(f"No coordinates for zipcode {data.zipcode}; using the US region bias only.")

    suggestions = await request.app.state.places.autocomplete(data.query, data.zipcode, location)
    return AutocompleteResponse(suggestions=suggestions)

# ----------------------------------------------------------------------
# Shopper location from IP
# ----------------------------------------------------------------------
@router.get("/location", response_model=Coordinates, responses={503: {"model": ErrorResponse}})
async def locate(request: Request):
    coords = await request.app.state.geolocation.locate()
    if coords is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=ErrorResponse(
                error="GEOLOCATION_UNAVAILABLE",
                detail="Location service is temporarily unavailable.",
            ).model_dump(),
        )
    return coords

# ----------------------------------------------------------------------
# Cache maintenance
# ----------------------------------------------------------------------
@router.delete("/distance-cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_distance_cache(request: Request):
    """Force every distance to be recomputed on the next request."""
    await request.app.state.distance_cache.clear()
