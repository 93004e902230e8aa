# Data models shared by the distance services and the HTTP layer.

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

DISTANCE_UNKNOWN = "-- mi"
DISTANCE_UNAVAILABLE = "Distance unavailable"

# --- Geographic values ---

class Coordinates(BaseModel):
    """Immutable latitude/longitude pair."""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="Latitude.")
    lng: float = Field(..., ge=-180, le=180, description="Longitude.")

class RoadDistance(BaseModel):
    """Driving distance reported by the distance-matrix service."""
    distance: str = Field(..., description="Human-readable distance, e.g. '3.2 mi'.")
    distance_miles: float = Field(..., description="Numeric miles for radius comparisons.")
    duration: Optional[str] = Field(None, description="Human-readable driving time.")

class ReverseGeocodeResult(BaseModel):
    zipcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    formatted_address: Optional[str] = None

# --- Entities (read-only marketplace data) ---

class MarketEntity(BaseModel):
    """A farmers market; keyed by its name and address."""
    id: str = Field(..., description="Stable identifier.")
    name: str = Field(..., description="Public market name.")
    address: str = Field("", description="Street address used for geocoding.")

class VendorEntity(MarketEntity):
    """A vendor storefront. Vendors sell at a market, so their address is the market address."""
    market_name: str = Field("", description="Name of the market the vendor sells at.")

# --- Place search ---

class PlaceCandidate(BaseModel):
    """A farmers-market candidate returned by the place text search."""
    place_id: str
    name: str
    address: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    opening_hours: Optional[dict] = None
    open_days: List[str] = Field(default_factory=list)
    geometry: Optional[Coordinates] = None
    types: List[str] = Field(default_factory=list)

class PlaceSuggestion(BaseModel):
    """An address suggestion from place autocomplete."""
    place_id: str
    description: str
    structured_formatting: Optional[dict] = None
    types: List[str] = Field(default_factory=list)

# --- API Request Models ---

class DistanceRequest(BaseModel):
    """Request body for /api/distances."""
    markets: List[MarketEntity] = Field(default_factory=list)
    vendors: List[VendorEntity] = Field(default_factory=list)
    user: Optional[Coordinates] = Field(None, description="Shopper location, if already known.")
    address: Optional[str] = Field(None, description="Shopper address or zip code, geocoded when 'user' is absent.")
    force: bool = Field(False, description="Clear the cache before recomputing.")

class GeocodeRequest(BaseModel):
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

class RoadDistanceRequest(BaseModel):
    origin: Coordinates
    destination: Coordinates

class MarketSearchRequest(BaseModel):
    query: str = Field(..., description="Free-text search, e.g. a city or market name.")
    location: Optional[Coordinates] = Field(None, description="Optional location bias.")

class AutocompleteRequest(BaseModel):
    query: str = Field(..., description="Partial address typed by the shopper.")
    zipcode: Optional[str] = Field(None, description="Shopper zip code, used to bias suggestions.")

# --- API Response Models ---

class DistanceResponse(BaseModel):
    distances: Dict[str, str] = Field(..., description="Distance label per entity key.")
    user: Optional[Coordinates] = None
    state: str

class RoadDistanceResponse(RoadDistance):
    fallback: bool = Field(False, description="True when the straight-line distance was used.")
    google_maps_url: Optional[str] = None

class MarketSearchResponse(BaseModel):
    predictions: List[PlaceCandidate]
    status: str = "OK"

class AutocompleteResponse(BaseModel):
    suggestions: List[PlaceSuggestion]

# --- Error Response Model ---

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="A machine-readable error code.")
    detail: str = Field(..., description="A human-readable explanation.")
