# Application settings: external Maps endpoints, cache persistence and batching.

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Farmers Market Distance Service"
    VERSION: str = "0.2.0"
    BRIEF_DESCRIPTION: str = "Resolves and caches distances between shoppers and farmers-market vendors."

    ENV: str = Field("development", description="Application environment (e.g., production, development)")
    LOG_LEVEL: str = Field("INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")

    # --- Google Maps Web Services ---
    GOOGLE_MAPS_API_KEY: Optional[str] = Field(None, description="Key used for geocoding, distance matrix, places and geolocation")
    GEOCODE_API_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"
    DISTANCE_MATRIX_API_URL: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    PLACES_TEXTSEARCH_API_URL: str = "https://maps.googleapis.com/maps/api/place/textsearch/json"
    PLACES_AUTOCOMPLETE_API_URL: str = "https://maps.googleapis.com/maps/api/place/autocomplete/json"
    GEOLOCATION_API_URL: str = "https://www.googleapis.com/geolocation/v1/geolocate"
    GEOCODE_REGION: Optional[str] = Field("us", description="Region bias passed to the geocoder")

    # Timeouts and retry logic for outbound calls
    HTTP_TIMEOUT: float = 8.0 # seconds
    GEOCODE_MAX_RETRIES: int = 2
    GEOCODE_INITIAL_BACKOFF: float = 1.0 # seconds

    # --- Persistence ---
    ENABLE_REDIS: bool = Field(False, description="Store the distance cache in Redis instead of on disk")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL used when ENABLE_REDIS is set")
    DISTANCE_CACHE_FILE: str = Field(".cache/market_distances.json", description="On-disk key-value store")
    DISTANCE_CACHE_KEY: str = "market_distances_cache"
    DISTANCE_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    # Off: distances are keyed by entity only, like the storefront always did.
    DISTANCE_CACHE_KEY_BY_LOCATION: bool = False
    DISTANCE_CACHE_LOCATION_PRECISION: int = 2 # ~1.1 km buckets

    # --- Batching ---
    DISTANCE_BATCH_SIZE: int = 3
    DISTANCE_BATCH_DELAY_SECONDS: float = 0.1

    # --- Search radius ---
    LOCAL_SCOPE_RADIUS_MILES: float = 50.0
    DEFAULT_RANGE_MILES: float = 25.0
    MARKET_SEARCH_RADIUS_METERS: int = 25000
    MARKET_SEARCH_LIMIT: int = 8
    AUTOCOMPLETE_RADIUS_METERS: int = 50000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
