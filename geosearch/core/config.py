# Settings for the geospatial search service, read from the environment / .env.

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Travel Geo Search"
    VERSION: str = "0.3.0"
    BRIEF_DESCRIPTION: str = "Geospatial search, facets and GeoJSON overlays for restaurants, trains, cabs and user history."

    ENV: str = Field("development", description="Application environment (e.g., production, development)")
    LOG_LEVEL: str = Field("INFO", description="Root log level for geosearch, stdlib and uvicorn records")

    # --- Entity store ---
    SEED_PATH: Optional[str] = Field(None, description="JSON file loaded into the in-memory entity store at startup")

    # --- Listing / pagination ---
    DEFAULT_PAGE_LIMIT: int = 20
    MAX_PAGE_LIMIT: int = 100
    MAX_PAGE: int = 200

    # --- Spatial caps (hard ceilings, requested limits are clamped) ---
    NEARBY_DEFAULT_RADIUS_KM: float = 5.0
    NEARBY_DEFAULT_LIMIT: int = 50
    NEARBY_MAX_LIMIT: int = 200
    BBOX_DEFAULT_LIMIT: int = 200
    BBOX_MAX_LIMIT: int = 1000
    GEOJSON_DEFAULT_LIMIT: int = 1000
    GEOJSON_MAX_LIMIT: int = 5000

    # --- Aggregations ---
    FACET_TOP_N: int = 25
    TRENDING_DEFAULT_LIMIT: int = 10
    TRENDING_MAX_LIMIT: int = 50
    SUGGEST_DEFAULT_LIMIT: int = 10
    SUGGEST_MAX_LIMIT: int = 25

    # --- Result cache ---
    ENABLE_REDIS: bool = Field(False, description="Feature flag for Redis-backed result cache")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL for the result cache")
    CACHE_NAMESPACE: str = "geosearch"
    NEARBY_CACHE_TTL: int = 600  # seconds
    TRENDING_CACHE_TTL: int = 1800  # seconds

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
