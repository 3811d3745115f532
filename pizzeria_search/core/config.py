"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str = "redis://localhost:6379/0"
    google_places_api_key: str = ""
    yelp_api_key: str = ""
    default_radius_miles: int = 10
    max_radius_miles: int = 50
    cache_ttl_seconds: int = 3600
    persist_max_workers: int = 4
    persist_max_pending: int = 100
    provider_timeout_seconds: Optional[float] = None
    port: int = 8080

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_places_api_key)

    @property
    def yelp_enabled(self) -> bool:
        return bool(self.yelp_api_key)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %s", name, raw, default)
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    google_places_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    yelp_api_key = os.getenv("YELP_API_KEY", "")
    timeout_raw = os.getenv("PROVIDER_TIMEOUT_SECONDS")
    provider_timeout_seconds = float(timeout_raw) if timeout_raw else None

    if not database_url:
        logger.warning("DATABASE_URL is not set; local store queries and persistence will fail.")
    if not google_places_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places provider disabled.")
    if not yelp_api_key:
        logger.warning("YELP_API_KEY is not configured; Yelp provider disabled.")

    return Settings(
        database_url=database_url,
        redis_url=redis_url,
        google_places_api_key=google_places_api_key,
        yelp_api_key=yelp_api_key,
        default_radius_miles=_int_env("DEFAULT_SEARCH_RADIUS_MILES", 10),
        max_radius_miles=_int_env("MAX_SEARCH_RADIUS_MILES", 50),
        cache_ttl_seconds=_int_env("CACHE_TTL_SECONDS", 3600),
        persist_max_workers=_int_env("PERSIST_MAX_WORKERS", 4),
        persist_max_pending=_int_env("PERSIST_MAX_PENDING", 100),
        provider_timeout_seconds=provider_timeout_seconds,
        port=_int_env("PORT", 8080),
    )
