"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, List

import requests

from pizzeria_search.etl.transform import google_place_to_record
from pizzeria_search.models import CanonicalRecord
from pizzeria_search.vendors.base import METERS_PER_MILE, ProviderUnavailable, ThreadedProvider

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
MAX_RADIUS_METERS = 50000


class GooglePlacesError(ProviderUnavailable):
    """Raised when the Places API returns a non-successful response."""


def nearby_search(lat: float, lng: float, radius_meters: float, api_key: str) -> Dict[str, Any]:
    params = {
        "location": f"{lat},{lng}",
        "radius": min(radius_meters, MAX_RADIUS_METERS),
        "keyword": "pizza",
        "type": "restaurant",
        "key": api_key,
    }
    response = _SESSION.get(f"{_BASE_URL}/nearbysearch/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("nearby_search failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload


class GooglePlacesProvider(ThreadedProvider):
    name = "google"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def fetch(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        payload = nearby_search(lat, lng, radius_miles * METERS_PER_MILE, self._api_key)
        results = payload.get("results", [])
        logger.info("Google Places found %d results", len(results))
        return [google_place_to_record(place) for place in results if place.get("name")]
