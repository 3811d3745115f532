"""Client utilities for the Yelp Fusion API."""

import logging
from typing import Any, Dict, List

import requests

from pizzeria_search.etl.transform import yelp_business_to_record
from pizzeria_search.models import CanonicalRecord
from pizzeria_search.vendors.base import METERS_PER_MILE, ProviderUnavailable, ThreadedProvider

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://api.yelp.com/v3"
MAX_RADIUS_METERS = 40000
PAGE_LIMIT = 50


class YelpError(ProviderUnavailable):
    """Raised when Yelp answers with an error payload."""


def business_search(lat: float, lng: float, radius_meters: float, api_key: str) -> Dict[str, Any]:
    params = {
        "latitude": lat,
        "longitude": lng,
        "radius": round(min(radius_meters, MAX_RADIUS_METERS)),
        "categories": "pizza,italian,restaurants",
        "term": "pizza",
        "limit": PAGE_LIMIT,
    }
    headers = {"Authorization": f"Bearer {api_key}"}
    response = _SESSION.get(f"{_BASE_URL}/businesses/search", params=params, headers=headers, timeout=10)
    response.raise_for_status()
    payload = response.json()
    if "error" in payload:
        error = payload.get("error") or {}
        logger.error("business_search failed: code=%s, description=%s", error.get("code"), error.get("description"))
        raise YelpError(error.get("description") or error.get("code") or "yelp error")
    return payload


class YelpProvider(ThreadedProvider):
    name = "yelp"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def fetch(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        payload = business_search(lat, lng, radius_miles * METERS_PER_MILE, self._api_key)
        businesses = payload.get("businesses") or []
        logger.info("Yelp found %d results", len(businesses))
        return [yelp_business_to_record(business) for business in businesses if business.get("name")]
