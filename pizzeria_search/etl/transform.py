"""Utilities for transforming provider responses and database rows into canonical records."""

import logging
from typing import Any, Dict, Iterable, Optional

from pizzeria_search.models import CanonicalRecord, Coordinates, Source

logger = logging.getLogger(__name__)

_PIZZA_CATEGORY_ALIASES = {"pizza", "pizzeria"}


def _coordinates(lat: Any, lng: Any) -> Optional[Coordinates]:
    try:
        if lat is None or lng is None:
            return None
        return Coordinates(lat=float(lat), lng=float(lng))
    except (TypeError, ValueError):
        return None


def _pizza_in_name(name: str) -> bool:
    return "pizza" in (name or "").lower()


def _join_address(parts: Iterable[Optional[str]]) -> str:
    return ", ".join(part for part in parts if part)


def google_place_to_record(place: Dict[str, Any]) -> CanonicalRecord:
    """Map a Places nearby-search result onto the canonical schema."""
    name = place.get("name") or ""
    types = place.get("types") or []
    location = (place.get("geometry") or {}).get("location") or {}
    opening_hours = place.get("opening_hours") or {}

    return CanonicalRecord(
        name=name,
        source=Source.GOOGLE.value,
        external_id=place.get("place_id"),
        address=place.get("vicinity") or place.get("formatted_address"),
        coordinates=_coordinates(location.get("lat"), location.get("lng")),
        phone=place.get("formatted_phone_number") or None,
        website=place.get("website") or None,
        is_dedicated_pizzeria=_pizza_in_name(name) or "pizza_restaurant" in types,
        # Places has no delivery field; an open listing counts as delivering.
        has_delivery=opening_hours.get("open_now") is not False,
        has_pizza_menu=True,
        rating=place.get("rating") or None,
        review_count=int(place.get("user_ratings_total") or 0),
        price_level=place.get("price_level") or None,
        metadata={
            "types": types,
            "business_status": place.get("business_status"),
            "place_id": place.get("place_id"),
        },
    )


def yelp_business_to_record(business: Dict[str, Any]) -> CanonicalRecord:
    """Map a Yelp Fusion business onto the canonical schema."""
    name = business.get("name") or ""
    categories = business.get("categories") or []
    location = business.get("location") or {}
    coords = business.get("coordinates") or {}
    transactions = business.get("transactions") or []
    city = location.get("city") or ""
    state = location.get("state") or ""
    price = business.get("price")

    return CanonicalRecord(
        name=name,
        source=Source.YELP.value,
        external_id=business.get("id"),
        address=_join_address([location.get("address1"), city, state]),
        city=city,
        state=state,
        zipcode=location.get("zip_code") or "",
        coordinates=_coordinates(coords.get("latitude"), coords.get("longitude")),
        phone=business.get("phone") or business.get("display_phone") or None,
        website=business.get("url") or None,
        is_dedicated_pizzeria=_pizza_in_name(name)
        or any(cat.get("alias") in _PIZZA_CATEGORY_ALIASES for cat in categories),
        has_delivery="delivery" in transactions,
        has_pizza_menu=True,
        rating=business.get("rating") or None,
        review_count=int(business.get("review_count") or 0),
        price_level=len(price) if price else None,
        metadata={
            "categories": categories,
            "image_url": business.get("image_url"),
            "yelp_url": business.get("url"),
            "transactions": transactions,
            "is_closed": business.get("is_closed"),
        },
    )


def row_to_record(row: Dict[str, Any]) -> CanonicalRecord:
    """Map a pizzerias row (or radius-search row) onto the canonical schema.

    Rows read from the local store are reported under the ``database``
    source whatever provider originally discovered them. The stored source
    is kept in ``metadata["stored_source"]`` and rows without an external id
    fall back to their primary key.
    """
    metadata = dict(row.get("metadata") or {})
    if row.get("source"):
        metadata.setdefault("stored_source", row.get("source"))

    rating = row.get("rating")
    distance = row.get("distance_miles")
    return CanonicalRecord(
        id=row.get("id"),
        name=row.get("name") or "",
        source=Source.DATABASE.value,
        external_id=row.get("external_id") or (str(row["id"]) if row.get("id") is not None else None),
        address=row.get("address"),
        city=row.get("city"),
        state=row.get("state"),
        zipcode=row.get("zipcode"),
        coordinates=_coordinates(row.get("latitude"), row.get("longitude")),
        phone=row.get("phone"),
        website=row.get("website"),
        is_dedicated_pizzeria=bool(row.get("is_dedicated_pizzeria")),
        has_delivery=bool(row.get("has_delivery")),
        has_pizza_menu=row.get("has_pizza_menu") is not False,
        rating=float(rating) if rating is not None else None,
        review_count=int(row.get("review_count") or 0),
        price_level=row.get("price_level"),
        metadata=metadata,
        distance_miles=float(distance) if distance is not None else None,
    )
