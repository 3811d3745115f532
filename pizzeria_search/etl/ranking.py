"""Distance enrichment, display scoring and result ordering."""

import math
from dataclasses import replace
from typing import Iterable, List

from pizzeria_search.etl.geo import haversine_meters, meters_to_miles
from pizzeria_search.models import CanonicalRecord, Coordinates


def display_score(record: CanonicalRecord) -> float:
    score = 0.0
    if record.distance_miles is not None:
        score += max(0.0, 50 - record.distance_miles * 2)
    if record.rating is not None:
        score += record.rating * 10
    if record.review_count:
        score += math.log10(record.review_count + 1) * 5
    if record.has_delivery:
        score += 10
    if record.is_dedicated_pizzeria:
        score += 5
    return round(score, 2)


def enrich_records(records: Iterable[CanonicalRecord], lat: float, lng: float) -> List[CanonicalRecord]:
    """Fill in ``distance_miles`` from the search point and compute ``display_score``."""
    origin = Coordinates(lat=lat, lng=lng)
    enriched: List[CanonicalRecord] = []
    for record in records:
        distance = record.distance_miles
        if distance is None and record.coordinates is not None:
            distance = meters_to_miles(haversine_meters(origin, record.coordinates))
        record = replace(record, distance_miles=distance)
        enriched.append(replace(record, display_score=display_score(record)))
    return enriched


def _sort_key(record: CanonicalRecord):
    # Unknown distance sorts after every measured one.
    distance = record.distance_miles if record.distance_miles is not None else math.inf
    return (distance, -(record.rating or 0))


def sort_records(records: Iterable[CanonicalRecord]) -> List[CanonicalRecord]:
    """Closest first, higher rating first among equally distant records."""
    return sorted(records, key=_sort_key)


def rank_records(records: Iterable[CanonicalRecord], lat: float, lng: float) -> List[CanonicalRecord]:
    return sort_records(enrich_records(records, lat, lng))
