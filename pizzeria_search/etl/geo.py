"""Great-circle helpers shared by deduplication and ranking."""

import math

from pizzeria_search.models import Coordinates

EARTH_RADIUS_METERS = 6378137
METERS_TO_MILES = 0.000621371


def haversine_meters(a: Coordinates, b: Coordinates) -> float:
    """Distance between two points in meters."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)
    h = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def meters_to_miles(meters: float) -> float:
    return round(meters * METERS_TO_MILES, 2)
