"""Core data models shared by the search aggregation pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Source(str, Enum):
    """Origin of a record before deduplication."""

    DATABASE = "database"
    GOOGLE = "google"
    YELP = "yelp"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True, slots=True)
class CanonicalRecord:
    """Normalized snapshot of one pizzeria candidate, whatever its source."""

    name: str
    source: str
    external_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    is_dedicated_pizzeria: bool = False
    has_delivery: bool = False
    has_pizza_menu: bool = True
    rating: Optional[float] = None
    review_count: int = 0
    price_level: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    distance_miles: Optional[float] = None
    display_score: Optional[float] = None

    @property
    def identity(self) -> tuple:
        return (self.source, self.external_id)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready mapping used by the cache and the HTTP layer."""
        data = asdict(self)
        data["metadata"] = dict(self.metadata or {})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalRecord":
        coords = data.get("coordinates")
        coordinates = None
        if isinstance(coords, dict) and coords.get("lat") is not None and coords.get("lng") is not None:
            coordinates = Coordinates(lat=float(coords["lat"]), lng=float(coords["lng"]))

        return cls(
            name=data.get("name") or "",
            source=str(data.get("source") or Source.MANUAL.value),
            external_id=data.get("external_id"),
            address=data.get("address"),
            city=data.get("city"),
            state=data.get("state"),
            zipcode=data.get("zipcode"),
            coordinates=coordinates,
            phone=data.get("phone"),
            website=data.get("website"),
            is_dedicated_pizzeria=bool(data.get("is_dedicated_pizzeria", False)),
            has_delivery=bool(data.get("has_delivery", False)),
            has_pizza_menu=bool(data.get("has_pizza_menu", True)),
            rating=data.get("rating"),
            review_count=int(data.get("review_count") or 0),
            price_level=data.get("price_level"),
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id"),
            distance_miles=data.get("distance_miles"),
            display_score=data.get("display_score"),
        )


@dataclass(frozen=True, slots=True)
class SearchRequest:
    zipcode: str
    radius_miles: Optional[float] = None
    include_non_dedicated: bool = True


@dataclass(frozen=True, slots=True)
class SearchLocation:
    zipcode: str
    city: Optional[str]
    state: Optional[str]
    lat: float
    lng: float


@dataclass(slots=True)
class SearchResult:
    """Answer returned to the routing layer for one search."""

    success: bool
    cached: bool
    location: SearchLocation
    radius_miles: float
    results: List[CanonicalRecord] = field(default_factory=list)
    sources: Dict[str, int] = field(default_factory=dict)
    response_time_ms: int = 0
    degraded: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "cached": self.cached,
            "location": asdict(self.location),
            "radius_miles": self.radius_miles,
            "results": [record.to_dict() for record in self.results],
            "count": self.count,
            "sources": dict(self.sources),
            "response_time_ms": self.response_time_ms,
            "degraded": list(self.degraded),
        }
