"""Database helpers for the PostGIS pizzeria store."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import extras, pool

from pizzeria_search.core.config import get_settings
from pizzeria_search.models import CanonicalRecord

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None


class StoreQueryFailed(RuntimeError):
    """Raised when a read against the local store fails."""


def init_pool(minconn: int = 1, maxconn: int = 10) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.ThreadedConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


def close_pool() -> None:
    global _connection_pool
    if _connection_pool is not None:
        _connection_pool.closeall()
        _connection_pool = None


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def _prepare_params(record: CanonicalRecord, fallback_zipcode: Optional[str] = None) -> Dict[str, Any]:
    coordinates = record.coordinates
    return {
        "name": record.name,
        "address": record.address,
        "city": record.city or None,
        "state": record.state or None,
        "zipcode": record.zipcode or fallback_zipcode,
        "lng": coordinates.lng if coordinates else None,
        "lat": coordinates.lat if coordinates else None,
        "phone": record.phone,
        "website": record.website,
        "is_dedicated_pizzeria": record.is_dedicated_pizzeria,
        "has_delivery": record.has_delivery,
        "has_pizza_menu": record.has_pizza_menu,
        "rating": record.rating,
        "review_count": record.review_count or 0,
        "price_level": record.price_level,
        "source": record.source,
        "external_id": record.external_id,
        "metadata": extras.Json(record.metadata or {}),
    }


# Only observational fields change on conflict; classification flags and
# creation metadata stay as first written.
_UPSERT_PIZZERIA = """
INSERT INTO pizzerias (
    name,
    address,
    city,
    state,
    zipcode,
    coordinates,
    phone,
    website,
    is_dedicated_pizzeria,
    has_delivery,
    has_pizza_menu,
    rating,
    review_count,
    price_level,
    source,
    external_id,
    metadata
) VALUES (
    %(name)s,
    %(address)s,
    %(city)s,
    %(state)s,
    %(zipcode)s,
    CASE WHEN %(lng)s IS NOT NULL AND %(lat)s IS NOT NULL THEN
        ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)
    ELSE NULL END,
    %(phone)s,
    %(website)s,
    %(is_dedicated_pizzeria)s,
    %(has_delivery)s,
    %(has_pizza_menu)s,
    %(rating)s,
    %(review_count)s,
    %(price_level)s,
    %(source)s,
    %(external_id)s,
    %(metadata)s
)
ON CONFLICT (source, external_id) DO UPDATE SET
    name = EXCLUDED.name,
    rating = EXCLUDED.rating,
    review_count = EXCLUDED.review_count,
    has_delivery = EXCLUDED.has_delivery,
    last_updated = NOW()
RETURNING id;
"""

_INSERT_SEARCH_HISTORY = """
INSERT INTO search_history (
    zipcode,
    search_coordinates,
    radius_miles,
    results_count,
    response_time_ms
) VALUES (
    %(zipcode)s,
    ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326),
    %(radius_miles)s,
    %(result_count)s,
    %(response_time_ms)s
);
"""

_SEARCH_BY_RADIUS = "SELECT * FROM search_pizzerias_by_radius(%(lat)s, %(lng)s, %(radius_miles)s);"

_SELECT_BY_ID = "SELECT * FROM pizzerias WHERE id = %(id)s;"

_LIST_PIZZERIAS = """
SELECT * FROM pizzerias
ORDER BY rating DESC NULLS LAST, review_count DESC
LIMIT %(limit)s OFFSET %(offset)s;
"""

_COUNT_PIZZERIAS = "SELECT COUNT(*) AS total FROM pizzerias;"


def upsert_pizzeria(record: CanonicalRecord, fallback_zipcode: Optional[str] = None) -> Optional[int]:
    """Persist a record keyed by (source, external_id), performing an idempotent upsert."""
    if not record.name:
        raise ValueError("name is required for upsert")
    params = _prepare_params(record, fallback_zipcode)

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_PIZZERIA, params)
            row = cur.fetchone()
        conn.commit()
    logger.debug("Upserted pizzeria %s (%s:%s)", record.name, record.source, record.external_id)
    return row[0] if row else None


def insert_search_history(event: Dict[str, Any]) -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_SEARCH_HISTORY, event)
        conn.commit()


def _fetch_all(sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        with get_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.commit()
    except psycopg2.Error as exc:
        raise StoreQueryFailed(str(exc)) from exc
    return [dict(row) for row in rows]


def query_pizzerias_by_radius(lat: float, lng: float, radius_miles: float) -> List[Dict[str, Any]]:
    return _fetch_all(_SEARCH_BY_RADIUS, {"lat": lat, "lng": lng, "radius_miles": radius_miles})


def get_pizzeria(pizzeria_id: int) -> Optional[Dict[str, Any]]:
    rows = _fetch_all(_SELECT_BY_ID, {"id": pizzeria_id})
    return rows[0] if rows else None


def list_pizzerias(limit: int, offset: int) -> Tuple[List[Dict[str, Any]], int]:
    rows = _fetch_all(_LIST_PIZZERIAS, {"limit": limit, "offset": offset})
    total = _fetch_all(_COUNT_PIZZERIAS, {})
    return rows, int(total[0]["total"]) if total else 0
