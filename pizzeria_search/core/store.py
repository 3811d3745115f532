"""Adapters exposing the PostGIS helpers as search collaborators."""

import asyncio
import logging
from dataclasses import asdict
from typing import List, Optional

import psycopg2

from pizzeria_search.core import db
from pizzeria_search.etl.persist import PersistenceFailed, SearchEvent
from pizzeria_search.etl.transform import row_to_record
from pizzeria_search.models import CanonicalRecord

logger = logging.getLogger(__name__)


class PostgresStore:
    """Local store, persistence sink and analytics sink backed by ``core.db``."""

    async def query_by_radius(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        rows = await asyncio.to_thread(db.query_pizzerias_by_radius, lat, lng, radius_miles)
        return [row_to_record(row) for row in rows]

    def upsert(self, record: CanonicalRecord, fallback_zipcode: Optional[str] = None) -> Optional[int]:
        try:
            return db.upsert_pizzeria(record, fallback_zipcode)
        except (psycopg2.Error, RuntimeError, ValueError) as exc:
            # RuntimeError: init_pool without DATABASE_URL.
            raise PersistenceFailed(str(exc)) from exc

    def log_search_event(self, event: SearchEvent) -> None:
        db.insert_search_history(asdict(event))
