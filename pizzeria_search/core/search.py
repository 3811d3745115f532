"""Multi-source pizzeria search: validate, cache, fan out, merge, rank, persist.

One call to :meth:`SearchService.search` walks the request through these
stages::

    validate -> cache check -> hit:  respond (cached=True)
                            -> miss: local query + provider fan-out
                                     -> merge -> enrich/sort -> cache write
                                     -> respond -> background persist + analytics

Only :class:`InvalidLocation` and :class:`InvalidRadius` reach the caller.
Store, provider, cache and persistence failures degrade the answer instead of
failing it, and the collaborators that failed are listed in
``SearchResult.degraded``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import List, Optional, Protocol, Sequence, Tuple

from pizzeria_search.core.cache import CacheAvailability, SearchCache, search_cache_key
from pizzeria_search.core.config import Settings, get_settings
from pizzeria_search.core.store import PostgresStore
from pizzeria_search.core.zipcode import ZipcodeResolver, ZipcodeTableResolver
from pizzeria_search.etl.dedup import ClusteringStrategy, deduplicate
from pizzeria_search.etl.persist import PersistenceWriter, SearchEvent
from pizzeria_search.etl.ranking import rank_records
from pizzeria_search.models import CanonicalRecord, SearchLocation, SearchResult, Source
from pizzeria_search.vendors.base import Provider
from pizzeria_search.vendors.google_places import GooglePlacesProvider
from pizzeria_search.vendors.yelp import YelpProvider

logger = logging.getLogger(__name__)

LOCAL_SOURCE = Source.DATABASE.value
MIN_RADIUS_MILES = 1


class SearchError(ValueError):
    """Base class for errors caused by the caller's input."""


class InvalidLocation(SearchError):
    """Raised when the zipcode cannot be resolved to coordinates."""


class InvalidRadius(SearchError):
    """Raised when the radius falls outside the configured bounds."""


class LocalStore(Protocol):
    async def query_by_radius(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        ...


class SearchService:
    def __init__(
        self,
        *,
        resolver: ZipcodeResolver,
        store: LocalStore,
        providers: Sequence[Provider],
        cache: SearchCache,
        availability: CacheAvailability,
        writer: Optional[PersistenceWriter] = None,
        clustering: Optional[ClusteringStrategy] = None,
        default_radius_miles: float = 10,
        max_radius_miles: float = 50,
        cache_ttl_seconds: Optional[int] = None,
        provider_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._providers = list(providers)
        self.cache = cache
        self._availability = availability
        self._writer = writer
        self._clustering = clustering
        self.default_radius_miles = default_radius_miles
        self.max_radius_miles = max_radius_miles
        self._cache_ttl = cache_ttl_seconds
        self._provider_timeout = provider_timeout_seconds

    @property
    def provider_names(self) -> List[str]:
        return [provider.name for provider in self._providers]

    async def start(self) -> None:
        await self.cache.connect()

    async def aclose(self) -> None:
        await self.cache.close()
        if self._writer is not None:
            await asyncio.to_thread(self._writer.shutdown, True)

    def _validate_radius(self, radius_miles: Optional[float]) -> float:
        if radius_miles is None:
            return self.default_radius_miles
        try:
            radius = float(radius_miles)
        except (TypeError, ValueError) as exc:
            raise InvalidRadius(f"Radius must be a number, got {radius_miles!r}") from exc
        if not math.isfinite(radius) or radius < MIN_RADIUS_MILES or radius > self.max_radius_miles:
            raise InvalidRadius(f"Radius must be between {MIN_RADIUS_MILES} and {self.max_radius_miles} miles")
        return int(radius) if radius.is_integer() else radius

    async def search(
        self,
        zipcode: str,
        radius_miles: Optional[float] = None,
        include_non_dedicated: bool = True,
    ) -> SearchResult:
        started = time.perf_counter()
        zipcode = str(zipcode).strip()

        resolved = self._resolver.resolve(zipcode)
        if resolved is None:
            raise InvalidLocation(f"Invalid zipcode: {zipcode}")
        radius = self._validate_radius(radius_miles)
        location = SearchLocation(
            zipcode=zipcode,
            city=resolved.city,
            state=resolved.state,
            lat=resolved.lat,
            lng=resolved.lng,
        )
        cache_key = search_cache_key(zipcode, radius)

        cached = await self._read_cache(cache_key)
        if cached is not None:
            logger.info("Cache hit for %s", zipcode)
            return self._respond(
                location,
                radius,
                cached,
                cached=True,
                sources={},
                degraded=[],
                started=started,
                include_non_dedicated=include_non_dedicated,
            )

        degraded: List[str] = []
        local_outcome, *provider_outcomes = await asyncio.gather(
            self._query_local(location.lat, location.lng, radius),
            *(self._query_provider(provider, location.lat, location.lng, radius) for provider in self._providers),
        )

        local_records, local_ok = local_outcome
        if not local_ok:
            degraded.append(LOCAL_SOURCE)
        logger.info("Found %d results in local database", len(local_records))

        sources = {LOCAL_SOURCE: len(local_records)}
        external_records: List[CanonicalRecord] = []
        for provider, (records, ok) in zip(self._providers, provider_outcomes):
            sources[provider.name] = len(records)
            external_records.extend(records)
            if not ok:
                degraded.append(provider.name)
        logger.info("Found %d results from external APIs", len(external_records))

        merged = deduplicate([*local_records, *external_records], self._clustering)
        ranked = rank_records(merged.records, location.lat, location.lng)

        if not await self._write_cache(cache_key, ranked):
            degraded.append("cache")

        result = self._respond(
            location,
            radius,
            ranked,
            cached=False,
            sources=sources,
            degraded=degraded,
            started=started,
            include_non_dedicated=include_non_dedicated,
        )
        self._schedule_persistence(external_records, location, radius, len(ranked), result.response_time_ms)
        return result

    async def _read_cache(self, key: str) -> Optional[List[CanonicalRecord]]:
        payload = await self.cache.get(key)
        if payload is None and not self._availability.available:
            logger.debug("Cache unavailable, searching without it")
        if not isinstance(payload, list):
            return None
        return [CanonicalRecord.from_dict(item) for item in payload if isinstance(item, dict)]

    async def _write_cache(self, key: str, records: List[CanonicalRecord]) -> bool:
        return await self.cache.set(key, [record.to_dict() for record in records], self._cache_ttl)

    async def _query_local(self, lat: float, lng: float, radius: float) -> Tuple[List[CanonicalRecord], bool]:
        try:
            return list(await self._store.query_by_radius(lat, lng, radius)), True
        except Exception as exc:  # noqa: BLE001
            logger.error("Database search error: %s", exc)
            return [], False

    async def _query_provider(
        self, provider: Provider, lat: float, lng: float, radius: float
    ) -> Tuple[List[CanonicalRecord], bool]:
        try:
            call = provider.search(lat, lng, radius)
            if self._provider_timeout:
                records = await asyncio.wait_for(call, self._provider_timeout)
            else:
                records = await call
            return list(records), True
        except Exception as exc:  # noqa: BLE001
            logger.error("%s search failed: %s", provider.name, exc)
            return [], False

    def _schedule_persistence(
        self,
        external_records: List[CanonicalRecord],
        location: SearchLocation,
        radius: float,
        result_count: int,
        response_time_ms: int,
    ) -> None:
        if self._writer is None:
            return
        event = SearchEvent(
            zipcode=location.zipcode,
            lat=location.lat,
            lng=location.lng,
            radius_miles=radius,
            result_count=result_count,
            response_time_ms=response_time_ms,
        )
        self._writer.submit(external_records, event, fallback_zipcode=location.zipcode)

    @staticmethod
    def _respond(
        location: SearchLocation,
        radius: float,
        records: List[CanonicalRecord],
        *,
        cached: bool,
        sources: dict,
        degraded: List[str],
        started: float,
        include_non_dedicated: bool,
    ) -> SearchResult:
        if not include_non_dedicated:
            records = [record for record in records if record.is_dedicated_pizzeria]
        return SearchResult(
            success=True,
            cached=cached,
            location=location,
            radius_miles=radius,
            results=list(records),
            sources=sources,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            degraded=degraded,
        )

    async def flush_cache(self) -> bool:
        return await self.cache.flush_all()


def build_providers(settings: Settings) -> List[Provider]:
    providers: List[Provider] = []
    if settings.google_enabled:
        providers.append(GooglePlacesProvider(settings.google_places_api_key))
    if settings.yelp_enabled:
        providers.append(YelpProvider(settings.yelp_api_key))
    return providers


def build_service(settings: Optional[Settings] = None) -> SearchService:
    """Wire the production collaborators from settings."""
    settings = settings or get_settings()
    availability = CacheAvailability()
    store = PostgresStore()
    return SearchService(
        resolver=ZipcodeTableResolver(),
        store=store,
        providers=build_providers(settings),
        cache=SearchCache(settings.redis_url, availability=availability, default_ttl=settings.cache_ttl_seconds),
        availability=availability,
        writer=PersistenceWriter(
            store,
            store,
            max_workers=settings.persist_max_workers,
            max_pending=settings.persist_max_pending,
        ),
        default_radius_miles=settings.default_radius_miles,
        max_radius_miles=settings.max_radius_miles,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        provider_timeout_seconds=settings.provider_timeout_seconds,
    )
