"""Read-through/write-through Redis cache for search answers.

The adapter never raises to its callers. While the backend is unavailable
``get`` returns ``None`` and the write operations return ``False``.
Availability is tracked in a :class:`CacheAvailability` object that only the
adapter's connection callbacks write to; request code may read it freely.
After a connection error the next call made once the reconnect interval has
passed pings the backend again and restores availability when it answers.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
RECONNECT_INTERVAL_SECONDS = 5.0
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class CacheUnavailable(RuntimeError):
    """Raised internally when the cache backend cannot be used."""


class CacheAvailability:
    """Process-wide view of whether the cache backend is reachable."""

    def __init__(self, available: bool = False) -> None:
        self._available = available
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._available

    def mark_available(self) -> None:
        with self._lock:
            self._available = True

    def mark_unavailable(self) -> None:
        with self._lock:
            self._available = False


def _format_radius(radius_miles: float) -> str:
    if isinstance(radius_miles, float) and radius_miles.is_integer():
        return str(int(radius_miles))
    return str(radius_miles)


def search_cache_key(zipcode: str, radius_miles: float) -> str:
    """Key for a search answer. Existing cache entries depend on this exact format."""
    return f"search:{zipcode}:{_format_radius(radius_miles)}"


class SearchCache:
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[Redis] = None,
        availability: Optional[CacheAvailability] = None,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        reconnect_interval: float = RECONNECT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url
        self._client = client
        self.availability = availability or CacheAvailability()
        self.default_ttl = default_ttl
        self._reconnect_interval = reconnect_interval
        self._clock = clock
        self._started = False
        self._last_attempt: Optional[float] = None

    async def connect(self) -> bool:
        """Open the connection and flip availability on success."""
        self._started = True
        self._last_attempt = self._clock()
        try:
            if self._client is None:
                if not self._url:
                    raise CacheUnavailable("no cache URL configured")
                self._client = Redis.from_url(self._url, decode_responses=True, socket_connect_timeout=2)
            await self._client.ping()
        except (CacheUnavailable, RedisError, OSError) as exc:
            logger.error("Failed to initialize Redis: %s", exc)
            self._on_error(exc)
            return False
        self._on_connect()
        return True

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except (RedisError, OSError) as exc:
                logger.warning("Error closing Redis client: %s", exc)
        self._started = False
        self.availability.mark_unavailable()

    def _on_connect(self) -> None:
        logger.info("Redis connected")
        self.availability.mark_available()

    def _on_error(self, exc: BaseException) -> None:
        if self.availability.available:
            logger.error("Redis error, cache disabled: %s", exc)
        self._last_attempt = self._clock()
        self.availability.mark_unavailable()

    async def reconnect(self) -> bool:
        """Ping the backend again, at most once per reconnect interval.

        Only applies after :meth:`connect` has run and before :meth:`close`.
        Returns the availability after the attempt.
        """
        if self.availability.available:
            return True
        if not self._started or self._client is None:
            return False
        now = self._clock()
        if self._last_attempt is not None and now - self._last_attempt < self._reconnect_interval:
            return False
        self._last_attempt = now
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis reconnect failed: %s", exc)
            return False
        self._on_connect()
        return True

    async def _active_client(self) -> Redis:
        if self._client is None or not await self.reconnect():
            raise CacheUnavailable("cache backend unavailable")
        return self._client

    def _handle_failure(self, operation: str, exc: Exception) -> None:
        if isinstance(exc, _CONNECTION_ERRORS):
            self._on_error(exc)
        else:
            logger.error("Cache %s error: %s", operation, exc)

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._active_client()
            data = await client.get(key)
        except CacheUnavailable:
            return None
        except (RedisError, OSError) as exc:
            self._handle_failure("get", exc)
            return None

        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            payload = json.dumps(value)
            ttl = self.default_ttl if ttl is None else ttl
            client = await self._active_client()
            await client.setex(key, ttl, payload)
        except CacheUnavailable:
            return False
        except (TypeError, ValueError) as exc:
            logger.error("Cache set error: value for %s is not serializable: %s", key, exc)
            return False
        except (RedisError, OSError) as exc:
            self._handle_failure("set", exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            client = await self._active_client()
            await client.delete(key)
        except CacheUnavailable:
            return False
        except (RedisError, OSError) as exc:
            self._handle_failure("delete", exc)
            return False
        return True

    async def flush_all(self) -> bool:
        try:
            client = await self._active_client()
            await client.flushall()
        except CacheUnavailable:
            return False
        except (RedisError, OSError) as exc:
            self._handle_failure("flush", exc)
            return False
        logger.info("Cache flushed")
        return True
