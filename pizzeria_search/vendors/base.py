"""Provider interface shared by the external place-data clients."""

from __future__ import annotations

import asyncio
from typing import List, Protocol

import requests

from pizzeria_search.models import CanonicalRecord

METERS_PER_MILE = 1609.34


class ProviderUnavailable(RuntimeError):
    """Raised when an external provider cannot produce results."""


class Provider(Protocol):
    name: str

    async def search(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        """Return normalized records around (lat, lng)."""
        ...


class ThreadedProvider:
    """Runs a blocking ``requests``-based client off the event loop."""

    name = ""

    def fetch(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        raise NotImplementedError

    async def search(self, lat: float, lng: float, radius_miles: float) -> List[CanonicalRecord]:
        try:
            return await asyncio.to_thread(self.fetch, lat, lng, radius_miles)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"{self.name} request failed: {exc}") from exc
