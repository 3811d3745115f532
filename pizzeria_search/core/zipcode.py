"""US zipcode validation and coordinate lookup."""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

import zipcodes

logger = logging.getLogger(__name__)

_ZIPCODE_RE = re.compile(r"^\d{5}(-\d{4})?$")


@dataclass(frozen=True)
class ZipLocation:
    lat: float
    lng: float
    city: Optional[str]
    state: Optional[str]


class ZipcodeResolver(Protocol):
    def resolve(self, zipcode: str) -> Optional[ZipLocation]:
        ...


def is_valid_zipcode(zipcode: object) -> bool:
    """Accept 5-digit or ZIP+4 codes."""
    return bool(_ZIPCODE_RE.match(str(zipcode).strip()))


class ZipcodeTableResolver:
    """Resolves zipcodes against the bundled ``zipcodes`` lookup table."""

    def resolve(self, zipcode: str) -> Optional[ZipLocation]:
        if not is_valid_zipcode(zipcode):
            logger.warning("Invalid zipcode: %s", zipcode)
            return None

        clean = str(zipcode).strip()[:5]
        try:
            matches = zipcodes.matching(clean)
        except (TypeError, ValueError) as exc:
            logger.warning("Zipcode lookup rejected %s: %s", zipcode, exc)
            return None

        for match in matches:
            try:
                return ZipLocation(
                    lat=float(match["lat"]),
                    lng=float(match["long"]),
                    city=match.get("city"),
                    state=match.get("state"),
                )
            except (KeyError, TypeError, ValueError):
                continue

        logger.warning("Unknown zipcode: %s", zipcode)
        return None
