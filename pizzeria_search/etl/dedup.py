"""Identity resolution across sources: pairwise scoring, merging and clustering.

Everything here works on in-memory record lists and performs no I/O. The
default clustering policy is greedy first-match: a record is merged into the
first survivor it matches, not the best one, so results depend on input
order. Local store records come first in the input, which makes them the
preferred survivors.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Protocol, Sequence

from rapidfuzz.distance import Levenshtein

from pizzeria_search.etl.geo import haversine_meters
from pizzeria_search.models import CanonicalRecord

logger = logging.getLogger(__name__)

NAME_WEIGHT = 0.4
GEO_WEIGHT = 0.3
PHONE_WEIGHT = 0.2
ADDRESS_WEIGHT = 0.1

STRONG_SIMILARITY = 0.8
STRONG_DISTANCE_METERS = 50
GEO_SCALE_METERS = 200
CONFIDENCE_THRESHOLD = 0.7
MIN_STRONG_MATCHES = 2

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    confidence: float
    strong_matches: int = 0


@dataclass(frozen=True)
class MergeDecision:
    """One absorption: which record went into which survivor, and how sure we were."""

    absorbed_source: str
    absorbed_id: Optional[str]
    survivor_source: str
    survivor_id: Optional[str]
    confidence: float


@dataclass
class DedupResult:
    records: List[CanonicalRecord] = field(default_factory=list)
    decisions: List[MergeDecision] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return len(self.decisions)


def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Return 1 - levenshtein / max length on case-folded, trimmed strings."""
    if not a or not b:
        return 0.0

    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 1.0
    return 1 - Levenshtein.distance(s1, s2) / max_len


def normalize_phone(phone: Optional[str]) -> str:
    return _NON_DIGITS.sub("", phone or "")


def are_duplicates(a: CanonicalRecord, b: CanonicalRecord) -> DuplicateCheck:
    """Score two records and decide whether they describe the same business."""
    if a.external_id and a.source == b.source and a.external_id == b.external_id:
        return DuplicateCheck(is_duplicate=True, confidence=1.0)

    confidence = 0.0
    strong = 0

    name_similarity = string_similarity(a.name, b.name)
    confidence += name_similarity * NAME_WEIGHT
    if name_similarity > STRONG_SIMILARITY:
        strong += 1

    if a.coordinates is not None and b.coordinates is not None:
        distance = haversine_meters(a.coordinates, b.coordinates)
        confidence += max(0.0, 1 - distance / GEO_SCALE_METERS) * GEO_WEIGHT
        if distance < STRONG_DISTANCE_METERS:
            strong += 1

    if a.phone and b.phone:
        phone_a = normalize_phone(a.phone)
        if phone_a and phone_a == normalize_phone(b.phone):
            confidence += PHONE_WEIGHT
            strong += 1

    if a.address and b.address:
        address_similarity = string_similarity(a.address, b.address)
        confidence += address_similarity * ADDRESS_WEIGHT
        if address_similarity > STRONG_SIMILARITY:
            strong += 1

    return DuplicateCheck(
        is_duplicate=confidence > CONFIDENCE_THRESHOLD or strong >= MIN_STRONG_MATCHES,
        confidence=round(confidence, 2),
        strong_matches=strong,
    )


def merge_records(survivor: CanonicalRecord, absorbed: CanonicalRecord) -> CanonicalRecord:
    """Fold ``absorbed`` into ``survivor`` and return a new record."""
    ratings = [r for r in (survivor.rating, absorbed.rating) if r is not None]
    metadata = dict(survivor.metadata or {})
    metadata["duplicate_sources"] = list(metadata.get("duplicate_sources", [])) + [absorbed.source]
    metadata["merged_ids"] = list(metadata.get("merged_ids", [])) + [absorbed.external_id]

    return replace(
        survivor,
        rating=max(ratings) if ratings else None,
        review_count=(survivor.review_count or 0) + (absorbed.review_count or 0),
        phone=survivor.phone or absorbed.phone,
        website=survivor.website or absorbed.website,
        metadata=metadata,
    )


class ClusteringStrategy(Protocol):
    def cluster(self, records: Sequence[CanonicalRecord]) -> DedupResult:
        ...


class GreedyFirstMatchClustering:
    """Merge each record into the first earlier survivor it duplicates."""

    def cluster(self, records: Sequence[CanonicalRecord]) -> DedupResult:
        result = DedupResult()
        for record in records:
            for index, survivor in enumerate(result.records):
                check = are_duplicates(survivor, record)
                if not check.is_duplicate:
                    continue
                result.records[index] = merge_records(survivor, record)
                result.decisions.append(
                    MergeDecision(
                        absorbed_source=record.source,
                        absorbed_id=record.external_id,
                        survivor_source=survivor.source,
                        survivor_id=survivor.external_id,
                        confidence=check.confidence,
                    )
                )
                logger.debug("Merged duplicate: %s (confidence: %s)", record.name, check.confidence)
                break
            else:
                result.records.append(record)
        return result


def deduplicate(
    records: Sequence[CanonicalRecord],
    strategy: Optional[ClusteringStrategy] = None,
) -> DedupResult:
    if not records:
        return DedupResult()

    result = (strategy or GreedyFirstMatchClustering()).cluster(records)
    logger.info(
        "Deduplication: %d -> %d (removed %d duplicates)",
        len(records),
        len(result.records),
        len(records) - len(result.records),
    )
    return result
