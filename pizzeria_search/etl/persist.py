"""Background persistence of discovered records and search analytics."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from pizzeria_search.models import CanonicalRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING_JOBS = 100


class PersistenceFailed(RuntimeError):
    """Raised by a sink when a single record cannot be stored."""


@dataclass(frozen=True)
class SearchEvent:
    zipcode: str
    lat: float
    lng: float
    radius_miles: float
    result_count: int
    response_time_ms: int


class PersistenceSink(Protocol):
    def upsert(self, record: CanonicalRecord, fallback_zipcode: Optional[str] = None) -> Optional[int]:
        ...


class AnalyticsSink(Protocol):
    def log_search_event(self, event: SearchEvent) -> None:
        ...


def persist_records(
    records: Iterable[CanonicalRecord],
    sink: PersistenceSink,
    fallback_zipcode: Optional[str] = None,
) -> int:
    """Upsert each record on its own; one failure never stops the batch."""
    written = 0
    total = 0
    for record in records:
        total += 1
        try:
            sink.upsert(record, fallback_zipcode)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error storing place %s (%s:%s): %s", record.name, record.source, record.external_id, exc)
            continue
        written += 1

    if total:
        logger.info("Stored %d/%d provider results", written, total)
    return written


def log_search_event(sink: AnalyticsSink, event: SearchEvent) -> bool:
    try:
        sink.log_search_event(event)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error logging search for %s: %s", event.zipcode, exc)
        return False
    return True


class PersistenceWriter:
    """Runs persistence jobs on a bounded worker pool, off the request path.

    At most ``max_pending`` jobs may be queued or running at once. Jobs
    submitted beyond that are dropped with a warning rather than queued, so a
    slow database cannot grow the backlog without limit.
    """

    def __init__(
        self,
        sink: PersistenceSink,
        analytics: AnalyticsSink,
        *,
        max_workers: int = 4,
        max_pending: int = DEFAULT_MAX_PENDING_JOBS,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._sink = sink
        self._analytics = analytics
        self._slots = threading.BoundedSemaphore(max_pending)
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="persist")

    def submit(
        self,
        records: Iterable[CanonicalRecord],
        event: Optional[SearchEvent] = None,
        fallback_zipcode: Optional[str] = None,
    ) -> Optional[Future]:
        job_records: List[CanonicalRecord] = list(records)
        if not self._slots.acquire(blocking=False):
            logger.warning("Persistence backlog full; dropping %d records", len(job_records))
            return None
        try:
            future = self._executor.submit(self._run_job_safe, job_records, event, fallback_zipcode)
        except RuntimeError as exc:
            self._slots.release()
            logger.error("Persistence writer is shut down; dropping %d records: %s", len(job_records), exc)
            return None
        future.add_done_callback(self._release_slot)
        return future

    def _release_slot(self, _future: Future) -> None:
        self._slots.release()

    def _run_job_safe(
        self,
        records: List[CanonicalRecord],
        event: Optional[SearchEvent],
        fallback_zipcode: Optional[str],
    ) -> None:
        try:
            persist_records(records, self._sink, fallback_zipcode)
            if event is not None:
                log_search_event(self._analytics, event)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Persistence job failed: %s", exc)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
