"""HTTP entrypoint for pizzeria search (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from pizzeria_search.core import db
from pizzeria_search.core.config import get_settings
from pizzeria_search.core.runtime import LoopRunner
from pizzeria_search.core.search import SearchError, SearchService, build_service
from pizzeria_search.core.store import PostgresStore
from pizzeria_search.core.zipcode import is_valid_zipcode
from pizzeria_search.etl.persist import PersistenceFailed
from pizzeria_search.etl.transform import row_to_record
from pizzeria_search.models import CanonicalRecord, SearchRequest, SearchResult, Source

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & runtime ----------
app = Flask(__name__)
_runner = LoopRunner()
_store = PostgresStore()
_service: Optional[SearchService] = None
_service_lock = threading.Lock()

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


def get_service() -> SearchService:
    """Build the search service once and connect its cache on the loop thread."""
    global _service
    with _service_lock:
        if _service is None:
            service = build_service()
            _runner.run(service.start())
            _service = service
    return _service


def _run_search(search_request: SearchRequest) -> SearchResult:
    service = get_service()
    return _runner.run(
        service.search(
            search_request.zipcode,
            search_request.radius_miles,
            search_request.include_non_dedicated,
        )
    )


def _error(message: str, status: int) -> Any:
    return jsonify({"success": False, "error": message}), status


def _parse_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"false", "0", "no"}


def _parse_radius(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, no backend round-trips."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "google_enabled": settings.google_enabled,
                "yelp_enabled": settings.yelp_enabled,
                "cache_available": _service.cache.availability.available if _service else False,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


def _search_response(zipcode: Any, radius_raw: Any, include_non_dedicated: bool) -> Any:
    if not zipcode or not is_valid_zipcode(zipcode):
        return _error("Valid US zipcode is required", 400)

    try:
        radius = _parse_radius(radius_raw)
    except (TypeError, ValueError):
        return _error("radius must be numeric", 400)

    try:
        result = _run_search(SearchRequest(str(zipcode).strip(), radius, include_non_dedicated))
    except SearchError as exc:
        return _error(str(exc), 400)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Search endpoint error: %s", exc)
        return _error("Internal server error", 500)

    return jsonify(result.to_dict()), 200


@app.post("/api/search/zipcode")
def search_zipcode() -> Any:
    """Search pizzerias around a zipcode.

    Required JSON fields: zipcode
    Optional: radius (miles), includeNonDedicated (bool, default true)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    return _search_response(
        payload.get("zipcode"),
        payload.get("radius"),
        _parse_bool(payload.get("includeNonDedicated")),
    )


@app.get("/api/search/zipcode/<zipcode>")
def search_zipcode_get(zipcode: str) -> Any:
    return _search_response(
        zipcode,
        request.args.get("radius"),
        _parse_bool(request.args.get("includeNonDedicated")),
    )


@app.get("/api/pizzerias/<int:pizzeria_id>")
def get_pizzeria(pizzeria_id: int) -> Any:
    try:
        row = db.get_pizzeria(pizzeria_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Get pizzeria error: %s", exc)
        return _error("Internal server error", 500)

    if row is None:
        return _error("Pizzeria not found", 404)
    return jsonify({"success": True, "pizzeria": row_to_record(row).to_dict()}), 200


@app.get("/api/pizzerias")
def list_pizzerias() -> Any:
    try:
        limit = min(int(request.args.get("limit") or DEFAULT_PAGE_LIMIT), MAX_PAGE_LIMIT)
        offset = int(request.args.get("offset") or 0)
    except ValueError:
        return _error("limit and offset must be integers", 400)
    if limit <= 0 or offset < 0:
        return _error("limit must be positive and offset non-negative", 400)

    try:
        rows, total = db.list_pizzerias(limit, offset)
    except Exception as exc:  # noqa: BLE001
        logger.exception("List pizzerias error: %s", exc)
        return _error("Internal server error", 500)

    return (
        jsonify(
            {
                "success": True,
                "pizzerias": [row_to_record(row).to_dict() for row in rows],
                "pagination": {"limit": limit, "offset": offset, "total": total},
            }
        ),
        200,
    )


def _manual_record(place: Dict[str, Any]) -> CanonicalRecord:
    data = dict(place)
    data["source"] = data.get("source") or Source.MANUAL.value
    if not isinstance(data.get("coordinates"), dict) and data.get("lat") is not None and data.get("lng") is not None:
        data["coordinates"] = {"lat": data["lat"], "lng": data["lng"]}
    return CanonicalRecord.from_dict(data)


@app.post("/api/pizzerias/batch")
def batch_import() -> Any:
    """Import pizzerias through the same idempotent upsert the search pipeline uses."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    pizzerias = payload.get("pizzerias")
    if not isinstance(pizzerias, list) or not pizzerias:
        return _error("Pizzerias array is required", 400)

    imported: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for place in pizzerias:
        if not isinstance(place, dict):
            errors.append({"name": None, "error": "entry must be an object"})
            continue
        try:
            record = _manual_record(place)
            pizzeria_id = _store.upsert(record)
        except (PersistenceFailed, TypeError, ValueError) as exc:
            errors.append({"name": place.get("name"), "error": str(exc)})
            continue
        imported.append({"id": pizzeria_id, "name": record.name})

    logger.info("Batch import: %d imported, %d errors", len(imported), len(errors))
    return (
        jsonify(
            {
                "success": True,
                "imported": len(imported),
                "errors": len(errors),
                "details": {"imported": imported, "errors": errors},
            }
        ),
        200,
    )


@app.post("/api/cache/flush")
def flush_cache() -> Any:
    flushed = _runner.run(get_service().flush_cache())
    return jsonify({"success": bool(flushed)}), 200


def main() -> None:
    """Bind on 0.0.0.0 and the PORT injected by the platform (8080 locally)."""
    port = get_settings().port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
