import pytest

from pizzeria_search.core.search import InvalidLocation
from pizzeria_search.etl.persist import PersistenceFailed
from pizzeria_search.jobs import server
from pizzeria_search.models import CanonicalRecord, SearchLocation, SearchResult


def make_result(**overrides):
    values = dict(
        success=True,
        cached=False,
        location=SearchLocation(zipcode="20001", city="Washington", state="DC", lat=38.9, lng=-77.03),
        radius_miles=10,
        results=[CanonicalRecord(name="Joe's Pizza", source="database", external_id="1", distance_miles=0.2)],
        sources={"database": 1, "google": 0},
        response_time_ms=12,
        degraded=["google"],
    )
    values.update(overrides)
    return SearchResult(**values)


@pytest.fixture
def searches(monkeypatch):
    calls = []

    def fake_run_search(search_request):
        calls.append((search_request.zipcode, search_request.radius_miles, search_request.include_non_dedicated))
        return make_result()

    monkeypatch.setattr(server, "_run_search", fake_run_search)
    return calls


@pytest.fixture
def client():
    return server.app.test_client()


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_search_post(client, searches):
    response = client.post("/api/search/zipcode", json={"zipcode": "20001", "radius": 5, "includeNonDedicated": False})

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["count"] == 1
    assert body["results"][0]["name"] == "Joe's Pizza"
    assert body["sources"] == {"database": 1, "google": 0}
    assert body["degraded"] == ["google"]
    assert searches == [("20001", 5.0, False)]


def test_search_get_defaults(client, searches):
    response = client.get("/api/search/zipcode/20001")

    assert response.status_code == 200
    assert searches == [("20001", None, True)]


def test_search_get_query_params(client, searches):
    client.get("/api/search/zipcode/20001?radius=2.5&includeNonDedicated=false")
    assert searches == [("20001", 2.5, False)]


def test_search_validates_input(client, searches):
    assert client.post("/api/search/zipcode", json={}).status_code == 400
    assert client.post("/api/search/zipcode", json={"zipcode": "abc"}).status_code == 400
    response = client.post("/api/search/zipcode", json={"zipcode": "20001", "radius": "far"})
    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "radius must be numeric"}
    assert searches == []


def test_search_error_maps_to_400(client, monkeypatch):
    def fake_run_search(search_request):
        raise InvalidLocation("Invalid zipcode: 00000")

    monkeypatch.setattr(server, "_run_search", fake_run_search)

    response = client.get("/api/search/zipcode/00000")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid zipcode: 00000"


def test_unexpected_error_maps_to_500(client, monkeypatch):
    def fake_run_search(search_request):
        raise RuntimeError("boom")

    monkeypatch.setattr(server, "_run_search", fake_run_search)

    response = client.get("/api/search/zipcode/20001")

    assert response.status_code == 500
    assert response.get_json()["success"] is False


def test_get_pizzeria(client, monkeypatch):
    monkeypatch.setattr(server.db, "get_pizzeria", lambda pid: {"id": pid, "name": "Joe's", "source": "google"})

    response = client.get("/api/pizzerias/3")

    assert response.status_code == 200
    pizzeria = response.get_json()["pizzeria"]
    assert pizzeria["id"] == 3
    assert pizzeria["metadata"]["stored_source"] == "google"


def test_get_pizzeria_not_found(client, monkeypatch):
    monkeypatch.setattr(server.db, "get_pizzeria", lambda pid: None)

    response = client.get("/api/pizzerias/3")

    assert response.status_code == 404
    assert response.get_json()["error"] == "Pizzeria not found"


def test_list_pizzerias_paginates(client, monkeypatch):
    calls = []

    def fake_list(limit, offset):
        calls.append((limit, offset))
        return [{"id": 1, "name": "Joe's"}], 41

    monkeypatch.setattr(server.db, "list_pizzerias", fake_list)

    response = client.get("/api/pizzerias?limit=500&offset=20")

    assert response.status_code == 200
    assert response.get_json()["pagination"] == {"limit": 100, "offset": 20, "total": 41}
    assert calls == [(100, 20)]
    assert client.get("/api/pizzerias?limit=bad").status_code == 400
    assert client.get("/api/pizzerias?offset=-1").status_code == 400


def test_batch_import(client, monkeypatch):
    stored = []

    class FakeStore:
        def upsert(self, record, fallback_zipcode=None):
            if record.name == "Broken":
                raise PersistenceFailed("constraint violation")
            stored.append(record)
            return len(stored)

    monkeypatch.setattr(server, "_store", FakeStore())

    response = client.post(
        "/api/pizzerias/batch",
        json={
            "pizzerias": [
                {"name": "Corner Slice", "external_id": "m-1", "lat": 38.9, "lng": -77.0},
                {"name": "Broken"},
                "not an object",
            ]
        },
    )

    body = response.get_json()
    assert response.status_code == 200
    assert body["imported"] == 1
    assert body["errors"] == 2
    assert body["details"]["imported"] == [{"id": 1, "name": "Corner Slice"}]
    assert stored[0].source == "manual"
    assert (stored[0].coordinates.lat, stored[0].coordinates.lng) == (38.9, -77.0)


def test_batch_import_requires_list(client):
    assert client.post("/api/pizzerias/batch", json={"pizzerias": []}).status_code == 400
    assert client.post("/api/pizzerias/batch", json={}).status_code == 400


def test_cache_flush(client, monkeypatch):
    class FakeService:
        async def flush_cache(self):
            return True

    monkeypatch.setattr(server, "get_service", lambda: FakeService())

    response = client.post("/api/cache/flush")

    assert response.status_code == 200
    assert response.get_json() == {"success": True}


def test_batch_import_without_database_reports_errors(client, monkeypatch):
    def no_database():
        raise RuntimeError("DATABASE_URL is required for database connections")

    monkeypatch.setattr(server.db, "init_pool", no_database)

    response = client.post(
        "/api/pizzerias/batch",
        json={"pizzerias": [{"name": "Corner Slice", "external_id": "m-1"}, {"name": "Slice Shop", "external_id": "m-2"}]},
    )

    body = response.get_json()
    assert response.status_code == 200
    assert body["imported"] == 0
    assert body["errors"] == 2
