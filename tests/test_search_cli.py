import asyncio
import types

import pytest

from pizzeria_search.core.search import InvalidRadius
from pizzeria_search.jobs import search_cli
from pizzeria_search.models import SearchLocation, SearchResult


class FakeService:
    def __init__(self, error=None):
        self.error = error
        self.events = []

    async def start(self):
        self.events.append("start")

    async def flush_cache(self):
        self.events.append("flush")
        return True

    async def search(self, zipcode, radius_miles=None, include_non_dedicated=True):
        self.events.append(("search", zipcode, radius_miles, include_non_dedicated))
        if self.error is not None:
            raise self.error
        return SearchResult(
            success=True,
            cached=False,
            location=SearchLocation(zipcode=zipcode, city="Washington", state="DC", lat=38.9, lng=-77.03),
            radius_miles=radius_miles,
        )

    async def aclose(self):
        self.events.append("close")


@pytest.fixture
def settings(monkeypatch):
    fake = types.SimpleNamespace(default_radius_miles=7)
    monkeypatch.setattr(search_cli, "get_settings", lambda: fake)
    return fake


def test_build_parser_defaults(settings):
    args = search_cli.build_parser().parse_args(["--zipcode", "20001"])

    assert args.zipcode == "20001"
    assert args.radius == 7
    assert args.dedicated_only is False
    assert args.flush_cache is False


def test_run_search_job_flushes_and_closes():
    service = FakeService()

    payload = asyncio.run(
        search_cli.run_search_job(service, zipcode="20001", radius=5.0, dedicated_only=True, flush_cache=True)
    )

    assert payload["success"] is True
    assert payload["count"] == 0
    assert service.events == ["start", "flush", ("search", "20001", 5.0, False), "close"]


def test_run_search_job_closes_on_error():
    service = FakeService(error=InvalidRadius("Radius must be between 1 and 50 miles"))

    with pytest.raises(InvalidRadius):
        asyncio.run(
            search_cli.run_search_job(service, zipcode="20001", radius=99.0, dedicated_only=False, flush_cache=False)
        )

    assert service.events[-1] == "close"


def test_main_prints_json(monkeypatch, settings, capsys):
    service = FakeService()
    monkeypatch.setattr(search_cli, "build_service", lambda: service)
    monkeypatch.setattr("sys.argv", ["pizzeria-search", "--zipcode", "20001", "--radius", "3"])

    search_cli.main()

    out = capsys.readouterr().out
    assert '"zipcode": "20001"' in out
    assert ("search", "20001", 3.0, True) in service.events


def test_main_exits_on_search_error(monkeypatch, settings):
    monkeypatch.setattr(search_cli, "build_service", lambda: FakeService(error=InvalidRadius("bad radius")))
    monkeypatch.setattr("sys.argv", ["pizzeria-search", "--zipcode", "20001"])

    with pytest.raises(SystemExit) as excinfo:
        search_cli.main()

    assert excinfo.value.code == 2
