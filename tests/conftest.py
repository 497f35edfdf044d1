"""Shared fixtures: a fake Riksdagen API and a throwaway SQLite store."""

from collections.abc import AsyncIterator
from datetime import date
from typing import Any

import httpx
import pytest
import pytest_asyncio

from pipeline.riksdagen.client import RiksdagenClient
from riksdagsrosten.config import Settings
from riksdagsrosten.store import Store

SESSION = "2024/25"


def _html_error() -> httpx.Response:
    return httpx.Response(
        200, text="<html>oops</html>", headers={"content-type": "text/html"}
    )


class FakeRiksdagen:
    """In-memory stand-in for data.riksdagen.se, served through httpx.MockTransport.

    Unknown documents and paths answer 404, like the real service.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.members: Any = []
        # (doktyp, rm) -> list of pages, each a list of dokument items
        self.documents: dict[tuple[str, str], list[list[dict[str, Any]]]] = {}
        # (rm, bet) -> votering items (list, single dict or None)
        self.ballots: dict[tuple[str, str], Any] = {}
        # dok_id -> dokumentstatus object
        self.statuses: dict[str, dict[str, Any]] = {}
        # path -> HTTP status to answer with
        self.failures: dict[str, int] = {}
        # Request keys answered with a 200 HTML body instead of JSON:
        # ("voteringlista", rm, bet) or ("dokumentlista", doktyp, rm, page)
        self.garbled: set[tuple[str, ...]] = set()

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path in self.failures:
            return httpx.Response(self.failures[path])

        if path == "/personlista/":
            return httpx.Response(200, json={"personlista": {"person": self.members}})

        if path == "/dokumentlista/":
            if ("dokumentlista", params["doktyp"], params["rm"], params["p"]) in self.garbled:
                return _html_error()
            pages = self.documents.get((params["doktyp"], params["rm"]), [])
            page = int(params["p"])
            body: dict[str, Any] = {"@sida": str(page)}
            if page <= len(pages):
                body["dokument"] = pages[page - 1]
            if page < len(pages):
                body["@nasta_sida"] = f"http://data.riksdagen.se/dokumentlista/?p={page + 1}"
            return httpx.Response(200, json={"dokumentlista": body})

        if path == "/voteringlista/":
            if ("voteringlista", params["rm"], params["bet"]) in self.garbled:
                return _html_error()
            items = self.ballots.get((params["rm"], params["bet"]))
            return httpx.Response(200, json={"voteringlista": {"votering": items}})

        if path.startswith("/dokumentstatus/"):
            dok_id = path.removeprefix("/dokumentstatus/").removesuffix(".json")
            if dok_id not in self.statuses:
                return httpx.Response(404)
            return httpx.Response(200, json={"dokumentstatus": self.statuses[dok_id]})

        return httpx.Response(404)

    def requests_to(self, prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(prefix)]


async def _no_sleep(_: float) -> None:
    return None


def make_client(fake: FakeRiksdagen, **kwargs: Any) -> RiksdagenClient:
    """Build a client wired to the fake API, with no delays."""
    options: dict[str, Any] = {
        "request_delay": 0.0,
        "retry_delay": 0.0,
        "max_retries": 1,
        "sleep": _no_sleep,
    }
    options.update(kwargs)
    return RiksdagenClient(transport=httpx.MockTransport(fake.handle), **options)


# =============================================================================
# Upstream record builders
# =============================================================================


def person_item(intressent_id: str, **overrides: Any) -> dict[str, Any]:
    item = {
        "intressent_id": intressent_id,
        "tilltalsnamn": "Anna",
        "efternamn": "Andersson",
        "parti": "S",
        "valkrets": "Stockholms kommun",
        "kon": "kvinna",
        "fodd_ar": "1970",
        "bild_url_192": f"https://data.riksdagen.se/filarkiv/bilder/ledamot/{intressent_id}_192.jpg",
        "status": "Tjänstgörande riksdagsledamot",
    }
    item.update(overrides)
    return item


def document_item(dok_id: str, beteckning: str, **overrides: Any) -> dict[str, Any]:
    item = {
        "dok_id": dok_id,
        "beteckning": beteckning,
        "rm": SESSION,
        "organ": "AU",
        "titel": f"Betänkande {beteckning}",
        "datum": "2025-02-10 00:00:00",
        "beslutsdag": "2025-03-05",
        "dokument_url_html": f"//data.riksdagen.se/dokument/{dok_id}.html",
        "doktyp": "bet",
    }
    item.update(overrides)
    return item


def ballot_item(
    votering_id: str,
    intressent_id: str,
    rost: str,
    parti: str = "S",
    **overrides: Any,
) -> dict[str, Any]:
    item = {
        "votering_id": votering_id,
        "intressent_id": intressent_id,
        "rost": rost,
        "parti": parti,
        "namn": f"Ledamot {intressent_id}",
        "dok_id": "HC01AU10",
        "beteckning": "AU10",
        "punkt": "1",
        "rm": SESSION,
        "avser": "sakfrågan",
        "votering": "huvud",
    }
    item.update(overrides)
    return item


# =============================================================================
# Store row builders
# =============================================================================


def report_row(dok_id: str, beteckning: str, **overrides: Any) -> dict[str, Any]:
    row = {
        "dok_id": dok_id,
        "beteckning": beteckning,
        "rm": SESSION,
        "organ": "AU",
        "titel": f"Betänkande {beteckning}",
        "datum": date(2025, 2, 10),
        "beslutsdag": date(2025, 3, 5),
        "dokument_url": None,
        "doktyp": "bet",
    }
    row.update(overrides)
    return row


def motion_row(dok_id: str, doktyp: str = "mot", **overrides: Any) -> dict[str, Any]:
    row = {
        "dok_id": dok_id,
        "doktyp": doktyp,
        "beteckning": dok_id[-4:],
        "rm": SESSION,
        "titel": f"Dokument {dok_id}",
        "datum": date(2024, 10, 1),
        "dokument_url": None,
        "forfattare": None,
        "parti": None,
        "departement": None,
    }
    row.update(overrides)
    return row


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        sessions=[SESSION],
        request_delay=0.0,
        retry_delay=0.0,
        max_retries=1,
        stage_timeout_seconds=30,
    )


@pytest.fixture
def fake_api() -> FakeRiksdagen:
    return FakeRiksdagen()


@pytest_asyncio.fixture
async def store(settings: Settings) -> AsyncIterator[Store]:
    store = Store.from_settings(settings)
    await store.create_schema()
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def client(fake_api: FakeRiksdagen) -> AsyncIterator[RiksdagenClient]:
    client = make_client(fake_api)
    yield client
    await client.aclose()
