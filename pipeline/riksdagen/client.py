"""Riksdagen open-data API client for members, documents and ballots."""

import asyncio
import html
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, TypeVar

import httpx

from pipeline.riksdagen.exceptions import FetchFailed, MalformedRecord
from pipeline.riksdagen.rate_limit import RateLimiter
from riksdagsrosten.config import Settings
from riksdagsrosten.models.enums import VoteChoice

logger = logging.getLogger(__name__)

# =============================================================================
# Riksdagen Open Data Configuration
# =============================================================================
# Documentation: https://data.riksdagen.se/dokumentation/
#
# No API key. The service has no published rate limit, but sustained bursts
# get throttled; keep to roughly three requests per second.
#
# The JSON output is converted from XML: a collection with exactly one child
# arrives as a bare object instead of a one-element array, and an empty
# collection arrives as null or is omitted entirely.
# =============================================================================

RIKSDAGEN_BASE_URL = "https://data.riksdagen.se"

# Attribute carrying the URL of the next page in list responses
NEXT_PAGE_MARKER = "@nasta_sida"

# HARDCODED ASSUMPTION: voteringlista ignores the page parameter, so ballots
# are fetched one report at a time with a page size well above the largest
# report (349 members x a few dozen decision points).
DEFAULT_BALLOT_PAGE_SIZE = 10000

# HARDCODED ASSUMPTION: dokumentlista serves at most 500 documents per page
DEFAULT_DOCUMENT_PAGE_SIZE = 500

# Ballot filter: the main vote on the substance of a decision point.
# Other ballots concern motivations ("motiveringen") or are
# counter-proposition rounds ("kvittning", "alternativ").
SUBSTANTIVE_SUBJECT = "sakfrågan"
MAIN_BALLOT = "huvud"

# Roles in dokintressent that identify a motion's signatories
SIGNATORY_ROLES = frozenset({"undertecknare", ""})

_TAG_PATTERN = re.compile(r"<[^>]*>")

T = TypeVar("T")


def unwrap_list(obj: list | dict | None) -> list:
    """Return a guaranteed list.

    Normalises the three shapes a collection can take in the JSON output:
      None  -> []
      dict  -> [dict]
      list  -> list (unchanged)
    """
    if obj is None:
        return []
    if isinstance(obj, dict):
        return [obj]
    return list(obj)


def _safe_int(value: Any) -> int | None:
    """Safely convert a value to int, returning None if not possible."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _parse_date(value: Any) -> date | None:
    """Parse "YYYY-MM-DD" or "YYYY-MM-DD HH:MM:SS" into a date."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def strip_html(text: str | None) -> str | None:
    """Remove markup from a decision text, returning None when nothing is left."""
    if not text:
        return None
    cleaned = html.unescape(_TAG_PATTERN.sub("", text)).strip()
    return cleaned or None


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    return _str(data, key) or None


def _require(data: dict[str, Any], key: str, kind: str) -> str:
    value = _str(data, key)
    if not value:
        raise MalformedRecord(f"{kind} record without {key}", data)
    return value


def _container(data: dict[str, Any] | None, key: str) -> dict[str, Any]:
    """Return a nested object, treating null or non-object values as empty."""
    if not data:
        return {}
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _parse_items(
    items: list[dict[str, Any]],
    parse: Callable[[dict[str, Any]], T],
) -> list[T]:
    """Parse each item, skipping malformed ones with a warning."""
    results: list[T] = []
    for item in items:
        try:
            results.append(parse(item))
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed record: {e}")
    return results


@dataclass
class MemberInfo:
    """A member of parliament from the person list."""

    intressent_id: str
    tilltalsnamn: str
    efternamn: str
    parti: str
    valkrets: str
    kon: str | None = None
    fodd_ar: int | None = None
    bild_url: str | None = None
    status: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "MemberInfo":
        """Create from a personlista.person item."""
        return cls(
            intressent_id=_require(data, "intressent_id", "person"),
            tilltalsnamn=_str(data, "tilltalsnamn") or _str(data, "förnamn"),
            efternamn=_str(data, "efternamn"),
            parti=_str(data, "parti"),
            valkrets=_str(data, "valkrets"),
            kon=_optional_str(data, "kon"),
            fodd_ar=_safe_int(data.get("fodd_ar")),
            bild_url=_optional_str(data, "bild_url_192"),
            status=_optional_str(data, "status"),
        )


@dataclass
class DocumentInfo:
    """A document from the paginated document list."""

    dok_id: str
    beteckning: str
    rm: str
    organ: str
    titel: str
    doktyp: str
    datum: date | None = None
    beslutsdag: date | None = None
    dokument_url: str | None = None

    @classmethod
    def from_api_response(
        cls,
        data: dict[str, Any],
        doc_type: str = "",
        session: str = "",
    ) -> "DocumentInfo":
        """Create from a dokumentlista.dokument item.

        Args:
            data: Raw document item.
            doc_type: Requested document kind, used when the item omits it.
            session: Requested session, used when the item omits it.
        """
        url = _optional_str(data, "dokument_url_html")
        if url and url.startswith("//"):
            url = f"https:{url}"
        return cls(
            dok_id=_require(data, "dok_id", "dokument"),
            beteckning=_str(data, "beteckning"),
            rm=_str(data, "rm") or session,
            organ=_str(data, "organ"),
            titel=_str(data, "titel"),
            doktyp=_str(data, "doktyp") or doc_type,
            datum=_parse_date(data.get("datum")),
            beslutsdag=_parse_date(data.get("beslutsdag")),
            dokument_url=url,
        )


@dataclass
class Ballot:
    """One member's ballot on one voting event."""

    votering_id: str
    intressent_id: str
    rost: VoteChoice
    dok_id: str
    beteckning: str
    punkt: int
    rm: str
    parti: str
    namn: str = ""
    avser: str = ""
    votering: str = ""

    @property
    def is_main_substantive(self) -> bool:
        """True for the main ballot on the substance of a decision point."""
        return self.avser == SUBSTANTIVE_SUBJECT and self.votering == MAIN_BALLOT

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Ballot":
        """Create from a voteringlista.votering item.

        Raises:
            MalformedRecord: If an identifier is missing or the choice is unknown.
        """
        raw_choice = _str(data, "rost")
        try:
            rost = VoteChoice(raw_choice)
        except ValueError:
            raise MalformedRecord(f"Unknown ballot choice {raw_choice!r}", data) from None

        return cls(
            votering_id=_require(data, "votering_id", "votering"),
            intressent_id=_require(data, "intressent_id", "votering"),
            rost=rost,
            dok_id=_str(data, "dok_id"),
            beteckning=_str(data, "beteckning"),
            punkt=_safe_int(data.get("punkt")) or 0,
            rm=_str(data, "rm"),
            parti=_str(data, "parti"),
            namn=_str(data, "namn"),
            avser=_str(data, "avser"),
            votering=_str(data, "votering"),
        )


@dataclass
class DecisionPoint:
    """A numbered committee proposal (utskottsförslag) inside a report."""

    punkt: int
    rubrik: str | None
    forslag: str | None
    beslutstyp: str | None
    votering_id: str | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DecisionPoint":
        """Create from a dokutskottsforslag.utskottsforslag item."""
        return cls(
            punkt=_safe_int(data.get("punkt")) or 0,
            rubrik=strip_html(data.get("rubrik")),
            forslag=strip_html(data.get("forslag")),
            beslutstyp=_optional_str(data, "beslutstyp"),
            votering_id=_optional_str(data, "votering_id"),
        )


@dataclass
class DocumentReference:
    """A reference from one document to another (dokreferens)."""

    ref_dok_id: str
    referenstyp: str | None = None
    ref_dok_typ: str | None = None
    ref_dok_beteckning: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DocumentReference":
        """Create from a dokreferens.referens item."""
        return cls(
            ref_dok_id=_require(data, "ref_dok_id", "referens"),
            referenstyp=_optional_str(data, "referenstyp"),
            ref_dok_typ=_optional_str(data, "ref_dok_typ"),
            ref_dok_beteckning=_optional_str(data, "ref_dok_beteckning"),
        )


@dataclass
class DocumentAuthor:
    """A stakeholder (intressent) attached to a document."""

    intressent_id: str | None
    namn: str
    partibet: str | None
    roll: str

    @property
    def is_signatory(self) -> bool:
        return self.roll.lower() in SIGNATORY_ROLES

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DocumentAuthor":
        """Create from a dokintressent.intressent item."""
        return cls(
            intressent_id=_optional_str(data, "intressent_id"),
            namn=_str(data, "namn"),
            partibet=_optional_str(data, "partibet"),
            roll=_str(data, "roll"),
        )

    def to_dict(self) -> dict[str, str | None]:
        return {"id": self.intressent_id, "namn": self.namn, "parti": self.partibet}


@dataclass
class DocumentStatus:
    """Detail record of a single document (dokumentstatus)."""

    dok_id: str
    doktyp: str | None
    organ: str | None
    titel: str | None
    decision_points: list[DecisionPoint] = field(default_factory=list)
    references: list[DocumentReference] = field(default_factory=list)
    authors: list[DocumentAuthor] = field(default_factory=list)

    @property
    def signatories(self) -> list[DocumentAuthor]:
        return [a for a in self.authors if a.is_signatory]

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], dok_id: str = ""
    ) -> "DocumentStatus":
        """Create from the `dokumentstatus` object of a detail response.

        Args:
            data: The `dokumentstatus` object.
            dok_id: Requested document id, used when the record omits it.
        """
        document = _container(data, "dokument")
        points = unwrap_list(
            _container(data, "dokutskottsforslag").get("utskottsforslag")
        )
        references = unwrap_list(_container(data, "dokreferens").get("referens"))
        authors = unwrap_list(_container(data, "dokintressent").get("intressent"))

        resolved_id = _str(document, "dok_id") or dok_id
        if not resolved_id:
            raise MalformedRecord("dokumentstatus record without dok_id", data)

        return cls(
            dok_id=resolved_id,
            doktyp=_optional_str(document, "doktyp"),
            organ=_optional_str(document, "organ"),
            titel=_optional_str(document, "titel"),
            decision_points=[DecisionPoint.from_api_response(p) for p in points],
            references=_parse_items(references, DocumentReference.from_api_response),
            authors=[DocumentAuthor.from_api_response(a) for a in authors],
        )


class RiksdagenClient:
    """Client for the Riksdagen open-data API.

    Holds one persistent HTTP connection pool; use as an async context
    manager or call `aclose()` when done. Every request, including retries,
    passes through the rate limiter.

    API Documentation: https://data.riksdagen.se/dokumentation/
    """

    def __init__(
        self,
        base_url: str = RIKSDAGEN_BASE_URL,
        timeout: float = 60.0,
        request_delay: float = 0.3,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        document_page_size: int = DEFAULT_DOCUMENT_PAGE_SIZE,
        ballot_page_size: int = DEFAULT_BALLOT_PAGE_SIZE,
        max_pages: int = 500,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the Riksdagen client.

        Args:
            base_url: API root.
            timeout: HTTP request timeout in seconds.
            request_delay: Minimum seconds between requests, used when no
                rate limiter is given.
            max_retries: Retries after a 5xx response or transport error.
            retry_delay: Base delay for exponential backoff, in seconds.
            document_page_size: Documents requested per list page.
            ballot_page_size: Ballots requested per report.
            max_pages: Upper bound on pages fetched by one listing.
            rate_limiter: Shared limiter (optional).
            transport: httpx transport override, e.g. `httpx.MockTransport`.
            sleep: Coroutine used for retry backoff.
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.document_page_size = document_page_size
        self.ballot_page_size = ballot_page_size
        self.max_pages = max_pages
        self.rate_limiter = rate_limiter or RateLimiter(request_delay)
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RiksdagenClient":
        return cls(
            base_url=settings.riksdagen_base_url,
            timeout=settings.request_timeout,
            request_delay=settings.request_delay,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            document_page_size=settings.document_page_size,
            ballot_page_size=settings.ballot_page_size,
            max_pages=settings.max_pages,
            **kwargs,
        )

    async def __aenter__(self) -> "RiksdagenClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request_with_retry(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response | None:
        """GET a path, retrying 5xx responses and transport errors.

        Args:
            path: Path relative to the base URL.
            params: Query parameters.

        Returns:
            The response, or None on 404.

        Raises:
            FetchFailed: On any other non-2xx status, or once retries are
                exhausted.
        """
        url = f"{self.base_url}{path}"

        for attempt in range(self.max_retries + 1):
            await self.rate_limiter.acquire()
            try:
                response = await self._client.get(path, params=params)
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)  # Exponential backoff
                    logger.warning(
                        f"Request error: {e!r}, "
                        f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await self._sleep(delay)
                    continue
                raise FetchFailed(url) from e

            if response.status_code == 404:
                return None
            if response.status_code >= 500 and attempt < self.max_retries:
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"Server error {response.status_code} for {path}, "
                    f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                )
                await self._sleep(delay)
                continue
            if not response.is_success:
                raise FetchFailed(url, response.status_code)
            return response

        raise RuntimeError("Unexpected error in retry logic")

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Fetch and decode a JSON object, returning None on 404.

        Raises:
            FetchFailed: See `_request_with_retry`.
            MalformedRecord: If the body is not a JSON object.
        """
        response = await self._request_with_retry(path, params)
        if response is None:
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedRecord(f"Invalid JSON from {path}") from e
        if not isinstance(data, dict):
            raise MalformedRecord(f"Expected a JSON object from {path}")
        return data

    async def iter_pages(
        self,
        path: str,
        params: dict[str, Any],
        container: str,
        item_key: str,
        page_param: str = "p",
        require_next_marker: bool = False,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield the items of successive pages of a list endpoint.

        Stops at the first empty page (including a 404). With
        `require_next_marker`, also stops after a page that carries no
        next-page marker. Never fetches more than `max_pages` pages.

        Args:
            path: Endpoint path.
            params: Query parameters, without the page number.
            container: Top-level object holding the list (e.g. "dokumentlista").
            item_key: Collection field inside the container (e.g. "dokument").
            page_param: Name of the 1-based page-number parameter.
            require_next_marker: Stop when `@nasta_sida` is absent.
        """
        for page in range(1, self.max_pages + 1):
            logger.debug(f"Fetching {path} page {page}")
            data = await self.get_json(path, {**params, page_param: page})
            body = _container(data, container)
            items = unwrap_list(body.get(item_key))
            if not items:
                return

            yield items

            if require_next_marker and not body.get(NEXT_PAGE_MARKER):
                return

        logger.warning(f"Stopped paging {path} after {self.max_pages} pages")

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def get_members(self) -> list[MemberInfo]:
        """Fetch the current roster of serving members.

        Returns:
            List of MemberInfo objects.
        """
        results: list[MemberInfo] = []
        pages = self.iter_pages(
            "/personlista/",
            {"rdlstatus": "tjanst", "utformat": "json"},
            container="personlista",
            item_key="person",
            require_next_marker=True,
        )
        async for items in pages:
            results.extend(_parse_items(items, MemberInfo.from_api_response))

        logger.info(f"Fetched {len(results)} members")
        return results

    async def iter_documents(
        self,
        doc_type: str,
        session: str,
    ) -> AsyncIterator[list[DocumentInfo]]:
        """Yield pages of documents of one kind in one session.

        Args:
            doc_type: Document kind (e.g. "bet", "mot", "prop").
            session: Session label (e.g. "2024/25").
        """
        params = {
            "doktyp": doc_type,
            "rm": session,
            "sz": self.document_page_size,
            "utformat": "json",
        }
        async for items in self.iter_pages(
            "/dokumentlista/", params, container="dokumentlista", item_key="dokument"
        ):
            yield _parse_items(
                items,
                lambda d: DocumentInfo.from_api_response(d, doc_type, session),
            )

    async def get_ballots(self, session: str, designation: str) -> list[Ballot]:
        """Fetch every ballot cast on one report.

        Args:
            session: Session label (e.g. "2024/25").
            designation: Report designation (beteckning, e.g. "AU10").

        Returns:
            List of Ballot objects; empty if the report had no votes.
        """
        data = await self.get_json(
            "/voteringlista/",
            {
                "rm": session,
                "bet": designation,
                "sz": self.ballot_page_size,
                "utformat": "json",
            },
        )
        items = unwrap_list(_container(data, "voteringlista").get("votering"))
        return _parse_items(items, Ballot.from_api_response)

    async def get_document_status(self, dok_id: str) -> DocumentStatus | None:
        """Fetch the detail record of one document.

        Args:
            dok_id: Document id (e.g. "HB01AU10").

        Returns:
            DocumentStatus, or None if the document is unknown.

        Raises:
            FetchFailed: On a non-404 error status.
            MalformedRecord: If the response has no dokumentstatus object.
        """
        data = await self.get_json(f"/dokumentstatus/{dok_id}.json")
        if data is None:
            return None
        status = data.get("dokumentstatus")
        if not isinstance(status, dict):
            raise MalformedRecord(f"No dokumentstatus in response for {dok_id}", data)
        return DocumentStatus.from_api_response(status, dok_id)
