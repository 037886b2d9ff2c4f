"""Value types shared by every crawler component.

Requests are frozen: the pagination controller derives the next page's
request with :func:`dataclasses.replace` instead of mutating the current
one, so the counters that drive termination travel with the request.
"""

from __future__ import annotations

import datetime
import enum
from dataclasses import asdict, dataclass, field

from bs4 import BeautifulSoup


class Label(str, enum.Enum):
    START = "start"
    LIST = "list"
    DETAIL = "detail"


class SourceKind(str, enum.Enum):
    MARKUP = "markup"
    DATA_BLOB = "data_blob"


class PageClass(str, enum.Enum):
    BLOCKED = "blocked"
    EMPTY = "empty"
    READY = "ready"


def _utcnow() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass(frozen=True)
class Query:
    """A search term and an optional location hint."""

    term: str
    location: str = ""

    @property
    def session_key(self) -> str:
        return f"search-{self.term}-{self.location}"


@dataclass(frozen=True)
class CrawlRequest:
    """One unit of work for the fetcher.

    ``start_url`` is the page-0 URL of the search; later pages are built
    by rewriting its pagination offset.  ``session_key`` groups every page
    of one search under one fetch identity.
    """

    url: str
    label: Label = Label.START
    page_index: int = 0
    session_key: str | None = None
    query: Query | None = None
    start_url: str | None = None
    consecutive_empty_pages: int = 0
    consecutive_duplicate_pages: int = 0
    referer: str | None = None

    @property
    def page_number(self) -> int:
        return self.page_index + 1


@dataclass
class Record:
    """A single search result extracted from a listing page."""

    key: str
    title: str
    company: str
    location: str
    link: str
    page_index: int
    source_kind: SourceKind
    salary: str | None = None
    extracted_at: str = field(default_factory=_utcnow)
    company_url: str | None = None
    company_rating: float | None = None
    company_review_count: int | None = None
    query: str | None = None
    location_hint: str | None = None

    @property
    def page_number(self) -> int:
        return self.page_index + 1

    def to_dict(self) -> dict:
        row = asdict(self)
        row["source_kind"] = self.source_kind.value
        row["page_number"] = self.page_number
        return row


@dataclass
class DetailRecord:
    """Organisation profile fields scraped from a company detail page."""

    url: str
    name: str = ""
    website: str | None = None
    industry: str | None = None
    size: str | None = None
    headquarters: str | None = None
    revenue: str | None = None
    scraped_at: str = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FetchedPage:
    """A fetched and parsed page: the document handed to classifier and extractors."""

    url: str
    html: str
    status: int = 200
    soup: BeautifulSoup | None = None

    def __post_init__(self) -> None:
        if self.soup is None:
            self.soup = BeautifulSoup(self.html, "html.parser")

    @property
    def title(self) -> str:
        tag = self.soup.find("title")
        return tag.get_text(strip=True) if tag else ""

    @property
    def body_text(self) -> str:
        body = self.soup.body or self.soup
        return body.get_text(" ")
