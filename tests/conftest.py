"""Shared pytest fixtures for the listing-crawler test suite.

Provides:
    conn         -- in-memory SQLite connection with full schema applied
    make_request -- factory for listing CrawlRequests
    FakeFetcher  -- SessionFetcher whose network call is a page function

and plain helpers that build synthetic listing pages (result cards and
embedded job-card JSON).  No test touches the network.
"""

import json
import threading
from urllib.parse import parse_qs, urlparse

import pytest

from listing_crawler.crawler.expander import build_search_url
from listing_crawler.crawler.fetcher import SessionFetcher
from listing_crawler.db.manager import get_connection, init_db
from listing_crawler.models import CrawlRequest, FetchedPage, Label, Query

BASE_URL = "https://indeed.com"
JOBCARDS_MARKER = 'window.mosaic.providerData["mosaic-provider-jobcards"]'


# ---------------------------------------------------------------------------
# Page builders
# ---------------------------------------------------------------------------

def card_html(
    jk: str,
    title: str = "Python Developer",
    company: str = "Acme Corp",
    location: str = "Remote",
    salary: str | None = None,
    company_href: str | None = None,
) -> str:
    """Build one rendered result card."""
    company_inner = f'<a href="{company_href}">{company}</a>' if company_href else company
    salary_html = (
        f'<div class="salary-snippet-container">{salary}</div>' if salary else ""
    )
    return f"""
    <div class="job_seen_beacon">
      <h2 class="jobTitle">
        <a href="/rc/clk?jk={jk}&amp;fccid=f00"><span title="{title}">{title}</span></a>
      </h2>
      <span data-testid="company-name">{company_inner}</span>
      <div data-testid="text-location">{location}</div>
      {salary_html}
    </div>
    """


def listing_html(cards: list[str], title: str = "Python Jobs, Employment", head: str = "") -> str:
    return (
        f"<html><head><title>{title}</title>{head}</head>"
        f"<body><div id=\"mosaic-jobResults\">{''.join(cards)}</div></body></html>"
    )


def blob_entry(jk: str, **fields) -> dict:
    entry = {
        "jobkey": jk,
        "title": f"Data Engineer {jk}",
        "company": "Blob Industries",
        "formattedLocation": "Austin, TX",
    }
    entry.update(fields)
    return entry


def blob_html(entries: list[dict], marker: str = JOBCARDS_MARKER, payload: dict | None = None) -> str:
    """A page with no rendered cards, only the embedded job-card JSON."""
    if payload is None:
        payload = {"metaData": {"mosaicProviderJobCardsModel": {"results": entries}}}
    script = f"<script>{marker}={json.dumps(payload)};</script>"
    return listing_html([], head=script)


def blank_html() -> str:
    """Renders fine, carries nothing: no cards, no payload, no markers."""
    return "<html><head><title>Jobs</title></head><body><p>Loading</p></body></html>"


def no_results_html() -> str:
    return (
        "<html><head><title>Jobs</title></head><body>"
        "<p>The search <b>python</b> did not match any jobs.</p></body></html>"
    )


def blocked_html() -> str:
    return (
        "<html><head><title>Just a moment...</title></head>"
        "<body><p>Checking your browser</p></body></html>"
    )


def url_params(url: str) -> tuple[str, str, int]:
    """Return ``(term, location, page_index)`` from a search URL."""
    qs = parse_qs(urlparse(url).query)
    start = int(qs.get("start", ["0"])[0])
    return qs.get("q", [""])[0], qs.get("l", [""])[0], start // 10


def page(html: str, url: str = f"{BASE_URL}/jobs?q=python") -> FetchedPage:
    return FetchedPage(url=url, html=html)


# ---------------------------------------------------------------------------
# Fake fetch collaborator
# ---------------------------------------------------------------------------

class FakeFetcher(SessionFetcher):
    """SessionFetcher with the network swapped for ``pages(request)``.

    ``pages`` returns HTML, a :class:`FetchedPage`, or an exception
    instance to raise.  Retry and retirement logic is the real one.
    """

    def __init__(self, pages, max_retries: int = 2, **kwargs) -> None:
        super().__init__(max_retries=max_retries, sleep=lambda _s: None, **kwargs)
        self.pages = pages
        self.calls: list[CrawlRequest] = []
        self.retired: list[str] = []
        self._calls_lock = threading.Lock()

    def fetch(self, request):
        with self._calls_lock:
            self.calls.append(request)
        result = self.pages(request)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, FetchedPage):
            return result
        return FetchedPage(url=request.url, html=result)

    def retire(self, key):
        with self._calls_lock:
            self.retired.append(key)
        super().retire(key)

    def calls_for(self, term: str) -> list[int]:
        """Page indexes fetched for search *term*, in fetch order."""
        return [
            url_params(r.url)[2]
            for r in self.calls
            if r.label is not Label.DETAIL and url_params(r.url)[0] == term
        ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn():
    """Yield an initialised in-memory database connection."""
    connection = get_connection(":memory:")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def make_request():
    """Factory for listing requests of a search."""

    def _make(
        term: str = "python",
        location: str = "",
        page_index: int = 0,
        **overrides,
    ) -> CrawlRequest:
        query = Query(term, location)
        start_url = build_search_url(BASE_URL, term, location)
        url = start_url if page_index == 0 else build_search_url(
            BASE_URL, term, location, start=page_index * 10
        )
        fields = dict(
            url=url,
            label=Label.START if page_index == 0 else Label.LIST,
            page_index=page_index,
            session_key=query.session_key,
            query=query,
            start_url=start_url,
        )
        fields.update(overrides)
        return CrawlRequest(**fields)

    return _make
