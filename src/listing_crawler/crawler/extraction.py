"""Record extraction from listing pages.

Two strategies are tried in order and the first one that produces any
candidates wins:

1. **Markup** -- rendered result cards (``.job_seen_beacon``).
2. **Data blob** -- the job-card JSON the site embeds in inline scripts
   for its client-side renderer.  Pages served to suspected bots often
   carry only this payload, so it is the fallback when no cards render.

Strategies are pure parsers returning candidate :class:`Record` objects;
dedup and the global cap are applied afterwards by :func:`extract_page`
through the shared :class:`~listing_crawler.crawler.ledger.DedupLedger`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urljoin, urlparse

from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.errors import StealthEmptyError
from listing_crawler.models import CrawlRequest, FetchedPage, Record, SourceKind

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_LOCATION = "Unknown Location"


class ExtractionStrategy(Protocol):
    name: str

    def extract(
        self, page: FetchedPage, request: CrawlRequest, base_url: str
    ) -> list[Record] | None:
        """Return candidate records, or ``None`` when the page has none."""
        ...


def absolute_url(base_url: str, link: str) -> str:
    if link.startswith("http"):
        return link
    return urljoin(base_url + "/", link)


def key_from_link(link: str) -> str:
    """Return the ``jk`` identifier embedded in *link*, else the link itself."""
    values = parse_qs(urlparse(link).query).get("jk")
    if values and values[0]:
        return values[0]
    return link


def _query_fields(request: CrawlRequest) -> dict:
    if request.query is None:
        return {}
    return {"query": request.query.term, "location_hint": request.query.location}


# ----------------------------------------------------------------------
# Markup strategy
# ----------------------------------------------------------------------

class MarkupStrategy:
    """Parse the rendered result cards."""

    name = "markup"

    CARD_SELECTOR = ".job_seen_beacon"
    LINK_SELECTOR = "h2.jobTitle a"
    TITLE_SELECTORS = (".jobTitle span[title]", ".jobTitle")
    COMPANY_SELECTOR = '[data-testid="company-name"]'
    LOCATION_SELECTOR = '[data-testid="text-location"]'
    SALARY_SELECTOR = ".salary-snippet-container"
    COMPANY_LINK_SELECTORS = (
        '[data-testid="company-name"] a, a[data-testid="company-name"]',
        ".companyName a",
    )

    def extract(self, page, request, base_url):
        cards = page.soup.select(self.CARD_SELECTOR)
        logger.info("Found %d job elements via HTML.", len(cards))
        if not cards:
            return None

        records: list[Record] = []
        for card in cards:
            try:
                record = self._parse_card(card, request, base_url)
            except Exception:
                logger.exception("Extraction error on a result card")
                continue
            if record is not None:
                records.append(record)
        return records or None

    def _parse_card(self, card, request: CrawlRequest, base_url: str) -> Record | None:
        link_elem = card.select_one(self.LINK_SELECTOR)
        raw_link = link_elem.get("href", "") if link_elem else ""
        if not raw_link:
            return None

        link = absolute_url(base_url, raw_link)

        title = ""
        for selector in self.TITLE_SELECTORS:
            elem = card.select_one(selector)
            if elem:
                title = elem.get_text(strip=True)
            if title:
                break

        company_elem = card.select_one(self.COMPANY_SELECTOR)
        company = company_elem.get_text(strip=True) if company_elem else ""

        location_elem = card.select_one(self.LOCATION_SELECTOR)
        location = location_elem.get_text(strip=True) if location_elem else ""

        salary_elem = card.select_one(self.SALARY_SELECTOR)
        salary = salary_elem.get_text(strip=True) if salary_elem else ""

        company_url = None
        for selector in self.COMPANY_LINK_SELECTORS:
            elem = card.select_one(selector)
            if elem and elem.get("href"):
                company_url = absolute_url(base_url, elem["href"])
                break

        return Record(
            key=key_from_link(link),
            title=title or UNKNOWN_TITLE,
            company=company or UNKNOWN_COMPANY,
            location=location,
            salary=salary or None,
            link=link,
            page_index=request.page_index,
            source_kind=SourceKind.MARKUP,
            company_url=company_url,
            **_query_fields(request),
        )


# ----------------------------------------------------------------------
# Data blob strategy
# ----------------------------------------------------------------------

class DataBlobStrategy:
    """Recover job cards from the JSON embedded in inline scripts."""

    name = "data_blob"

    MARKERS = (
        'window.mosaic.providerData["mosaic-provider-jobcards"]',
        "window._initialData",
        "mosaic.providerData",
        "window.initialData",
        "_initialData",
    )

    # The payload shape differs between the desktop, mobile and
    # regional renderers.
    RESULT_PATHS = (
        ("metaData", "mosaicProviderJobCardsModel", "results"),
        ("jobCards",),
        ("results",),
        ("props", "pageProps", "initialData", "jobCards"),
    )

    KEY_ALIASES = ("jobkey", "jk", "jobKey")
    MIN_SCRIPT_LENGTH = 10

    def extract(self, page, request, base_url):
        logger.info("Executing deep JSON extraction...")
        for marker, payload in self._payloads(page):
            entries = self.find_results(payload)
            if not entries:
                continue
            logger.info("Extracted %d jobs from %s JSON.", len(entries), marker)
            records = []
            for entry in entries:
                try:
                    record = self._entry_to_record(entry, request, base_url)
                except Exception:
                    logger.exception("Skipping malformed JSON job card")
                    continue
                if record is not None:
                    records.append(record)
            if records:
                return records
        return None

    def _payloads(self, page: FetchedPage):
        """Yield ``(marker, parsed_json)`` for every decodable payload."""
        decoder = json.JSONDecoder()
        for script in page.soup.find_all("script"):
            text = script.string or script.get_text() or ""
            if len(text) < self.MIN_SCRIPT_LENGTH:
                continue
            for marker in self.MARKERS:
                idx = text.find(marker)
                if idx == -1:
                    continue
                start = text.find("{", idx + len(marker))
                if start == -1:
                    continue
                try:
                    payload, _ = decoder.raw_decode(text, start)
                except ValueError:
                    logger.debug("Payload after %s is not valid JSON", marker)
                    continue
                logger.info("Found candidate script source: %s", marker)
                yield marker, payload
                break

    @classmethod
    def find_results(cls, payload: Any) -> list[dict]:
        """Return the first non-empty results list found under a known path."""
        if not isinstance(payload, dict):
            return []
        for path in cls.RESULT_PATHS:
            node: Any = payload
            for part in path:
                if not isinstance(node, dict):
                    node = None
                    break
                node = node.get(part)
            if isinstance(node, list) and node:
                return [entry for entry in node if isinstance(entry, dict)]
        return []

    def _entry_to_record(self, entry: dict, request: CrawlRequest, base_url: str) -> Record | None:
        key = next((entry[a] for a in self.KEY_ALIASES if entry.get(a)), None)
        if not key:
            logger.debug("JSON job card without a key: %s", sorted(entry)[:10])
            return None
        key = str(key)

        company = entry.get("company") or entry.get("companyName")
        if isinstance(company, dict):
            company = company.get("name")

        rating = _number(entry.get("companyRating"))
        reviews = _number(entry.get("companyReviewCount"))

        return Record(
            key=key,
            title=_text(entry.get("title")) or _text(entry.get("displayTitle")) or UNKNOWN_TITLE,
            company=_text(company) or UNKNOWN_COMPANY,
            location=(
                _text(entry.get("formattedLocation"))
                or _text(entry.get("location"))
                or UNKNOWN_LOCATION
            ),
            salary=_salary_text(entry),
            link=f"{base_url}/viewjob?jk={key}",
            page_index=request.page_index,
            source_kind=SourceKind.DATA_BLOB,
            company_url=_company_link(entry, base_url),
            company_rating=rating or None,
            company_review_count=int(reviews) if reviews else None,
            **_query_fields(request),
        )


def _text(value: Any) -> str | None:
    """Flatten a blob field to text.

    Renderers disagree on shapes: a location may be a plain string or an
    object such as ``{"city": ..., "state": ...}``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    if isinstance(value, dict):
        parts = [_text(v) for v in value.values() if isinstance(v, (str, int, float))]
        return ", ".join(p for p in parts if p) or None
    return None


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return None


def _salary_text(entry: dict) -> str | None:
    salary = entry.get("estimatedSalary")
    if isinstance(salary, dict):
        salary = salary.get("formattedRange") or salary.get("text")
    if not salary:
        snippet = entry.get("salarySnippet")
        if isinstance(snippet, dict):
            salary = snippet.get("text")
    return _text(salary)


def _company_link(entry: dict, base_url: str) -> str | None:
    link = _text(entry.get("companyOverviewLink")) or _text(entry.get("companyRelativeUrl"))
    if not link and isinstance(entry.get("company"), dict):
        link = _text(entry["company"].get("overviewUrl"))
    return absolute_url(base_url, link) if link else None


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (MarkupStrategy(), DataBlobStrategy())


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

@dataclass
class PageResult:
    """What one listing page contributed."""

    records: list[Record] = field(default_factory=list)
    total_found: int = 0
    strategy: str | None = None

    @property
    def new_count(self) -> int:
        return len(self.records)

    @property
    def skipped(self) -> int:
        return self.total_found - self.new_count


def extract_candidates(
    page: FetchedPage,
    request: CrawlRequest,
    base_url: str,
    strategies=DEFAULT_STRATEGIES,
) -> tuple[str | None, list[Record]]:
    """Run *strategies* in order; return the first non-empty result."""
    for strategy in strategies:
        candidates = strategy.extract(page, request, base_url)
        if candidates:
            logger.info(
                "Strategy %s matched %d candidates on page %d",
                strategy.name, len(candidates), request.page_number,
            )
            return strategy.name, candidates
        logger.debug("Strategy %s found nothing on page %d", strategy.name, request.page_number)
    return None, []


def accept_candidates(candidates: list[Record], ledger: DedupLedger) -> list[Record]:
    """Keep candidates whose keys the ledger accepts, stopping at the cap."""
    accepted: list[Record] = []
    for candidate in candidates:
        if ledger.try_accept(candidate.key):
            accepted.append(candidate)
        elif ledger.cap_reached:
            logger.info("Record cap reached mid-page; stopping extraction")
            break
    return accepted


def extract_page(
    page: FetchedPage,
    request: CrawlRequest,
    ledger: DedupLedger,
    base_url: str,
    strategies=DEFAULT_STRATEGIES,
) -> PageResult:
    """Extract, dedup and count the records on a READY listing page.

    Raises:
        StealthEmptyError: when no strategy finds anything on a page after
            the first, which is how silent blocking presents.
    """
    strategy, candidates = extract_candidates(page, request, base_url, strategies)

    if not candidates and request.page_index > 0:
        logger.warning(
            "Stealth block on page %d: no cards in HTML or JSON (session %s)",
            request.page_number, request.session_key,
        )
        raise StealthEmptyError(f"Stealth block (no data) on page {request.page_number}")

    records = accept_candidates(candidates, ledger)
    result = PageResult(records=records, total_found=len(candidates), strategy=strategy)

    if result.total_found:
        logger.info(
            "Page %d: Found %d jobs. %d new, %d already seen.",
            request.page_number, result.total_found, result.new_count, result.skipped,
        )
    return result
