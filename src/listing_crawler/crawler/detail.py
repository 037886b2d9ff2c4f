"""Company profile pages reached from accepted records.

Detail requests are terminal: each one yields at most one
:class:`DetailRecord` and never paginates.
"""

import logging
import re

from listing_crawler.crawler.extraction import absolute_url
from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.models import CrawlRequest, DetailRecord, FetchedPage, Label, Record

logger = logging.getLogger(__name__)

NAME_SELECTORS = ("h1", ".css-1h50q69")
INFO_SELECTOR = '[data-testid="companyInfo-section"] div, .css-1w0lcsz div'

# label text -> DetailRecord attribute; website is read from the anchor
_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("Industry", "industry"),
    ("Company size", "size"),
    ("Headquarters", "headquarters"),
    ("Revenue", "revenue"),
)


def company_slug(name: str) -> str:
    """Best-effort profile slug: whitespace runs become hyphens."""
    return re.sub(r"\s+", "-", name.strip())


def company_detail_url(base_url: str, link: str | None, company_name: str | None) -> str | None:
    """Return an absolute profile URL from *link*, else synthesise one from the name."""
    if not link and company_name and not company_name.startswith("Unknown"):
        link = f"/cmp/{company_slug(company_name)}"
    if not link:
        return None
    return absolute_url(base_url, link)


def detail_request(url: str, referer: str | None = None) -> CrawlRequest:
    return CrawlRequest(url=url, label=Label.DETAIL, session_key=f"detail-{url}", referer=referer)


def plan_detail_requests(
    records: list[Record],
    ledger: DedupLedger,
    base_url: str,
    referer: str | None = None,
) -> list[CrawlRequest]:
    """Reserve and build detail requests for the companies behind *records*."""
    requests: list[CrawlRequest] = []
    for record in records:
        url = company_detail_url(base_url, record.company_url, record.company)
        if url is None:
            logger.warning("No company link found or constructed for job: %s", record.company)
            continue
        if ledger.try_reserve_detail(url):
            logger.info("Enqueuing company details (%s): %s", record.source_kind.value, url)
            requests.append(detail_request(url, referer))
        else:
            logger.debug("Company detail already queued or over the cap: %s", url)
    return requests


def _strip_label(text: str, label: str) -> str:
    return text.replace(label, "", 1).strip()


def parse_detail_page(page: FetchedPage) -> DetailRecord:
    """Read the profile name and the labelled info fields from *page*."""
    name = ""
    for selector in NAME_SELECTORS:
        elem = page.soup.select_one(selector)
        if elem:
            name = elem.get_text(strip=True)
        if name:
            break

    detail = DetailRecord(url=page.url, name=name)

    for elem in page.soup.select(INFO_SELECTOR):
        # wrapper divs repeat their children's text
        if elem.find("div") is not None:
            continue
        text = elem.get_text(" ", strip=True)
        if "Website" in text and detail.website is None:
            anchor = elem.find("a")
            if anchor and anchor.get("href"):
                detail.website = anchor["href"]
        for label, attr in _TEXT_FIELDS:
            if label in text and getattr(detail, attr) is None:
                value = _strip_label(text, label)
                if value:
                    setattr(detail, attr, value)

    return detail
