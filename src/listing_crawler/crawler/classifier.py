"""Classify a fetched listing page as blocked, empty or ready.

Blocking is detected from text markers rather than status codes: the
listing site serves challenge pages and sign-in walls with a 200.
"""

import logging

from listing_crawler.errors import BlockedError
from listing_crawler.models import CrawlRequest, FetchedPage, PageClass

logger = logging.getLogger(__name__)

BODY_BLOCK_MARKERS: tuple[str, ...] = (
    "create an account or sign in",
    "To see more than one page of jobs",
    "Access to this page has been denied",
    "while we verify",
    "pgid=auth",
    "pgid=captcha",
)

TITLE_BLOCK_MARKERS: tuple[str, ...] = (
    "Human Verification",
    "Just a moment",
)

URL_BLOCK_PATTERNS: tuple[str, ...] = (
    "common/error",
    "/captcha",
)

NO_RESULTS_MARKERS: tuple[str, ...] = (
    "did not match any jobs",
    "try different keywords",
)

NO_RESULTS_SELECTOR = ".no_results_yield"


def block_reason(page: FetchedPage) -> str | None:
    """Return the first block marker found on *page*, or ``None``."""
    body = page.body_text
    for marker in BODY_BLOCK_MARKERS:
        if marker in body:
            return marker

    title = page.title
    for marker in TITLE_BLOCK_MARKERS:
        if marker in title:
            return marker

    for pattern in URL_BLOCK_PATTERNS:
        if pattern in page.url:
            return pattern

    return None


def is_no_results(page: FetchedPage) -> bool:
    body = page.body_text
    if any(marker in body for marker in NO_RESULTS_MARKERS):
        return True
    return page.soup.select_one(NO_RESULTS_SELECTOR) is not None


def classify_page(page: FetchedPage) -> PageClass:
    """Classify *page*; blocking takes precedence over emptiness."""
    if block_reason(page) is not None:
        return PageClass.BLOCKED
    if is_no_results(page):
        return PageClass.EMPTY
    return PageClass.READY


def ensure_not_blocked(page: FetchedPage, request: CrawlRequest) -> PageClass:
    """Classify *page* and raise :class:`BlockedError` when it is a wall.

    Returns the page class otherwise, so callers can branch on EMPTY.
    """
    reason = block_reason(page)
    if reason is not None:
        logger.warning(
            "Block detected on page %d (%r, title=%r). Retiring session %s",
            request.page_number, reason, page.title, request.session_key,
        )
        raise BlockedError(f"Blocked on page {request.page_number}: {reason}")

    page_class = PageClass.EMPTY if is_no_results(page) else PageClass.READY
    if page_class is PageClass.EMPTY:
        logger.info("No results on page %d of %s", request.page_number, request.url)
    return page_class
