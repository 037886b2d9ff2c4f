"""Decide whether a search gets another page.

Termination distinguishes between finding nothing at all (end of
results) and finding only records already seen (exhaustion, common when
bulk queries overlap); the second gets a more lenient threshold.
"""

import enum
import logging
from dataclasses import dataclass, replace
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.models import CrawlRequest, Label

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 10
MAX_EMPTY_PAGES = 3
MAX_DUPLICATE_PAGES = 10
SPECULATIVE_PAGES = 5
MAX_PAGE_INDEX = 100

OFFSET_PARAM = "start"


class Outcome(str, enum.Enum):
    CONTINUE = "continue"
    END_OF_RESULTS = "end_of_results"
    EXHAUSTED = "exhausted"
    CAP_REACHED = "cap_reached"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PaginationDecision:
    outcome: Outcome
    next_request: CrawlRequest | None = None


def next_page_url(start_url: str, page_index: int) -> str:
    """Rewrite the offset parameter of *start_url* for *page_index*."""
    parts = urlparse(start_url)
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != OFFSET_PARAM]
    params.append((OFFSET_PARAM, str(page_index * RESULTS_PER_PAGE)))
    return urlunparse(parts._replace(query=urlencode(params)))


def decide_next(
    request: CrawlRequest,
    total_found: int,
    new_records: int,
    ledger: DedupLedger,
) -> PaginationDecision:
    """Apply the pagination rules to the page *request* just produced.

    Args:
        request: the request whose page was processed.
        total_found: candidates seen on the page before dedup.
        new_records: candidates accepted after dedup.
        ledger: the run's shared ledger, consulted for the global cap.
    """
    duplicate_pages = request.consecutive_duplicate_pages
    if total_found > 0 and new_records == 0:
        duplicate_pages += 1
    elif new_records > 0:
        duplicate_pages = 0

    empty_pages = request.consecutive_empty_pages
    if total_found == 0 and request.page_index > 0:
        empty_pages += 1
        if empty_pages >= MAX_EMPTY_PAGES:
            logger.info(
                "Stopping query %s - end of results (%d consecutive empty pages).",
                request.session_key, empty_pages,
            )
            return PaginationDecision(Outcome.END_OF_RESULTS)
    elif total_found > 0:
        empty_pages = 0

    if duplicate_pages >= MAX_DUPLICATE_PAGES:
        logger.info(
            "Stopping query %s - search exhausted (%d pages with no new records).",
            request.session_key, duplicate_pages,
        )
        return PaginationDecision(Outcome.EXHAUSTED)

    if ledger.cap_reached:
        logger.info("Stopping query %s - record cap reached.", request.session_key)
        return PaginationDecision(Outcome.CAP_REACHED)

    if not (total_found > 0 or request.page_index < SPECULATIVE_PAGES):
        return PaginationDecision(Outcome.STOPPED)

    if request.page_index >= MAX_PAGE_INDEX:
        logger.info("Stopping query %s - page ceiling reached.", request.session_key)
        return PaginationDecision(Outcome.STOPPED)

    next_index = request.page_index + 1
    next_request = replace(
        request,
        url=next_page_url(request.start_url or request.url, next_index),
        label=Label.LIST,
        page_index=next_index,
        consecutive_empty_pages=empty_pages,
        consecutive_duplicate_pages=duplicate_pages,
        referer=request.url,
    )
    logger.info("Enqueued next page: %s", next_request.url)
    return PaginationDecision(Outcome.CONTINUE, next_request)
