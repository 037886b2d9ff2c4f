"""Crawler sub-package -- crawl orchestration and termination policy.

Public API
----------
- :class:`Crawler` -- worker-pool run orchestrator
- :class:`DedupLedger` -- thread-safe dedup keys and run caps
- :class:`SessionFetcher` -- session-affine HTTP fetcher with retries
- :func:`expand_queries` -- seed requests from a run configuration
"""

from listing_crawler.crawler.expander import expand_queries
from listing_crawler.crawler.fetcher import SessionFetcher
from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.crawler.orchestrator import Crawler, RunStats

__all__ = [
    "Crawler",
    "DedupLedger",
    "RunStats",
    "SessionFetcher",
    "expand_queries",
]
