"""One complete crawl run: load state, crawl, persist.

Shared by the ``crawl`` CLI command and the ``run_crawl`` pipeline step.
"""

import logging
import sqlite3

from listing_crawler.config import CrawlConfig
from listing_crawler.crawler.expander import expand_queries
from listing_crawler.crawler.fetcher import SessionFetcher
from listing_crawler.crawler.ledger import DedupLedger, load_seen_keys, save_seen_keys
from listing_crawler.crawler.orchestrator import Crawler, RunStats
from listing_crawler.db.manager import finish_run, start_run
from listing_crawler.db.sink import SqliteSink
from listing_crawler.reporting.summary import summarise_run

logger = logging.getLogger(__name__)


def build_fetcher(config: CrawlConfig) -> SessionFetcher:
    return SessionFetcher(
        proxy_urls=config.proxy_urls,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )


def run_crawl(
    config: CrawlConfig,
    conn: sqlite3.Connection,
    fetcher: SessionFetcher | None = None,
) -> dict:
    """Crawl everything *config* asks for and return the run summary.

    Seeds are built before anything is touched, so a configuration that
    describes no work fails with :class:`~listing_crawler.errors.ConfigError`
    without starting a run.  Once the crawl starts, the ledger snapshot
    and the run summary are persisted even if the crawl itself fails.
    """
    seeds = expand_queries(config)

    ledger = DedupLedger(
        load_seen_keys(conn, reset=config.reset_seen_keys),
        max_items=config.max_items,
        max_detail_pages=config.max_company_pages,
    )
    logger.info(
        "Starting crawl (%s): max_items=%d, max_concurrency=%d, proxies=%d, %d known keys",
        config.country, config.max_items, config.max_concurrency,
        len(config.proxy_urls), len(ledger),
    )

    run_id = start_run(conn, config.country, config.max_items)
    sink = SqliteSink(conn, run_id)
    owns_fetcher = fetcher is None
    fetcher = fetcher or build_fetcher(config)
    crawler = Crawler.from_config(config, fetcher, ledger, sink)

    stats = RunStats()
    try:
        stats = crawler.run(seeds)
    finally:
        if owns_fetcher:
            fetcher.close()
        save_seen_keys(conn, ledger)
        summary = summarise_run(stats, ledger)
        summary["run_id"] = run_id
        finish_run(conn, run_id, summary)

    return summary
