"""pypyr step: run the crawl.

Context keys consumed:
    conn (sqlite3.Connection): from ``db_init``.
    crawl_config (CrawlConfig): from ``load_config``.

Context keys produced:
    run_summary (dict): counters and estimated cost of the run.
"""

import logging

from listing_crawler.crawler.run import run_crawl

logger = logging.getLogger(__name__)


def run_step(context: dict) -> None:
    """pypyr entry-point for the crawl step.

    Configuration errors propagate and fail the pipeline; anything else
    the crawl survives on its own.
    """
    summary = run_crawl(context["crawl_config"], context["conn"])
    context["run_summary"] = summary
    logger.info(
        "run_crawl step: %d records, %d company pages",
        summary["total_accepted"], summary["detail_count"],
    )
