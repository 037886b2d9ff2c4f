"""pypyr step: show_summary

Prints the run summary (records, company pages, pagination outcomes,
estimated cost) and closes the database connection.
"""

from __future__ import annotations

import logging

from listing_crawler.db.manager import get_record_count
from listing_crawler.reporting.summary import format_summary

logger = logging.getLogger(__name__)


def run_step(context: dict) -> None:
    """Print a summary of the crawl and close the DB connection.

    Expects the following keys in *context*:
        conn        -- open sqlite3 connection
        run_summary -- (optional) summary dict from ``run_crawl``
    """
    conn = context.get("conn")
    if conn is None:
        logger.warning("show_summary: no database connection in context")
        return

    try:
        total = get_record_count(conn)
        for line in format_summary(context.get("run_summary") or {}, total):
            print(line)
    except Exception as exc:
        logger.error("show_summary failed: %s", exc)
    finally:
        conn.close()
        logger.info("Database connection closed by show_summary step.")
