"""pypyr step: open the crawl database.

Resolves the database path (context, then ``LISTING_CRAWLER_DB``, then
``./data/listing_crawler.db``), applies ``schema.sql`` and reports what
earlier runs left behind: stored records and the size of the seen-key
snapshot the next crawl will dedup against.

Context keys consumed:
    db_path (str, optional)

Context keys produced:
    conn (sqlite3.Connection): shared by every later step.
    db_path (str): the path actually opened.
    stored_records (int), known_keys (int)
"""

import logging
import os
import pathlib

from listing_crawler.crawler.ledger import load_seen_keys
from listing_crawler.db.manager import get_connection, get_record_count, init_db

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join("data", "listing_crawler.db")


def run_step(context: dict) -> None:
    db_path: str = (
        context.get("db_path")
        or os.environ.get("LISTING_CRAWLER_DB")
        or DEFAULT_DB_PATH
    )
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection(db_path)
    init_db(conn)

    context["conn"] = conn
    context["db_path"] = db_path
    context["stored_records"] = get_record_count(conn)
    context["known_keys"] = len(load_seen_keys(conn))

    logger.info(
        "Opened %s: %d stored records, %d known record keys",
        db_path, context["stored_records"], context["known_keys"],
    )
