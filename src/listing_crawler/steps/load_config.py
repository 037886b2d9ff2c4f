"""pypyr step: build the crawl configuration.

Context keys consumed:
    input_path (str, optional): JSON input file.
    crawl (dict, optional): overrides keyed by ``CrawlConfig`` attribute,
        e.g. ``{"position": "data engineer", "max_items": 200}``.

Context keys produced:
    crawl_config (CrawlConfig)
"""

import logging

from listing_crawler.config import load_config

logger = logging.getLogger(__name__)


def run_step(context: dict) -> None:
    overrides: dict = dict(context.get("crawl") or {})
    config = load_config(context.get("input_path"), **overrides)
    context["crawl_config"] = config
    logger.info(
        "load_config step: %d queries, %d start URLs, country=%s",
        len(config.queries()), len(config.start_urls), config.country,
    )
