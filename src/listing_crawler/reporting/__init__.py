"""Reporting sub-package for the listing-crawler project.

- ``summarise_run`` -- counters and estimated cost of a finished run.
- ``render_page_breakdown`` -- page-wise text report of stored records.

Usage::

    from listing_crawler.reporting import render_page_breakdown

    print(render_page_breakdown(get_records(conn)))
"""

from listing_crawler.reporting.summary import (
    estimate_cost,
    format_summary,
    render_page_breakdown,
    summarise_run,
)

__all__ = [
    "estimate_cost",
    "format_summary",
    "render_page_breakdown",
    "summarise_run",
]
