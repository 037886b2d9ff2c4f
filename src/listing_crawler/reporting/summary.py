"""Run summary, cost estimate and the page-wise breakdown report.

The breakdown is rendered from the Jinja2 template at
``templates/page_breakdown.txt.j2``; it groups records by the result page
they came from, which makes pagination problems (a run that never got
past page 1, a query that stalled on page 3) easy to spot.
"""

import logging
import pathlib
from collections import defaultdict

from jinja2 import Environment, FileSystemLoader

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = pathlib.Path(__file__).parent / "templates"

PRICE_PER_RECORD = 0.001   # $1 per 1000 records
PRICE_PER_DETAIL = 0.005   # $5 per 1000 company pages

NO_PAGE = "No Page Info"


def estimate_cost(record_count: int, detail_count: int) -> dict:
    """Return the estimated unit cost of a run, split by output stream."""
    records_cost = record_count * PRICE_PER_RECORD
    details_cost = detail_count * PRICE_PER_DETAIL
    return {
        "records": round(records_cost, 4),
        "details": round(details_cost, 4),
        "total": round(records_cost + details_cost, 4),
    }


def summarise_run(stats, ledger) -> dict:
    """Flatten run statistics and ledger counters into one summary dict.

    Args:
        stats: the :class:`~listing_crawler.crawler.orchestrator.RunStats`.
        ledger: the run's :class:`~listing_crawler.crawler.ledger.DedupLedger`.
    """
    cost = estimate_cost(ledger.total_accepted, ledger.scraped_detail_count)
    summary = {
        "total_accepted": ledger.total_accepted,
        "max_items": ledger.max_items,
        "cap_reached": ledger.cap_reached,
        "detail_count": ledger.scraped_detail_count,
        "seen_keys": len(ledger),
        "carried_over_keys": ledger.carried_over,
        "requests_processed": stats.processed,
        "dropped_requests": stats.dropped,
        "skipped_requests": stats.skipped,
        "retired_sessions": stats.retired_sessions,
        "failed_writes": stats.failed_writes,
        "outcomes": dict(stats.outcomes),
        "strategies": dict(stats.strategies),
        "estimated_cost": cost["total"],
        "cost_breakdown": cost,
    }
    logger.info(
        "Estimated run cost: $%.4f USD (records: $%.4f + companies: $%.4f)",
        cost["total"], cost["records"], cost["details"],
    )
    return summary


def group_by_page(records: list[dict]) -> list[tuple[str, list[dict]]]:
    """Group record dicts by ``page_number``; unnumbered records sort last."""
    by_page: dict = defaultdict(list)
    for record in records:
        by_page[record.get("page_number") or NO_PAGE].append(record)

    def sort_key(page):
        return (1, 0) if page == NO_PAGE else (0, int(page))

    return [(str(page), by_page[page]) for page in sorted(by_page, key=sort_key)]


def render_page_breakdown(records: list[dict]) -> str:
    """Render the page-wise breakdown of *records* as plain text."""
    pages = group_by_page(records)
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template("page_breakdown.txt.j2")
    return template.render(pages=pages, total=len(records), page_count=len(pages))


def format_summary(summary: dict, total_records: int) -> list[str]:
    """Return the printable lines of a run summary."""
    separator = "-" * 55
    lines = [
        separator,
        f"  Records this run       : {summary.get('total_accepted', 0)}"
        f" / {summary.get('max_items', 0)}",
        f"  Company pages scraped  : {summary.get('detail_count', 0)}",
        f"  Dropped requests       : {summary.get('dropped_requests', 0)}",
        f"  Retired sessions       : {summary.get('retired_sessions', 0)}",
        f"  Records in database    : {total_records}",
        f"  Estimated cost (USD)   : ${summary.get('estimated_cost', 0.0):.4f}",
        separator,
    ]
    outcomes = summary.get("outcomes") or {}
    if outcomes:
        lines.append("  Pagination outcomes:")
        for outcome, count in sorted(outcomes.items()):
            lines.append(f"    {outcome:<22} {count:>6}")
        lines.append(separator)
    return lines
