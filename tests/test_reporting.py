"""Tests for run summaries, cost estimates and the page-wise breakdown."""

import pathlib
from collections import Counter

import pytest

from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.crawler.orchestrator import RunStats
from listing_crawler.reporting.summary import (
    estimate_cost,
    format_summary,
    group_by_page,
    render_page_breakdown,
    summarise_run,
)


def _rec(title: str, page_number, **extra) -> dict:
    return {
        "title": title,
        "company": "Acme Corp",
        "location": "Remote",
        "page_number": page_number,
        **extra,
    }


# ---------------------------------------------------------------------------
# Cost and summary
# ---------------------------------------------------------------------------

class TestEstimateCost:

    def test_unit_prices(self):
        cost = estimate_cost(1000, 200)
        assert cost["records"] == pytest.approx(1.0)
        assert cost["details"] == pytest.approx(1.0)
        assert cost["total"] == pytest.approx(2.0)

    def test_zero(self):
        assert estimate_cost(0, 0)["total"] == 0


class TestSummariseRun:

    def test_fields(self):
        ledger = DedupLedger(seen_keys=["old"], max_items=2)
        ledger.try_accept("a")
        ledger.try_accept("b")
        ledger.try_count_detail()
        stats = RunStats(
            processed=7, dropped=1, skipped=2, retired_sessions=3, failed_writes=1,
            outcomes=Counter({"cap_reached": 1, "continue": 3}),
            strategies=Counter({"markup": 4}),
        )

        summary = summarise_run(stats, ledger)

        assert summary["total_accepted"] == 2
        assert summary["cap_reached"] is True
        assert summary["detail_count"] == 1
        assert summary["seen_keys"] == 3
        assert summary["carried_over_keys"] == 1
        assert summary["requests_processed"] == 7
        assert summary["dropped_requests"] == 1
        assert summary["skipped_requests"] == 2
        assert summary["retired_sessions"] == 3
        assert summary["failed_writes"] == 1
        assert summary["outcomes"] == {"cap_reached": 1, "continue": 3}
        assert summary["strategies"] == {"markup": 4}
        assert summary["estimated_cost"] == pytest.approx(0.007)


class TestFormatSummary:

    def test_lines(self):
        lines = format_summary(
            {"total_accepted": 5, "max_items": 10, "estimated_cost": 0.005,
             "outcomes": {"end_of_results": 2}},
            total_records=12,
        )
        text = "\n".join(lines)
        assert "5 / 10" in text
        assert "Records in database    : 12" in text
        assert "$0.0050" in text
        assert "end_of_results" in text

    def test_empty_summary(self):
        text = "\n".join(format_summary({}, 0))
        assert "Pagination outcomes" not in text


# ---------------------------------------------------------------------------
# Page-wise breakdown
# ---------------------------------------------------------------------------

class TestGroupByPage:

    def test_numeric_order_and_missing_last(self):
        records = [_rec("a", 10), _rec("b", 2), _rec("c", None), _rec("d", 2)]
        groups = group_by_page(records)

        assert [page for page, _ in groups] == ["2", "10", "No Page Info"]
        assert [r["title"] for r in groups[0][1]] == ["b", "d"]


class TestTemplateRenders:

    def test_template_file_exists(self):
        import listing_crawler.reporting.summary as summary_module

        path = pathlib.Path(summary_module.__file__).parent / "templates" / "page_breakdown.txt.j2"
        assert path.exists()

    def test_breakdown(self):
        text = render_page_breakdown([
            _rec("Python Developer", 1, salary="$100k"),
            _rec("Go Developer", 1),
            _rec("Rust Developer", 2, company_rating=4.2),
        ])

        assert "PAGE-WISE BREAKDOWN" in text
        assert "PAGE 1 - 2 jobs" in text
        assert "PAGE 2 - 1 jobs" in text
        assert "1. Python Developer" in text
        assert "Salary: $100k" in text
        assert "Rating: 4.2" in text
        assert "TOTAL: 3 jobs across 2 pages" in text

    def test_single_page_wording(self):
        text = render_page_breakdown([_rec("Only", 1)])
        assert "TOTAL: 1 jobs across 1 page\n" in text
