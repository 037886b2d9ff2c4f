"""Tests for the listing-crawler Click CLI."""

import json
from unittest.mock import patch

from click.testing import CliRunner

from listing_crawler.cli import main
from listing_crawler.crawler.ledger import SEEN_KEYS_KV
from listing_crawler.db.manager import (
    append_records,
    get_connection,
    init_db,
    kv_get,
    kv_set,
)


def _seed_db(db_path: str) -> None:
    conn = get_connection(db_path)
    init_db(conn)
    append_records(conn, [
        {"key": "a", "title": "Python Developer", "company": "Acme", "page_number": 1},
        {"key": "b", "title": "Go Developer", "company": "Hooli", "page_number": 2},
    ])
    kv_set(conn, SEEN_KEYS_KV, b'["a", "b"]')
    conn.close()


def test_cli_help():
    """listing-crawler --help should exit 0 and show usage text."""
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "Usage" in result.output


def test_crawl_help():
    """listing-crawler crawl --help should list the crawl options."""
    runner = CliRunner()
    result = runner.invoke(main, ["crawl", "--help"])
    assert result.exit_code == 0
    assert "--max-items" in result.output
    assert "--details / --no-details" in result.output


def test_pipeline_help():
    """listing-crawler pipeline --help should list the crawl choice."""
    runner = CliRunner()
    result = runner.invoke(main, ["pipeline", "--help"])
    assert result.exit_code == 0
    assert "crawl" in result.output


def test_crawl_without_work_exits_1(tmp_path, monkeypatch):
    """A crawl with nothing to search fails before touching the database."""
    monkeypatch.delenv("LISTING_CRAWLER_POSITION", raising=False)
    db_path = tmp_path / "db" / "crawl.db"
    runner = CliRunner()
    result = runner.invoke(main, ["--db", str(db_path), "crawl"])

    assert result.exit_code == 1
    assert "Nothing to scrape" in result.output
    assert not db_path.exists()


def test_crawl_invokes_run(tmp_path):
    db_path = str(tmp_path / "crawl.db")
    summary = {"run_id": 1, "total_accepted": 0, "max_items": 5, "detail_count": 0}
    runner = CliRunner()

    with patch("listing_crawler.crawler.run.run_crawl", return_value=summary) as mock_run:
        result = runner.invoke(
            main,
            ["--db", db_path, "crawl", "--position", "python", "--max-items", "5",
             "--country", "gb", "--proxy-url", "http://p1:1"],
        )

    assert result.exit_code == 0, result.output
    config = mock_run.call_args.args[0]
    assert config.position == "python"
    assert config.max_items == 5
    assert config.country == "GB"
    assert config.proxy_urls == ["http://p1:1"]
    assert "Done." in result.output


def test_pages_empty_db(tmp_path):
    runner = CliRunner()
    result = runner.invoke(main, ["--db", str(tmp_path / "crawl.db"), "pages"])
    assert result.exit_code == 0
    assert "No records stored yet" in result.output


def test_pages_breakdown(tmp_path):
    db_path = str(tmp_path / "crawl.db")
    _seed_db(db_path)
    runner = CliRunner()
    result = runner.invoke(main, ["--db", db_path, "pages"])

    assert result.exit_code == 0
    assert "PAGE 1 - 1 jobs" in result.output
    assert "PAGE 2 - 1 jobs" in result.output


def test_export(tmp_path):
    db_path = str(tmp_path / "crawl.db")
    _seed_db(db_path)
    out = tmp_path / "jobs.json"
    runner = CliRunner()
    result = runner.invoke(main, ["--db", db_path, "export", str(out)])

    assert result.exit_code == 0
    assert "Exported 2 records" in result.output
    assert [r["key"] for r in json.loads(out.read_text(encoding="utf-8"))] == ["a", "b"]


def test_reset_ledger(tmp_path):
    db_path = str(tmp_path / "crawl.db")
    _seed_db(db_path)
    runner = CliRunner()

    result = runner.invoke(main, ["--db", db_path, "reset-ledger", "--yes"])
    assert result.exit_code == 0
    assert "Seen keys cleared" in result.output

    conn = get_connection(db_path)
    assert kv_get(conn, SEEN_KEYS_KV) is None
    conn.close()

    again = runner.invoke(main, ["--db", db_path, "reset-ledger", "--yes"])
    assert "No seen keys stored" in again.output


def test_pipeline_passes_context(tmp_path):
    db_path = str(tmp_path / "crawl.db")
    runner = CliRunner()

    with patch("pypyr.pipelinerunner.run") as mock_run:
        result = runner.invoke(
            main,
            ["--db", db_path, "pipeline", "crawl", "--set", "position=python",
             "--set", "max_items=20"],
        )

    assert result.exit_code == 0, result.output
    kwargs = mock_run.call_args.kwargs
    assert kwargs["pipeline_name"].endswith("crawl")
    assert kwargs["dict_in"]["db_path"] == db_path
    assert kwargs["dict_in"]["crawl"] == {"position": "python", "max_items": 20}


def test_pipeline_bad_override(tmp_path):
    runner = CliRunner()
    result = runner.invoke(
        main, ["--db", str(tmp_path / "crawl.db"), "pipeline", "crawl", "--set", "oops"]
    )
    assert result.exit_code != 0
    assert "KEY=VALUE" in result.output
