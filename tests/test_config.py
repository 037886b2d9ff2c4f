"""Tests for configuration loading (listing_crawler.config)."""

import json

import pytest

from listing_crawler.config import CrawlConfig, load_config
from listing_crawler.errors import ConfigError
from listing_crawler.models import Query


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Keep host LISTING_CRAWLER_* variables and stray .env files out of the tests."""
    for name in (
        "POSITION", "LOCATION", "COUNTRY", "MAX_ITEMS", "MAX_CONCURRENCY",
        "MAX_RETRIES", "MAX_COMPANY_PAGES", "RESET_SEEN_KEYS",
        "SCRAPE_COMPANY_DETAILS", "TIMEOUT", "PROXY_URLS",
    ):
        monkeypatch.delenv(f"LISTING_CRAWLER_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


def _write_input(tmp_path, data) -> str:
    path = tmp_path / "input.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestQueries:

    def test_order(self):
        config = CrawlConfig(
            position="python",
            location="Remote",
            company_names=["Acme"],
            bulk_queries=[Query("golang", "Berlin"), Query("")],
        )
        assert config.queries() == [
            Query("python", "Remote"),
            Query('company:"Acme"', "Remote"),
            Query("golang", "Berlin"),
        ]

    def test_has_work(self):
        assert not CrawlConfig().has_work()
        assert CrawlConfig(start_urls=["https://indeed.com/jobs?q=x"]).has_work()
        assert CrawlConfig(company_urls=["https://indeed.com/cmp/Acme"]).has_work()


class TestLoadConfig:

    def test_input_file(self, tmp_path):
        path = _write_input(tmp_path, {
            "position": "data engineer",
            "country": "in",
            "maxItems": "250",
            "bulkQueries": [{"query": "spark", "location": "Pune"}, {"query": ""}],
            "startUrls": [{"url": "https://in.indeed.com/jobs?q=etl"}, " "],
            "companyNames": ["Infosys", ""],
            "scrapeCompanyDetails": True,
        })
        config = load_config(path)

        assert config.position == "data engineer"
        assert config.country == "IN"
        assert config.max_items == 250
        assert config.bulk_queries == [Query("spark", "Pune")]
        assert config.start_urls == ["https://in.indeed.com/jobs?q=etl"]
        assert config.company_names == ["Infosys"]
        assert config.scrape_company_details is True

    def test_unknown_key_is_ignored(self, tmp_path, caplog):
        path = _write_input(tmp_path, {"position": "python", "colour": "blue"})
        with caplog.at_level("WARNING"):
            config = load_config(path)
        assert config.position == "python"
        assert "colour" in caplog.text

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = _write_input(tmp_path, {"position": "python", "maxItems": 100})
        monkeypatch.setenv("LISTING_CRAWLER_MAX_ITEMS", "300")
        monkeypatch.setenv("LISTING_CRAWLER_PROXY_URLS", "http://p1:1, http://p2:2")

        config = load_config(path)
        assert config.max_items == 300
        assert config.proxy_urls == ["http://p1:1", "http://p2:2"]

    def test_keyword_overrides_win(self, tmp_path, monkeypatch):
        path = _write_input(tmp_path, {"position": "python", "maxItems": 100})
        monkeypatch.setenv("LISTING_CRAWLER_MAX_ITEMS", "300")

        config = load_config(path, max_items=5, location=None)
        assert config.max_items == 5
        assert config.location == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_config(str(path))

    def test_non_object_json(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write_input(tmp_path, ["python"]))

    def test_nothing_to_do(self):
        with pytest.raises(ConfigError, match="Nothing to scrape"):
            load_config()

    def test_validate_can_be_skipped(self):
        assert load_config(validate=False).has_work() is False

    def test_bad_integer(self):
        with pytest.raises(ConfigError, match="max_items"):
            load_config(position="python", max_items="lots")

    def test_bad_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("LISTING_CRAWLER_TIMEOUT", "soon")
        with pytest.raises(ConfigError, match="timeout must be a number"):
            load_config(position="python")

    @pytest.mark.parametrize("value", [["1", "later"], 5, ["1"]])
    def test_bad_delay_range(self, value):
        with pytest.raises(ConfigError, match="delay_range"):
            load_config(position="python", delay_range=value)

    def test_numeric_strings_accepted(self):
        config = load_config(position="python", timeout="12.5", delay_range=["0", "1.5"])
        assert config.timeout == 12.5
        assert config.delay_range == (0.0, 1.5)

    def test_unknown_override(self):
        with pytest.raises(ConfigError, match="Unknown configuration option"):
            load_config(position="python", colour="blue")

    @pytest.mark.parametrize("field,value", [
        ("max_items", 0),
        ("max_concurrency", 0),
        ("max_retries", -1),
        ("max_company_pages", -1),
    ])
    def test_invalid_ranges(self, field, value):
        with pytest.raises(ConfigError):
            load_config(position="python", **{field: value})
