"""Run configuration.

Settings are layered: a JSON input file with camelCase keys
(``maxItems``, ``bulkQueries``, ...), then ``LISTING_CRAWLER_*`` environment variables
(``.env`` files are honoured through python-dotenv), then explicit
keyword overrides from the CLI or a pipeline context.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
from dataclasses import dataclass, field

from dotenv import load_dotenv

from listing_crawler.errors import ConfigError
from listing_crawler.models import Query

logger = logging.getLogger(__name__)

ENV_PREFIX = "LISTING_CRAWLER_"

# input-file key -> CrawlConfig attribute
_INPUT_KEYS: dict[str, str] = {
    "position": "position",
    "location": "location",
    "country": "country",
    "maxItems": "max_items",
    "bulkQueries": "bulk_queries",
    "startUrls": "start_urls",
    "companyUrls": "company_urls",
    "companyNames": "company_names",
    "resetSeenKeys": "reset_seen_keys",
    "maxConcurrency": "max_concurrency",
    "maxRetries": "max_retries",
    "proxyUrls": "proxy_urls",
    "scrapeCompanyDetails": "scrape_company_details",
    "maxCompanyPages": "max_company_pages",
}

_INT_FIELDS = ("max_items", "max_concurrency", "max_retries", "max_company_pages")
_BOOL_FIELDS = ("reset_seen_keys", "scrape_company_details")


@dataclass
class CrawlConfig:
    """Everything a crawl run needs to know up front."""

    position: str = ""
    location: str = ""
    country: str = "US"
    max_items: int = 1000
    bulk_queries: list[Query] = field(default_factory=list)
    start_urls: list[str] = field(default_factory=list)
    company_urls: list[str] = field(default_factory=list)
    company_names: list[str] = field(default_factory=list)
    reset_seen_keys: bool = False
    max_concurrency: int = 10
    max_retries: int = 20
    timeout: float = 30.0
    delay_range: tuple[float, float] = (3.0, 9.0)
    proxy_urls: list[str] = field(default_factory=list)
    scrape_company_details: bool = False
    max_company_pages: int = 0

    def queries(self) -> list[Query]:
        """Return the search queries in the order they should be seeded."""
        result: list[Query] = []
        if self.position:
            result.append(Query(self.position, self.location))
        for name in self.company_names:
            if name:
                result.append(Query(f'company:"{name}"', self.location))
        result.extend(q for q in self.bulk_queries if q.term)
        return result

    def has_work(self) -> bool:
        return bool(self.queries() or self.start_urls or self.company_urls)

    def validate(self) -> None:
        """Raise :class:`ConfigError` when the configuration cannot run."""
        if not self.has_work():
            raise ConfigError(
                "No search queries, company names, or start URLs provided. "
                "Nothing to scrape."
            )
        if self.max_items <= 0:
            raise ConfigError(f"max_items must be positive, got {self.max_items}")
        if self.max_concurrency <= 0:
            raise ConfigError(
                f"max_concurrency must be positive, got {self.max_concurrency}"
            )
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must not be negative, got {self.max_retries}")
        if self.max_company_pages < 0:
            raise ConfigError(
                f"max_company_pages must not be negative, got {self.max_company_pages}"
            )
        low, high = self.delay_range
        if low < 0 or high < low:
            raise ConfigError(f"invalid delay range {self.delay_range!r}")


# ----------------------------------------------------------------------
# Coercion helpers
# ----------------------------------------------------------------------

def _to_int(name: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _to_float(name: str, value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _to_url_list(value) -> list[str]:
    """Accept ``["https://..."]`` or ``[{"url": "https://..."}]``."""
    urls: list[str] = []
    for item in value or []:
        url = item.get("url") if isinstance(item, dict) else item
        if url and str(url).strip():
            urls.append(str(url).strip())
    return urls


def _to_queries(value) -> list[Query]:
    queries: list[Query] = []
    for item in value or []:
        if isinstance(item, Query):
            queries.append(item)
        elif isinstance(item, dict):
            term = (item.get("query") or "").strip()
            if term:
                queries.append(Query(term, (item.get("location") or "").strip()))
        elif isinstance(item, str) and item.strip():
            queries.append(Query(item.strip()))
    return queries


def _split_env_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _apply(config: CrawlConfig, attr: str, value) -> None:
    if value is None:
        return
    if attr in _INT_FIELDS:
        value = _to_int(attr, value)
    elif attr in _BOOL_FIELDS:
        value = _to_bool(value)
    elif attr in ("start_urls", "company_urls"):
        value = _to_url_list(value)
    elif attr == "bulk_queries":
        value = _to_queries(value)
    elif attr in ("company_names", "proxy_urls"):
        value = [str(v).strip() for v in value if v and str(v).strip()]
    elif attr == "country":
        value = (str(value).strip() or "US").upper()
    elif attr in ("position", "location"):
        value = str(value).strip()
    elif attr == "timeout":
        value = _to_float(attr, value)
    elif attr == "delay_range":
        try:
            low, high = value
        except (TypeError, ValueError):
            raise ConfigError(f"delay_range must be a pair of numbers, got {value!r}") from None
        value = (_to_float(attr, low), _to_float(attr, high))
    setattr(config, attr, value)


def _read_input_file(path: str | os.PathLike) -> dict:
    input_path = pathlib.Path(path)
    try:
        raw = json.loads(input_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Input file not found: {input_path}") from None
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Input file {input_path} is not valid JSON: {exc}") from None
    if not isinstance(raw, dict):
        raise ConfigError(f"Input file {input_path} must contain a JSON object")
    return raw


def _env_overrides() -> dict:
    values: dict = {}
    for attr in (
        "position", "location", "country", "max_items", "max_concurrency",
        "max_retries", "max_company_pages", "reset_seen_keys",
        "scrape_company_details", "timeout",
    ):
        raw = os.environ.get(ENV_PREFIX + attr.upper())
        if raw:
            values[attr] = raw
    proxies = os.environ.get(ENV_PREFIX + "PROXY_URLS")
    if proxies:
        values["proxy_urls"] = _split_env_list(proxies)
    return values


def load_config(
    input_path: str | os.PathLike | None = None,
    *,
    validate: bool = True,
    **overrides,
) -> CrawlConfig:
    """Build a :class:`CrawlConfig` from file, environment and *overrides*.

    ``None`` overrides are ignored so CLI options left unset do not mask
    values from the input file.

    Raises:
        ConfigError: when the input is unreadable or describes no work.
    """
    load_dotenv()
    config = CrawlConfig()

    if input_path:
        raw = _read_input_file(input_path)
        for key, value in raw.items():
            attr = _INPUT_KEYS.get(key)
            if attr is None:
                logger.warning("Ignoring unknown input key %r", key)
                continue
            _apply(config, attr, value)

    for attr, value in _env_overrides().items():
        _apply(config, attr, value)

    for attr, value in overrides.items():
        if not hasattr(config, attr):
            raise ConfigError(f"Unknown configuration option {attr!r}")
        _apply(config, attr, value)

    if validate:
        config.validate()
    return config
