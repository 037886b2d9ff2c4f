"""Turn configured queries and literal URLs into seed requests.

A single search on the listing site never returns more than
:data:`SINGLE_QUERY_CEILING` results, so a "remote" search asking for more
than that is fanned out into one extra search per region of the target
country.
"""

import logging
from urllib.parse import urlencode

from listing_crawler.config import CrawlConfig
from listing_crawler.errors import ConfigError
from listing_crawler.models import CrawlRequest, Label, Query

logger = logging.getLogger(__name__)

# 100 pages x 10 results per page
SINGLE_QUERY_CEILING = 1000

COUNTRY_DOMAINS: dict[str, str] = {
    "US": "indeed.com",
    "IN": "in.indeed.com",
    "GB": "uk.indeed.com",
    "UK": "uk.indeed.com",
    "CA": "ca.indeed.com",
    "AU": "au.indeed.com",
}

_UK_REGIONS = [
    "London", "Manchester", "Birmingham", "Leeds", "Glasgow", "Liverpool",
    "Edinburgh", "Bristol", "Sheffield", "Newcastle", "Nottingham", "Southampton",
]

FANOUT_REGIONS: dict[str, list[str]] = {
    "US": [
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    ],
    "IN": [
        "Mumbai", "Delhi", "Bangalore", "Hyderabad", "Chennai", "Kolkata",
        "Pune", "Ahmedabad", "Surat", "Jaipur", "Lucknow", "Kanpur", "Nagpur",
        "Indore", "Bhopal", "Visakhapatnam", "Maharashtra", "Karnataka",
        "Tamil Nadu", "Telangana", "Gujarat", "Rajasthan", "Uttar Pradesh",
        "West Bengal", "Madhya Pradesh", "Andhra Pradesh",
    ],
    "GB": _UK_REGIONS,
    "UK": _UK_REGIONS,
    "CA": [
        "Ontario", "Quebec", "British Columbia", "Alberta", "Manitoba",
        "Saskatchewan", "Nova Scotia", "Toronto", "Vancouver", "Montreal",
        "Calgary", "Ottawa",
    ],
    "AU": [
        "New South Wales", "Victoria", "Queensland", "Western Australia",
        "South Australia", "Sydney", "Melbourne", "Brisbane", "Perth", "Adelaide",
    ],
}


def base_url_for(country: str) -> str:
    """Return the listing site's base URL for a country code (US fallback)."""
    domain = COUNTRY_DOMAINS.get((country or "US").upper(), COUNTRY_DOMAINS["US"])
    return f"https://{domain}"


def build_search_url(base_url: str, term: str, location: str = "", start: int = 0) -> str:
    """Build the search listing URL for *term* in *location*."""
    params = {"q": term}
    if location:
        params["l"] = location
    if start > 0:
        params["start"] = str(start)
    return f"{base_url}/jobs?{urlencode(params)}"


def is_remote_hint(location: str) -> bool:
    return "remote" in (location or "").lower()


def needs_fanout(query: Query, country: str, max_items: int) -> bool:
    """True when *query* must be split by region to exceed the result ceiling."""
    return (
        (country or "").upper() in FANOUT_REGIONS
        and is_remote_hint(query.location)
        and max_items > SINGLE_QUERY_CEILING
    )


def seed_for_query(query: Query, base_url: str) -> CrawlRequest:
    url = build_search_url(base_url, query.term, query.location)
    return CrawlRequest(
        url=url,
        label=Label.START,
        page_index=0,
        session_key=query.session_key,
        query=query,
        start_url=url,
    )


def expand_queries(config: CrawlConfig) -> list[CrawlRequest]:
    """Produce the page-0 seed requests for a run.

    Order: literal start URLs, literal company URLs, then every search
    query (followed by its regional fan-out when it applies).  Seeds are
    de-duplicated by URL.

    Raises:
        ConfigError: when there is nothing to crawl.
    """
    base_url = base_url_for(config.country)
    seeds: list[CrawlRequest] = []

    for url in config.start_urls:
        logger.info("Enqueuing direct URL: %s", url)
        seeds.append(
            CrawlRequest(
                url=url,
                label=Label.START,
                session_key=f"start-{url}",
                start_url=url,
            )
        )

    for url in config.company_urls:
        logger.info("Enqueuing direct company URL: %s", url)
        seeds.append(CrawlRequest(url=url, label=Label.DETAIL, session_key=f"detail-{url}"))

    for query in config.queries():
        logger.info("Enqueuing search: %r in %r", query.term, query.location)
        seeds.append(seed_for_query(query, base_url))

        if needs_fanout(query, config.country, config.max_items):
            regions = FANOUT_REGIONS[config.country.upper()]
            logger.info(
                "Deep search: fanning %r out over %d regions of %s",
                query.term, len(regions), config.country.upper(),
            )
            for region in regions:
                seeds.append(seed_for_query(Query(query.term, region), base_url))

    unique: list[CrawlRequest] = []
    seen_urls: set[str] = set()
    for seed in seeds:
        if seed.url in seen_urls:
            continue
        seen_urls.add(seed.url)
        unique.append(seed)

    if not unique:
        raise ConfigError(
            "No search queries, company names, or start URLs provided. Nothing to scrape."
        )

    logger.info("Prepared %d seed requests", len(unique))
    return unique
