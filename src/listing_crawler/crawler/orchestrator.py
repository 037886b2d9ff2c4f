"""Run orchestrator: feeds requests to a bounded worker pool until the queue drains.

Workers run fetch -> classify -> extract -> decide-next for one request
and hand back a :class:`HandlerResult`.  Only the main thread touches the
queue and the output sink; the shared :class:`DedupLedger` is the one
piece of state workers mutate concurrently.
"""

from __future__ import annotations

import logging
import random
import time
from collections import Counter, deque
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol

from listing_crawler.config import CrawlConfig
from listing_crawler.crawler.classifier import ensure_not_blocked
from listing_crawler.crawler.detail import parse_detail_page, plan_detail_requests
from listing_crawler.crawler.expander import base_url_for
from listing_crawler.crawler.extraction import DEFAULT_STRATEGIES, PageResult, extract_page
from listing_crawler.crawler.fetcher import SessionFetcher
from listing_crawler.crawler.ledger import DedupLedger
from listing_crawler.crawler.pagination import Outcome, decide_next
from listing_crawler.errors import CrawlError
from listing_crawler.models import CrawlRequest, DetailRecord, FetchedPage, Label, PageClass, Record

logger = logging.getLogger(__name__)


class Sink(Protocol):
    def append_records(self, records: list[Record]) -> None: ...

    def append_details(self, details: list[DetailRecord]) -> None: ...


@dataclass
class HandlerResult:
    """What processing one request produced."""

    request: CrawlRequest
    records: list[Record] = field(default_factory=list)
    details: list[DetailRecord] = field(default_factory=list)
    follow_ups: list[CrawlRequest] = field(default_factory=list)
    outcome: Outcome | None = None
    strategy: str | None = None
    dropped: bool = False
    skipped: bool = False


@dataclass
class RunStats:
    records: list[Record] = field(default_factory=list)
    details: list[DetailRecord] = field(default_factory=list)
    processed: int = 0
    dropped: int = 0
    skipped: int = 0
    failed_writes: int = 0
    retired_sessions: int = 0
    outcomes: Counter = field(default_factory=Counter)
    strategies: Counter = field(default_factory=Counter)

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def detail_count(self) -> int:
        return len(self.details)


class Crawler:
    """Drive seed requests through the fetcher until no work is left.

    Args:
        fetcher: the fetch collaborator (see :class:`SessionFetcher`).
        ledger: the run's shared dedup ledger.
        base_url: listing site root, for absolutising links.
        max_concurrency: worker pool size.
        scrape_details: enqueue company detail pages for accepted records.
        delay_range: uniform random pause before each request, in seconds.
        sink: optional output sink, appended to from the main thread.
    """

    def __init__(
        self,
        fetcher: SessionFetcher,
        ledger: DedupLedger,
        base_url: str,
        *,
        max_concurrency: int = 10,
        scrape_details: bool = False,
        delay_range: tuple[float, float] = (3.0, 9.0),
        sink: Sink | None = None,
        strategies=DEFAULT_STRATEGIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.ledger = ledger
        self.base_url = base_url
        self.max_concurrency = max_concurrency
        self.scrape_details = scrape_details
        self.delay_range = delay_range
        self.sink = sink
        self.strategies = strategies
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: CrawlConfig,
        fetcher: SessionFetcher,
        ledger: DedupLedger,
        sink: Sink | None = None,
    ) -> "Crawler":
        return cls(
            fetcher,
            ledger,
            base_url_for(config.country),
            max_concurrency=config.max_concurrency,
            scrape_details=config.scrape_company_details,
            delay_range=config.delay_range,
            sink=sink,
        )

    # ------------------------------------------------------------------
    # Handlers (run inside worker threads)
    # ------------------------------------------------------------------

    def handle_listing(self, request: CrawlRequest, page: FetchedPage) -> HandlerResult:
        page_class = ensure_not_blocked(page, request)

        if page_class is PageClass.EMPTY:
            if request.page_index == 0:
                logger.info("No results for %s", request.session_key or request.url)
                return HandlerResult(request, outcome=Outcome.END_OF_RESULTS)
            result = PageResult()
        else:
            result = extract_page(page, request, self.ledger, self.base_url, self.strategies)

        follow_ups: list[CrawlRequest] = []
        if self.scrape_details and result.records:
            follow_ups.extend(
                plan_detail_requests(result.records, self.ledger, self.base_url, request.url)
            )

        decision = decide_next(request, result.total_found, result.new_count, self.ledger)
        if decision.next_request is not None:
            follow_ups.append(decision.next_request)

        return HandlerResult(
            request,
            records=result.records,
            follow_ups=follow_ups,
            outcome=decision.outcome,
            strategy=result.strategy,
        )

    def handle_detail(self, request: CrawlRequest, page: FetchedPage) -> HandlerResult:
        if not self.ledger.try_count_detail():
            logger.info("Reached company page limit. Skipping %s", request.url)
            return HandlerResult(request, skipped=True)

        logger.info("Scraping company details: %s", request.url)
        detail = parse_detail_page(page)
        return HandlerResult(request, details=[detail])

    # ------------------------------------------------------------------
    # Worker entry point
    # ------------------------------------------------------------------

    def _should_skip(self, request: CrawlRequest) -> bool:
        if request.label is Label.DETAIL:
            return self.ledger.detail_cap_reached
        return self.ledger.cap_reached

    def _run_request(self, request: CrawlRequest) -> HandlerResult:
        if self._should_skip(request):
            logger.debug("Cap already satisfied; skipping %s", request.url)
            return HandlerResult(request, skipped=True)

        low, high = self.delay_range
        if high > 0:
            delay = random.uniform(low, high)
            logger.info(
                "Waiting %.1fs before processing %s (page %d)",
                delay, request.url, request.page_number,
            )
            self._sleep(delay)

        # the cap may have filled while this worker slept
        if self._should_skip(request):
            return HandlerResult(request, skipped=True)

        handler = self.handle_detail if request.label is Label.DETAIL else self.handle_listing
        try:
            return self.fetcher.process(request, handler)
        except CrawlError as exc:
            logger.error("Request %s failed and was dropped: %s", request.url, exc)
            return HandlerResult(request, dropped=True)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    @staticmethod
    def _write(append: Callable[[list], None], batch: list, url: str, stats: RunStats) -> None:
        """Hand one batch to the sink; a failed write costs the batch, not the run."""
        try:
            append(batch)
        except Exception:
            stats.failed_writes += 1
            logger.exception("Could not store %d items from %s", len(batch), url)

    def _collect(self, result: HandlerResult, stats: RunStats, queue: deque) -> None:
        stats.processed += 1
        if result.dropped:
            stats.dropped += 1
        if result.skipped:
            stats.skipped += 1
        if result.outcome is not None:
            stats.outcomes[result.outcome.value] += 1
        if result.strategy:
            stats.strategies[result.strategy] += 1

        if result.records:
            stats.records.extend(result.records)
            if self.sink is not None:
                self._write(self.sink.append_records, result.records, result.request.url, stats)
            logger.info(
                "Progress: %d/%d unique jobs collected.",
                self.ledger.total_accepted, self.ledger.max_items,
            )
        if result.details:
            stats.details.extend(result.details)
            if self.sink is not None:
                self._write(self.sink.append_details, result.details, result.request.url, stats)

        key = result.request.session_key
        continues = any(r.session_key == key for r in result.follow_ups)
        if not continues:
            self.fetcher.release(key)

        queue.extend(result.follow_ups)

    def _admit_seeds(self, seeds: Iterable[CrawlRequest]) -> deque:
        queue: deque = deque()
        for seed in seeds:
            if seed.label is Label.DETAIL and not self.ledger.try_reserve_detail(seed.url):
                logger.info("Skipping company URL over the detail limit: %s", seed.url)
                continue
            queue.append(seed)
        return queue

    def run(self, seeds: Iterable[CrawlRequest]) -> RunStats:
        """Process *seeds* and everything they lead to; return run statistics."""
        queue = self._admit_seeds(seeds)
        stats = RunStats()
        if not queue:
            logger.warning("Nothing to do: no seed requests")
            return stats

        logger.info(
            "Run started with %d seeds (max_items=%d, max_concurrency=%d)",
            len(queue), self.ledger.max_items, self.max_concurrency,
        )

        pending: dict[Future, CrawlRequest] = {}
        with ThreadPoolExecutor(max_workers=self.max_concurrency) as pool:
            while queue or pending:
                while queue and len(pending) < self.max_concurrency:
                    request = queue.popleft()
                    pending[pool.submit(self._run_request, request)] = request

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    request = pending.pop(future)
                    try:
                        result = future.result()
                    except Exception:
                        logger.exception("Unexpected error processing %s", request.url)
                        result = HandlerResult(request, dropped=True)
                    self._collect(result, stats, queue)

        stats.retired_sessions = self.fetcher.retired_count
        logger.info(
            "Finished. Total jobs: %d. Total company profiles scraped: %d.",
            self.ledger.total_accepted, self.ledger.scraped_detail_count,
        )
        return stats
