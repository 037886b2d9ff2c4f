"""HTTP fetching with per-search session affinity, proxy rotation and retries.

Every :class:`~listing_crawler.models.CrawlRequest` carries a session key.
All requests sharing a key go through the same :class:`requests.Session`
(same cookies, same proxy, same User-Agent), so page 2 of a search looks
like a continuation of page 1 rather than a fresh visitor hitting a
sign-in wall.  When a handler reports a block, the identity behind the
key is retired and the next attempt gets a new one.
"""

import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from urllib3.util.retry import Retry

from listing_crawler.errors import (
    BlockedError,
    CrawlError,
    FetchError,
    RetriesExhaustedError,
    RetryableError,
)
from listing_crawler.models import CrawlRequest, FetchedPage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default User-Agent strings for rotation; each new identity takes the next.
DEFAULT_USER_AGENTS = [
    (
        "Mozilla/5.0 (Linux; Android 10; K) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Mobile Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) "
        "Gecko/20100101 Firefox/121.0"
    ),
]

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def build_headers(request: CrawlRequest, user_agent: str) -> dict:
    """Return browser-like headers for *request*.

    Pure function of its arguments; plugged into :class:`SessionFetcher`
    as the request decorator.
    """
    mobile = "Mobile" in user_agent
    headers = {
        "User-Agent": user_agent,
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;"
            "q=0.9,image/webp,image/apng,*/*;"
            "q=0.8,application/signed-exchange;v=b3;q=0.7"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Ch-Ua": '"Not_A Brand";v="24", "Chromium";v="120", "Google Chrome";v="120"',
        "Sec-Ch-Ua-Mobile": "?1" if mobile else "?0",
        "Sec-Ch-Ua-Platform": '"Android"' if mobile else '"Windows"',
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "same-origin" if request.referer else "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
    }
    if request.referer:
        headers["Referer"] = request.referer
    return headers


def inspect_response(request: CrawlRequest, response: requests.Response) -> None:
    """Raise for responses that must not reach the page handler.

    A 403 means the identity is burned; 429 and 5xx are worth another try
    with the same identity; any other error status is final.
    """
    status = response.status_code
    if status == 403:
        raise BlockedError(f"HTTP 403 on {response.url or request.url}")
    if status in RETRYABLE_STATUSES:
        raise FetchError(f"HTTP {status} on {request.url}", status=status)
    if status >= 400:
        raise CrawlError(f"HTTP {status} on {request.url}")


@dataclass
class _Identity:
    session: requests.Session
    user_agent: str
    proxy: str | None


class SessionFetcher:
    """The run's fetch collaborator.

    Args:
        proxy_urls: proxies handed out round-robin to new identities.
        timeout: per-request timeout in seconds.
        max_retries: retries per request after the first attempt.
        backoff_factor: base of the exponential wait between attempts.
        max_backoff: upper bound of that wait.
        user_agents: User-Agent strings handed out round-robin.
        decorate: ``(request, user_agent) -> headers``.
        inspect: ``(request, response) -> None``, raises to reject.
        sleep: injectable for tests.
    """

    def __init__(
        self,
        proxy_urls: list[str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 20,
        backoff_factor: float = 0.5,
        max_backoff: float = 30.0,
        user_agents: list[str] | None = None,
        decorate: Callable[[CrawlRequest, str], dict] = build_headers,
        inspect: Callable[[CrawlRequest, requests.Response], None] = inspect_response,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = float(timeout)
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.decorate = decorate
        self.inspect = inspect
        self._sleep = sleep
        self._lock = threading.Lock()
        self._identities: dict[str, _Identity] = {}
        self._user_agents = itertools.cycle(user_agents or DEFAULT_USER_AGENTS)
        self._proxies = itertools.cycle(proxy_urls) if proxy_urls else None
        self.retired_count = 0

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        # Transport-level retries for dropped connections only; status
        # handling belongs to inspect().
        retry = Retry(total=2, connect=2, read=2, status=0, backoff_factor=0.5)
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _identity_for(self, key: str) -> _Identity:
        with self._lock:
            identity = self._identities.get(key)
            if identity is None:
                proxy = next(self._proxies) if self._proxies else None
                identity = _Identity(
                    session=self._new_session(),
                    user_agent=next(self._user_agents),
                    proxy=proxy,
                )
                self._identities[key] = identity
                logger.debug("New identity for %s (proxy=%s)", key, bool(proxy))
            return identity

    def retire(self, key: str | None) -> None:
        """Discard the identity behind *key*; the next fetch gets a new one."""
        if key is None:
            return
        with self._lock:
            identity = self._identities.pop(key, None)
            self.retired_count += 1
        if identity is not None:
            identity.session.close()
        logger.info("Retired session %s", key)

    def release(self, key: str | None) -> None:
        """Close the identity behind *key* once its search is finished."""
        if key is None:
            return
        with self._lock:
            identity = self._identities.pop(key, None)
        if identity is not None:
            identity.session.close()

    def active_sessions(self) -> int:
        with self._lock:
            return len(self._identities)

    def close(self) -> None:
        with self._lock:
            identities = list(self._identities.values())
            self._identities.clear()
        for identity in identities:
            identity.session.close()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch(self, request: CrawlRequest) -> FetchedPage:
        """GET *request* through its session's identity.

        Raises:
            RetryableError: on network errors, timeouts and rejected statuses.
        """
        key = request.session_key or request.url
        identity = self._identity_for(key)
        proxies = {"http": identity.proxy, "https": identity.proxy} if identity.proxy else None
        try:
            response = identity.session.get(
                request.url,
                headers=self.decorate(request, identity.user_agent),
                proxies=proxies,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise FetchError(f"{type(exc).__name__} fetching {request.url}: {exc}") from exc

        self.inspect(request, response)
        return FetchedPage(url=response.url or request.url, html=response.text, status=response.status_code)

    def _attempt(self, request: CrawlRequest, handler: Callable[[CrawlRequest, FetchedPage], T]) -> T:
        return handler(request, self.fetch(request))

    def _after_failure(self, request: CrawlRequest, attempts: int):
        key = request.session_key or request.url

        def after(state: RetryCallState) -> None:
            exc = state.outcome.exception()
            if exc.retire_session:
                self.retire(key)
            logger.warning(
                "Attempt %d/%d for %s failed: %s",
                state.attempt_number, attempts, request.url, exc,
            )

        return after

    def process(self, request: CrawlRequest, handler: Callable[[CrawlRequest, FetchedPage], T]) -> T:
        """Fetch *request* and run *handler* on the page, retrying on failure.

        Both fetch errors and handler-raised :class:`RetryableError` count
        as failed attempts.  Errors with ``retire_session`` set retire the
        identity before the next attempt.  Waits grow exponentially from
        ``backoff_factor`` with up to ``backoff_factor`` seconds of jitter,
        capped at ``max_backoff``.  Any other error propagates at once.

        Raises:
            RetriesExhaustedError: after ``max_retries + 1`` failed attempts.
        """
        attempts = self.max_retries + 1
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(
                initial=self.backoff_factor, max=self.max_backoff, jitter=self.backoff_factor
            ),
            retry=retry_if_exception_type(RetryableError),
            after=self._after_failure(request, attempts),
            sleep=self._sleep,
        )
        try:
            return retrying(self._attempt, request, handler)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            raise RetriesExhaustedError(request.url, attempts, last_error) from last_error
