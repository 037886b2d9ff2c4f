"""Exception hierarchy for the crawler.

Retryable errors are handed to :class:`~listing_crawler.crawler.fetcher.SessionFetcher`,
which owns the retry and session-rotation policy.  Errors flagged with
``retire_session`` force the fetcher to discard the identity that
produced the page before trying again.
"""


class CrawlError(Exception):
    """Base class for all crawler errors."""


class ConfigError(CrawlError):
    """Run configuration is missing or invalid.  Fatal, raised before any work."""


class RetryableError(CrawlError):
    """A request failed in a way that may succeed on another attempt."""

    retire_session = False


class FetchError(RetryableError):
    """Network failure, timeout or an unexpected HTTP status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class BlockedError(RetryableError):
    """The page is a verification challenge, access wall or CAPTCHA."""

    retire_session = True


class StealthEmptyError(RetryableError):
    """A non-first page rendered fine but carried no results at all."""

    retire_session = True


class RetriesExhaustedError(CrawlError):
    """Every attempt for a request failed; the request is dropped."""

    def __init__(self, url: str, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__(f"{url} failed after {attempts} attempts: {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
