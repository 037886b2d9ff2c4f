"""Run-wide dedup state shared by every worker thread.

:class:`DedupLedger` owns the record-key set, the company detail URL set
and both global counters.  Callers only get compound operations
(check + insert + increment under one lock); there is no way to read a
counter and then bump it separately.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable

from listing_crawler.db.manager import kv_get, kv_set

logger = logging.getLogger(__name__)

SEEN_KEYS_KV = "SEEN_KEYS"


class DedupLedger:
    """Thread-safe set of seen record keys plus the run's caps.

    Args:
        seen_keys: keys carried over from earlier runs.
        max_items: cap on records accepted in this run.
        max_detail_pages: cap on company detail pages; ``0`` means unlimited.
    """

    def __init__(
        self,
        seen_keys: Iterable[str] = (),
        max_items: int = 1000,
        max_detail_pages: int = 0,
    ) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set(seen_keys)
        self._initial_size = len(self._keys)
        self._detail_urls: set[str] = set()
        self._total_accepted = 0
        self._scraped_detail_count = 0
        self.max_items = max_items
        self.max_detail_pages = max_detail_pages

    # ------------------------------------------------------------------
    # Record keys
    # ------------------------------------------------------------------

    def try_accept(self, key: str) -> bool:
        """Accept *key* if it is new and the cap still has room.

        Returns ``False`` for duplicates and once the cap is reached;
        callers tell the two apart with :attr:`cap_reached`.
        """
        with self._lock:
            if self._total_accepted >= self.max_items:
                return False
            if key in self._keys:
                return False
            self._keys.add(key)
            self._total_accepted += 1
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    @property
    def total_accepted(self) -> int:
        with self._lock:
            return self._total_accepted

    @property
    def cap_reached(self) -> bool:
        with self._lock:
            return self._total_accepted >= self.max_items

    @property
    def carried_over(self) -> int:
        """Number of keys loaded from previous runs."""
        return self._initial_size

    def snapshot(self) -> list[str]:
        with self._lock:
            return sorted(self._keys)

    # ------------------------------------------------------------------
    # Company detail pages
    # ------------------------------------------------------------------

    def _detail_limit_hit(self, count: int) -> bool:
        return self.max_detail_pages > 0 and count >= self.max_detail_pages

    def try_reserve_detail(self, url: str) -> bool:
        """Claim *url* for a detail fetch unless already claimed or over the cap."""
        with self._lock:
            if url in self._detail_urls:
                return False
            if self._detail_limit_hit(len(self._detail_urls)):
                return False
            self._detail_urls.add(url)
            return True

    def try_count_detail(self) -> bool:
        """Count one scraped detail page; ``False`` once the detail cap is reached."""
        with self._lock:
            if self._detail_limit_hit(self._scraped_detail_count):
                return False
            self._scraped_detail_count += 1
            return True

    @property
    def scraped_detail_count(self) -> int:
        with self._lock:
            return self._scraped_detail_count

    @property
    def detail_cap_reached(self) -> bool:
        with self._lock:
            return self._detail_limit_hit(self._scraped_detail_count)


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------

def load_seen_keys(conn: sqlite3.Connection, reset: bool = False) -> list[str]:
    """Read the persisted key set; an unreadable snapshot counts as empty."""
    if reset:
        logger.info("Resetting seen keys as requested.")
        return []

    raw = kv_get(conn, SEEN_KEYS_KV)
    if raw is None:
        return []
    try:
        keys = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Stored %s snapshot is not valid JSON; starting empty", SEEN_KEYS_KV)
        return []
    if not isinstance(keys, list):
        logger.warning("Stored %s snapshot is not a list; starting empty", SEEN_KEYS_KV)
        return []
    return [str(k) for k in keys]


def save_seen_keys(conn: sqlite3.Connection, ledger: DedupLedger) -> int:
    """Persist the ledger's key set and return its size."""
    keys = ledger.snapshot()
    kv_set(conn, SEEN_KEYS_KV, json.dumps(keys).encode("utf-8"))
    logger.info("Persisted %d seen keys", len(keys))
    return len(keys)
