"""SQLite-backed output sink for a crawl run."""

import logging
import sqlite3

from listing_crawler.db.manager import append_detail_records, append_records
from listing_crawler.models import DetailRecord, Record

logger = logging.getLogger(__name__)


class SqliteSink:
    """Append-only record and company-detail streams tagged with a run id."""

    def __init__(self, conn: sqlite3.Connection, run_id: int | None = None) -> None:
        self.conn = conn
        self.run_id = run_id
        self.record_count = 0
        self.detail_count = 0

    def append_records(self, records: list[Record]) -> None:
        self.record_count += append_records(
            self.conn, [r.to_dict() for r in records], self.run_id
        )

    def append_details(self, details: list[DetailRecord]) -> None:
        self.detail_count += append_detail_records(
            self.conn, [d.to_dict() for d in details], self.run_id
        )
