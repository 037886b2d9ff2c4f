"""Database sub-package for the listing-crawler project.

Exports the core database functions so that other modules can import
them directly from ``listing_crawler.db``:

    from listing_crawler.db import get_connection, init_db, append_records
"""

from listing_crawler.db.manager import (
    append_detail_records,
    append_records,
    get_connection,
    init_db,
    kv_get,
    kv_set,
)

__all__ = [
    "append_detail_records",
    "append_records",
    "get_connection",
    "init_db",
    "kv_get",
    "kv_set",
]
