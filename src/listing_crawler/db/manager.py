"""Database manager for the listing-crawler project.

Provides connection management, schema initialization, the small
key-value store that holds the cross-run dedup snapshot, and the two
append-only output streams (records and company details).  All functions
take a connection object as their first parameter and do not manage
global state.
"""

import datetime
import json
import logging
import pathlib
import sqlite3

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "run_id", "record_key", "title", "company", "location", "salary",
    "link", "page_number", "source_kind", "company_url", "company_rating",
    "company_review_count", "query", "location_hint", "extracted_at",
)

_DETAIL_COLUMNS = (
    "run_id", "url", "name", "website", "industry", "size",
    "headquarters", "revenue", "scraped_at",
)


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with Row factory enabled.

    Args:
        db_path: Filesystem path to the SQLite database file, or ":memory:"
                 for an in-memory database.

    Returns:
        A ``sqlite3.Connection`` configured with ``sqlite3.Row`` as
        ``row_factory`` and foreign-key enforcement turned on.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes by executing ``schema.sql``.

    Args:
        conn: An open SQLite connection.
    """
    schema_path = pathlib.Path(__file__).with_name("schema.sql")
    schema_sql = schema_path.read_text(encoding="utf-8")
    conn.executescript(schema_sql)
    logger.info("Database schema initialized from %s", schema_path)


# ---------------------------------------------------------------------------
# Key-value store
# ---------------------------------------------------------------------------

def kv_get(conn: sqlite3.Connection, key: str) -> bytes | None:
    """Return the raw value stored under *key*, or ``None`` when absent."""
    row = conn.execute(
        "SELECT value FROM key_value_store WHERE key = ?", (key,)
    ).fetchone()
    if row is None:
        return None
    value = row["value"]
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def kv_set(conn: sqlite3.Connection, key: str, value: bytes) -> None:
    """Store *value* under *key*, replacing any previous value."""
    conn.execute(
        """
        INSERT INTO key_value_store (key, value, updated_at)
        VALUES (:key, :value, datetime('now'))
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        {"key": key, "value": sqlite3.Binary(value)},
    )
    conn.commit()


def kv_delete(conn: sqlite3.Connection, key: str) -> bool:
    """Remove *key*; returns ``True`` if something was deleted."""
    cursor = conn.execute("DELETE FROM key_value_store WHERE key = ?", (key,))
    conn.commit()
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

def start_run(conn: sqlite3.Connection, country: str, max_items: int) -> int:
    """Insert a ``runs`` row for a run that is starting and return its id."""
    cursor = conn.execute(
        "INSERT INTO runs (started_at, country, max_items) VALUES (?, ?, ?)",
        (datetime.datetime.now().isoformat(timespec="seconds"), country, max_items),
    )
    conn.commit()
    return cursor.lastrowid


def finish_run(conn: sqlite3.Connection, run_id: int, summary: dict) -> None:
    """Record the final counters of run *run_id*."""
    conn.execute(
        """
        UPDATE runs SET
            finished_at      = :finished_at,
            total_accepted   = :total_accepted,
            detail_count     = :detail_count,
            dropped_requests = :dropped_requests,
            estimated_cost   = :estimated_cost
        WHERE id = :run_id
        """,
        {
            "run_id": run_id,
            "finished_at": datetime.datetime.now().isoformat(timespec="seconds"),
            "total_accepted": summary.get("total_accepted", 0),
            "detail_count": summary.get("detail_count", 0),
            "dropped_requests": summary.get("dropped_requests", 0),
            "estimated_cost": summary.get("estimated_cost", 0.0),
        },
    )
    conn.commit()
    logger.info("Run %d finished: %s", run_id, summary)


# ---------------------------------------------------------------------------
# Output streams
# ---------------------------------------------------------------------------

def append_records(
    conn: sqlite3.Connection,
    records: list[dict],
    run_id: int | None = None,
) -> int:
    """Append record rows (``Record.to_dict()`` shape) to ``records``.

    Returns:
        The number of rows written.
    """
    if not records:
        return 0

    placeholders = ", ".join(f":{c}" for c in _RECORD_COLUMNS)
    sql = f"INSERT INTO records ({', '.join(_RECORD_COLUMNS)}) VALUES ({placeholders})"

    for record in records:
        params = {c: record.get(c) for c in _RECORD_COLUMNS}
        params["run_id"] = run_id
        params["record_key"] = record.get("key")
        params["extracted_at"] = (
            record.get("extracted_at") or datetime.datetime.now().isoformat()
        )
        conn.execute(sql, params)

    conn.commit()
    logger.debug("Appended %d records", len(records))
    return len(records)


def append_detail_records(
    conn: sqlite3.Connection,
    details: list[dict],
    run_id: int | None = None,
) -> int:
    """Append company detail rows to ``detail_records``."""
    if not details:
        return 0

    placeholders = ", ".join(f":{c}" for c in _DETAIL_COLUMNS)
    sql = (
        f"INSERT INTO detail_records ({', '.join(_DETAIL_COLUMNS)}) "
        f"VALUES ({placeholders})"
    )
    for detail in details:
        params = {c: detail.get(c) for c in _DETAIL_COLUMNS}
        params["run_id"] = run_id
        params["scraped_at"] = (
            detail.get("scraped_at") or datetime.datetime.now().isoformat()
        )
        conn.execute(sql, params)

    conn.commit()
    logger.debug("Appended %d company detail records", len(details))
    return len(details)


def get_records(conn: sqlite3.Connection, run_id: int | None = None) -> list[dict]:
    """Return stored records in insertion order, optionally for one run."""
    if run_id is None:
        rows = conn.execute("SELECT * FROM records ORDER BY id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM records WHERE run_id = ? ORDER BY id", (run_id,)
        ).fetchall()
    return [_row_to_record(row) for row in rows]


def get_record_count(conn: sqlite3.Connection) -> int:
    """Return the total number of rows in the ``records`` table."""
    row = conn.execute("SELECT COUNT(*) AS cnt FROM records").fetchone()
    return row["cnt"]


def get_detail_count(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS cnt FROM detail_records").fetchone()
    return row["cnt"]


def export_records_json(
    conn: sqlite3.Connection,
    path: str | pathlib.Path,
    run_id: int | None = None,
) -> int:
    """Write stored records to *path* as a JSON array; returns the row count."""
    records = get_records(conn, run_id)
    out = pathlib.Path(path)
    if out.parent and not out.parent.exists():
        out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Exported %d records to %s", len(records), out)
    return len(records)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _row_to_record(row: sqlite3.Row) -> dict:
    """Map a ``records`` row back to the exported record shape."""
    data = dict(row)
    data["key"] = data.pop("record_key")
    data.pop("id", None)
    return data
