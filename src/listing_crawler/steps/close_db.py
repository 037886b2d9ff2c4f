"""pypyr step: close_db

Closes the database connection opened by ``db_init``.  Runs from the
pipeline's ``on_failure`` group, where ``show_summary`` never gets to.
"""

import logging

logger = logging.getLogger(__name__)


def run_step(context: dict) -> None:
    conn = context.get("conn")
    if conn is None:
        return
    conn.close()
    logger.info("Database connection closed after a failed pipeline run.")
