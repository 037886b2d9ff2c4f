"""pypyr step: export the run's records to a JSON file.

Skipped when ``export_path`` is not set.

Context keys consumed:
    conn, run_summary, export_path (str, optional)

Context keys produced:
    exported_count (int)
"""

import logging

from listing_crawler.db.manager import export_records_json

logger = logging.getLogger(__name__)


def run_step(context: dict) -> None:
    export_path = context.get("export_path")
    if not export_path:
        logger.info("export_results: no export_path set, skipping")
        context["exported_count"] = 0
        return

    run_id = (context.get("run_summary") or {}).get("run_id")
    context["exported_count"] = export_records_json(context["conn"], export_path, run_id)
