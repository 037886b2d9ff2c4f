"""listing-crawler: paginated, deduplicating job-search crawler."""

__version__ = "0.1.0"

import os
import pathlib

DEFAULT_DB_PATH = os.path.join(
    os.path.expanduser("~"), ".listing-crawler", "listing_crawler.db"
)

PACKAGE_DIR = pathlib.Path(__file__).parent
