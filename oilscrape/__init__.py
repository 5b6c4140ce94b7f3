"""dōTERRA Taiwan essential-oil catalog scraper package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from oilscrape.config import (
    BASE_URL,
    CATEGORY_PROFILES,
    CATEGORY_URLS,
    DATA_DIR,
    get_category_profile,
)
from oilscrape.extractor import extract_detail
from oilscrape.models import DetailLink, ProductRecord, RawFields
from oilscrape.normalizer import normalize
from oilscrape.pipeline import crawl_category, open_session
from oilscrape.reconcile import ReconciliationIndex, reconcile
from oilscrape.store import CategoryStore
from oilscrape.workflows import crawl_categories, refresh_incomplete, scrape_urls

__all__ = [
    # Version
    "__version__",
    # Config
    "BASE_URL",
    "CATEGORY_PROFILES",
    "CATEGORY_URLS",
    "DATA_DIR",
    "get_category_profile",
    # Models
    "DetailLink",
    "ProductRecord",
    "RawFields",
    # Core functions
    "extract_detail",
    "normalize",
    "reconcile",
    "ReconciliationIndex",
    "CategoryStore",
    "crawl_category",
    "crawl_categories",
    "open_session",
    "refresh_incomplete",
    "scrape_urls",
]
