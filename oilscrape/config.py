"""Configuration and constants for the scraper."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

__all__ = [
    "BASE_URL",
    "CATEGORY_URLS",
    "CATEGORY_ORDER",
    "CATEGORY_PROFILES",
    "FALLBACK_PARTITION",
    "AGGREGATE_NAME",
    "DATA_DIR",
    "BACKUP_DIR_NAME",
    "STATE_FILE_NAME",
    "OUTPUT_CSV_PATH",
    "HEADERS",
    "USER_AGENT",
    "HEADLESS",
    "NAVIGATION_TIMEOUT_MS",
    "SELECTOR_TIMEOUT_MS",
    "LISTING_SETTLE_MS",
    "DETAIL_SETTLE_MS",
    "SCROLL_PAUSE_MS",
    "SCROLL_PASSES",
    "DETAIL_READY_SELECTOR",
    "LISTING_READY_SELECTOR",
    "REQUEST_TIMEOUT",
    "DELAY_BASE",
    "DELAY_JITTER",
    "DELAY_OVERNIGHT_BASE",
    "DELAY_OVERNIGHT_JITTER",
    "DELAY_MAX",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "MAX_PAGES_PER_CATEGORY",
    "DEFAULT_MAX_PAGES",
    "PAGE_PARAM",
    "SORT_PARAM",
    "DEFAULT_SORT",
    "SECTION_LABELS",
    "EXACT_ONLY_LABELS",
    "LEFT_COLUMN_CLASSES",
    "get_category_profile",
]

BASE_URL = "https://www.doterra.com"
LOCALE_PATH = "/TW/zh_TW"

# Category listing pages. Keys double as partition names.
CATEGORY_URLS: Dict[str, str] = {
    "single-oils": f"{BASE_URL}{LOCALE_PATH}/pl/single-oils",
    "proprietary-blends": f"{BASE_URL}{LOCALE_PATH}/pl/proprietary-blends",
    "skincare": f"{BASE_URL}{LOCALE_PATH}/pl/personal-care",
    "wellness": f"{BASE_URL}{LOCALE_PATH}/pl/wellness",
    "accessories": f"{BASE_URL}{LOCALE_PATH}/pl/accessories",
    "onguard-collection": f"{BASE_URL}{LOCALE_PATH}/pl/onguard",
}

# Aggregate sort order
CATEGORY_ORDER: List[str] = list(CATEGORY_URLS.keys())

# Catch-all partition for records that match no primary category
FALLBACK_PARTITION = "onguard-collection"

AGGREGATE_NAME = "all-products"

# =============================================================================
# Category Profiles
# =============================================================================
# Each category maps to:
#   - display_name: Human readable (zh-TW) name
#   - collection: Tag added to every record discovered under this listing
#   - name_keywords: Lowercased substrings used to classify records by name

CategoryProfile = Dict[str, Any]

CATEGORY_PROFILES: Dict[str, CategoryProfile] = {
    "single-oils": {
        "display_name": "單方精油",
        "collection": "single-oils",
        "name_keywords": ["精油", " oil", "油"],
    },
    "proprietary-blends": {
        "display_name": "複方精油",
        "collection": "proprietary-blends",
        "name_keywords": ["複方", "blend", "調理", "touch"],
    },
    "skincare": {
        "display_name": "護膚產品",
        "collection": "skincare",
        "name_keywords": ["乳霜", "乳液", "潔面", "面膜", "精華", "cream", "lotion", "cleanser", "serum", "護膚"],
    },
    "wellness": {
        "display_name": "健康產品",
        "collection": "wellness",
        "name_keywords": ["膠囊", "錠", "營養", "supplement", "softgel", "lifelong", "益生菌"],
    },
    "accessories": {
        "display_name": "配件用品",
        "collection": "accessories",
        "name_keywords": ["擴香", "diffuser", "滾珠瓶", "收納", "配件", "bottle"],
    },
    "onguard-collection": {
        "display_name": "保衛系列",
        "collection": "onguard-collection",
        "name_keywords": ["保衛", "onguard", "on guard"],
    },
}


def get_category_profile(category: str) -> Optional[CategoryProfile]:
    """Get the profile for a category."""
    return CATEGORY_PROFILES.get(category)


# =============================================================================
# Paths
# =============================================================================

_PROJECT_ROOT = Path(__file__).parent.parent

DATA_DIR = os.getenv("OILSCRAPE_DATA_DIR", str(_PROJECT_ROOT / "data" / "products"))
BACKUP_DIR_NAME = "backups"
STATE_FILE_NAME = "scrape_state.json"
OUTPUT_CSV_PATH = "data/all_products.csv"

# =============================================================================
# Browser / HTTP
# =============================================================================

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "zh-TW,zh;q=0.9,en;q=0.8",
}

HEADLESS = os.getenv("OILSCRAPE_HEADLESS", "True").lower() == "true"

# Timeouts (milliseconds, browser driver)
NAVIGATION_TIMEOUT_MS = 30000
SELECTOR_TIMEOUT_MS = 15000

# Settle periods for client-rendered content
LISTING_SETTLE_MS = 3000
DETAIL_SETTLE_MS = 2000
SCROLL_PAUSE_MS = 1500
SCROLL_PASSES = 2

DETAIL_READY_SELECTOR = "h1"
LISTING_READY_SELECTOR = "a[href*='/p/']"

# Request timeout (seconds, static driver)
REQUEST_TIMEOUT = 15

# Delay between items (seconds): fixed base plus random jitter
DELAY_BASE = float(os.getenv("OILSCRAPE_DELAY_BASE", "2.0"))
DELAY_JITTER = float(os.getenv("OILSCRAPE_DELAY_JITTER", "1.0"))

# Overnight mode delays - much slower to minimize server load
DELAY_OVERNIGHT_BASE = 10.0
DELAY_OVERNIGHT_JITTER = 20.0

DELAY_MAX = 60.0

# Retry settings with exponential backoff
MAX_RETRIES = 5
RETRY_BACKOFF_BASE = 2.0  # 2^attempt seconds
MAX_RETRY_BACKOFF = 60.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Pagination settings
MAX_PAGES_PER_CATEGORY = 20  # Safety limit to avoid runaway scraping
DEFAULT_MAX_PAGES = 10
PAGE_PARAM = "page"
SORT_PARAM = "sort"
DEFAULT_SORT = "relevance"

# =============================================================================
# Section Vocabulary
# =============================================================================
# Field name -> section titles as they appear in headings on detail pages.
# Exact matches win over substring matches.

SECTION_LABELS: Dict[str, List[str]] = {
    "description": ["產品說明", "產品描述", "產品概述", "說明"],
    "product_introduction": ["產品介紹", "產品簡介", "介紹"],
    "main_benefits": ["主要功效", "主要益處", "產品功效", "功效"],
    "usage_instructions": ["使用方法", "使用方式", "用法", "建議用法"],
    "cautions": ["注意事項", "警告", "注意"],
    "aroma_description": ["香味描述", "香氣描述", "香味", "香氣"],
    "extraction_method": ["萃取方法", "萃取方式"],
    "plant_part": ["萃取部位", "植物部位"],
    "main_ingredients": ["主要成分", "主要化學成分", "成分"],
    "application_guide": ["應用指南", "應用方式", "應用"],
    "scientific_name": ["學名", "植物學名"],
}

# Labels matched only as a whole heading; "說明" alone also ends "使用說明"
EXACT_ONLY_LABELS = frozenset({"說明"})

# Ancestor classes that mark the narrow (left) column of the detail layout
LEFT_COLUMN_CLASSES = (
    "col-sm-4",
    "col-md-4",
    "col-lg-4",
    "left-column",
    "product-info-left",
    "sidebar",
)
