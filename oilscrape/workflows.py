"""High-level scraping workflows.

Orchestration of multi-category crawls, resumed crawls, explicit URL
scrapes and re-scraping of incomplete records, plus read-only store
statistics.
"""

from typing import Any, Dict, List, Optional, Sequence

from oilscrape.config import CATEGORY_URLS, DEFAULT_MAX_PAGES
from oilscrape.logging_config import get_logger
from oilscrape.models import CATEGORIES, DetailLink, ProductRecord
from oilscrape.pipeline import crawl_category, process_item_safely
from oilscrape.session import CrawlSession
from oilscrape.shutdown import shutdown_requested
from oilscrape.store import CategoryStore
from oilscrape.text_utils import is_empty
from oilscrape.url_validation import URLValidationError, validate_product_url

__all__ = [
    "DETAIL_FIELDS",
    "resume_page",
    "crawl_categories",
    "scrape_urls",
    "is_incomplete",
    "refresh_incomplete",
    "collect_stats",
]

logger = get_logger("workflows")

# Fields whose absence marks a record for re-scraping
DETAIL_FIELDS = ("description", "main_benefits", "usage_instructions", "retail_price")


def resume_page(store: CategoryStore, category: str) -> int:
    """Page to resume a category from: one past the last recorded page."""
    state = store.get_scrape_state(category)
    if not state or state.get("last_page_scraped") is None:
        return 0
    return int(state["last_page_scraped"]) + 1


def crawl_categories(
    session: CrawlSession,
    categories: Optional[Sequence[str]] = None,
    start_page: int = 0,
    resume: bool = False,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> List[Dict[str, Any]]:
    """Crawl several categories in order.

    Args:
        session: Crawl context
        categories: Category keys (default: all, in CATEGORY_URLS order)
        start_page: Page to start every category from
        resume: Start each category after its last recorded page instead
        max_pages: Page limit per category

    Returns:
        One summary dict per category crawled
    """
    selected = list(categories) if categories else list(CATEGORY_URLS)
    unknown = [c for c in selected if c not in CATEGORY_URLS]
    if unknown:
        logger.warning(f"Ignoring unknown categories {unknown}. Available: {list(CATEGORY_URLS)}")
    selected = [c for c in selected if c in CATEGORY_URLS]

    summaries = []
    for category in selected:
        if shutdown_requested():
            logger.info("Shutdown requested, not starting further categories")
            break
        first_page = resume_page(session.store, category) if resume else start_page
        if resume and first_page:
            logger.info(f"Resuming {category} from page {first_page}")
        summaries.append(crawl_category(session, category, start_page=first_page, max_pages=max_pages))
    return summaries


def scrape_urls(
    session: CrawlSession,
    urls: Sequence[str],
    category: Optional[str] = None,
) -> Dict[str, int]:
    """Scrape explicit detail URLs.

    Without a category the partition of new records is chosen from the
    product name.

    Returns:
        Count of actions taken, keyed by action name (plus 'invalid' and 'failed')
    """
    counts: Dict[str, int] = {"insert": 0, "update": 0, "skip": 0, "invalid": 0, "failed": 0}
    for i, url in enumerate(urls, start=1):
        if shutdown_requested():
            logger.info("Shutdown requested, stopping URL scrape")
            break
        try:
            url = validate_product_url(url)
        except URLValidationError as e:
            logger.warning(f"Skipping {url}: {e}")
            counts["invalid"] += 1
            continue

        logger.info(f"[{i}/{len(urls)}] {url}")
        action = process_item_safely(session, DetailLink(name="", url=url), category)
        counts[action or "failed"] += 1
    return counts


def is_incomplete(record: ProductRecord) -> bool:
    return any(is_empty(getattr(record, attr)) for attr in DETAIL_FIELDS)


def refresh_incomplete(session: CrawlSession, categories: Optional[Sequence[str]] = None) -> Dict[str, int]:
    """Re-scrape stored records that are missing detail fields.

    Results go through the normal fallback merge, so nothing already
    stored is lost.
    """
    partitions = list(categories) if categories else list(CATEGORIES)
    targets = [
        record
        for partition in partitions
        for record in session.index.records(partition)
        if record.url and is_incomplete(record)
    ]
    logger.info(f"Found {len(targets)} incomplete records to refresh")

    counts: Dict[str, int] = {"insert": 0, "update": 0, "skip": 0, "failed": 0}
    for i, record in enumerate(targets, start=1):
        if shutdown_requested():
            logger.info("Shutdown requested, stopping refresh")
            break
        missing = [attr for attr in DETAIL_FIELDS if is_empty(getattr(record, attr))]
        logger.info(f"[{i}/{len(targets)}] {record.name} (missing {', '.join(missing)})")
        action = process_item_safely(session, DetailLink(name=record.name, url=record.url), record.category)
        counts[action or "failed"] += 1
    return counts


def collect_stats(store: CategoryStore) -> Dict[str, Any]:
    """Record counts, detail field coverage and scrape state per partition."""
    partitions = store.read_all()
    stats: Dict[str, Any] = {
        "partitions": {},
        "total": 0,
        "aggregate": len(store.read_aggregate()),
        "coverage": {},
        "state": {},
    }

    all_records = []
    for partition, records in partitions.items():
        stats["partitions"][partition] = len(records)
        stats["total"] += len(records)
        all_records.extend(records)
        state = store.get_scrape_state(partition)
        if state:
            stats["state"][partition] = state

    for attr in DETAIL_FIELDS:
        filled = sum(1 for record in all_records if not is_empty(getattr(record, attr)))
        stats["coverage"][attr] = (filled, len(all_records))
    stats["incomplete"] = sum(1 for record in all_records if is_incomplete(record))
    return stats
