"""Pipeline orchestrator: discovery, extraction, normalization, reconciliation, persistence.

One browser page is driven sequentially through every listing and detail
page. Per-item failures are logged, counted and skipped; only a failed
partition write (PersistenceError) or a driver that cannot start
(DriverInitError) stops the run.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from oilscrape.backoff import BackoffPolicy
from oilscrape.browser import BrowserDriver, create_driver
from oilscrape.config import (
    CATEGORY_URLS,
    DEFAULT_MAX_PAGES,
    DETAIL_READY_SELECTOR,
    DETAIL_SETTLE_MS,
    HEADLESS,
    MAX_PAGES_PER_CATEGORY,
    NAVIGATION_TIMEOUT_MS,
    SELECTOR_TIMEOUT_MS,
    get_category_profile,
)
from oilscrape.discovery import discover
from oilscrape.errors import DiscoveryError, DriverInitError, MissingNameError, PersistenceError
from oilscrape.extractor import extract_detail
from oilscrape.logging_config import get_logger, log_scrape_event
from oilscrape.models import DetailLink, RawFields
from oilscrape.normalizer import normalize
from oilscrape.reconcile import INSERT, SKIP, ReconciliationIndex, reconcile
from oilscrape.session import CrawlSession, CrawlState
from oilscrape.shutdown import get_shutdown_handler, shutdown_requested
from oilscrape.store import CategoryStore

__all__ = [
    "CrawlState",
    "fetch_detail",
    "process_item",
    "process_item_safely",
    "crawl_category",
    "open_session",
]

logger = get_logger("pipeline")


def fetch_detail(session: CrawlSession, url: str) -> RawFields:
    """Load a detail page and extract its raw fields.

    A selector timeout is not an error: extraction runs on whatever has
    rendered and missing fields stay empty.
    """
    driver = session.driver
    driver.navigate(url, timeout_ms=NAVIGATION_TIMEOUT_MS)
    if not driver.wait_for(DETAIL_READY_SELECTOR, SELECTOR_TIMEOUT_MS):
        logger.warning(f"Detail page did not finish rendering: {url}")
    driver.pause(DETAIL_SETTLE_MS)
    return extract_detail(driver.content(), url)


def _collections_for(category: Optional[str]) -> List[str]:
    profile = get_category_profile(category) if category else None
    if profile and profile.get("collection"):
        return [profile["collection"]]
    return []


def process_item(session: CrawlSession, link: DetailLink, category: Optional[str] = None) -> str:
    """Run one detail URL through extraction, normalization, reconciliation and persistence.

    Returns:
        The reconciliation action taken ('insert', 'update' or 'skip')
    """
    session.throttle()
    session.items_processed += 1

    session.transition(CrawlState.EXTRACTING)
    raw = fetch_detail(session, link.url)
    if raw.sources.get("name") == "url_slug" and link.name:
        raw.name = link.name
        raw.sources["name"] = "listing_link"
    record = normalize(raw, category=category or "", collections=_collections_for(category))
    session.stats.ambiguities += len(record.split_warnings)

    session.transition(CrawlState.RECONCILING)
    decision = reconcile(record, session.index, crawl_category=category)

    if decision.action == SKIP:
        session.stats.skipped += 1
        if decision.reason == "key_collision":
            session.stats.collisions += 1
        logger.info(f"        SKIP ({decision.reason}): {record.name}")
        log_scrape_event("product_skipped", {
            "url": link.url,
            "key": decision.key,
            "reason": decision.reason,
        }, level=logging.DEBUG)
        return decision.action

    session.index.apply(decision)

    session.transition(CrawlState.PERSISTING)
    if not session.dry_run:
        session.store.write(decision.partition, session.index.records(decision.partition))

    if decision.action == INSERT:
        session.stats.inserted += 1
        logger.info(f"        NEW {decision.partition}: {record.name} [{decision.key}]")
    else:
        session.stats.updated += 1
        logger.info(f"        UPDATED {record.name}: {', '.join(decision.changed_fields)}")
    event = "product_inserted" if decision.action == INSERT else "product_updated"
    log_scrape_event(event, {
        "url": link.url,
        "key": decision.key,
        "partition": decision.partition,
        "changed_fields": decision.changed_fields,
        "sources": raw.sources,
    })
    return decision.action


def process_item_safely(session: CrawlSession, link: DetailLink, category: Optional[str] = None) -> Optional[str]:
    """process_item with per-item failure isolation.

    Returns the action, or None when the item was rejected or failed.
    PersistenceError and KeyboardInterrupt propagate.
    """
    try:
        return process_item(session, link, category)
    except (PersistenceError, KeyboardInterrupt):
        raise
    except MissingNameError as e:
        session.stats.rejected += 1
        session.stats.record_error(link.url, e)
        logger.warning(f"        REJECTED {link.url}: {e}")
        log_scrape_event("product_rejected", {
            "url": link.url,
            "error": str(e),
            "category": category,
        }, level=logging.WARNING)
    except Exception as e:
        session.stats.failed += 1
        session.stats.record_error(link.url, e)
        logger.error(f"        ERROR fetching/parsing {link.url}: {e}")
        log_scrape_event("product_error", {
            "url": link.url,
            "error": str(e),
            "error_type": type(e).__name__,
            "category": category,
        }, level=logging.ERROR)
    return None


def crawl_category(
    session: CrawlSession,
    category: str,
    start_page: int = 0,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Dict[str, Any]:
    """Crawl one category listing page by page.

    Pagination ends at the first page with no detail links. A listing page
    that fails to load stops this category only.

    Args:
        session: Crawl context
        category: Category key from CATEGORY_URLS
        start_page: Zero-based page to start from (for resumed runs)
        max_pages: Maximum number of pages to visit (capped by MAX_PAGES_PER_CATEGORY)

    Returns:
        Summary dict with pages visited, links found and final status
    """
    if category not in CATEGORY_URLS:
        raise ValueError(f"Unknown category: {category}")

    url = CATEGORY_URLS[category]
    max_pages = min(max_pages, MAX_PAGES_PER_CATEGORY)
    logger.info(f"Scraping category {category}: {url}")
    log_scrape_event("category_start", {
        "category": category,
        "url": url,
        "start_page": start_page,
        "max_pages": max_pages,
        "dry_run": session.dry_run,
    })

    page = start_page
    pages_visited = 0
    links_found = 0
    status = "complete"

    try:
        while pages_visited < max_pages:
            if shutdown_requested():
                logger.info("Shutdown requested, stopping category scrape gracefully")
                status = "interrupted"
                break

            session.transition(CrawlState.DISCOVERING)
            try:
                links = discover(session.driver, url, page)
            except DiscoveryError as e:
                logger.error(f"  {e}; stopping {category}")
                log_scrape_event("discovery_error", {
                    "category": category,
                    "page": page,
                    "error": str(e),
                }, level=logging.ERROR)
                status = "discovery_failed"
                break

            session.stats.pages += 1
            pages_visited += 1
            if not links:
                logger.info(f"  No product links on page {page}, end of {category}")
                break

            links_found += len(links)
            session.stats.discovered += len(links)
            log_scrape_event("page_discovered", {
                "category": category,
                "page": page,
                "links": len(links),
            }, level=logging.DEBUG)

            for i, link in enumerate(links, start=1):
                if shutdown_requested():
                    logger.info("Shutdown requested, stopping after current product")
                    status = "interrupted"
                    break
                logger.info(f"      [{i}/{len(links)}] {link.url}")
                if session.dry_run:
                    continue
                process_item_safely(session, link, category)

            if status == "interrupted":
                break

            if not session.dry_run:
                session.store.update_scrape_state(category, page, len(links))
            page += 1
        else:
            logger.info(f"  Reached max pages limit ({max_pages})")

    except KeyboardInterrupt:
        logger.info("Category scrape interrupted by user")
        status = "interrupted"

    logger.info(f"  Category {category} {status}: {pages_visited} pages, {links_found} links")
    log_scrape_event("category_complete", {
        "category": category,
        "pages_scraped": pages_visited,
        "links_found": links_found,
        "status": status,
        **session.stats.as_dict(),
    })
    return {
        "category": category,
        "pages": pages_visited,
        "links": links_found,
        "last_page": page,
        "status": status,
    }


@contextmanager
def open_session(
    store: Optional[CategoryStore] = None,
    driver: Optional[BrowserDriver] = None,
    driver_kind: str = "playwright",
    headless: bool = HEADLESS,
    policy: Optional[BackoffPolicy] = None,
    dry_run: bool = False,
) -> Generator[CrawlSession, None, None]:
    """Open a crawl session: index the store, start the driver, close it afterwards.

    Raises:
        DriverInitError: If the browser cannot be started
    """
    store = store or CategoryStore()
    policy = policy or BackoffPolicy()
    index = ReconciliationIndex.from_store(store)

    if driver is None:
        try:
            if driver_kind == "static":
                driver = create_driver("static", policy=policy)
            else:
                driver = create_driver(driver_kind, headless=headless)
        except DriverInitError as e:
            logger.critical(f"Driver failed to start ({CrawlState.FATAL_ERROR.value}): {e}")
            log_scrape_event("fatal_error", {"error": str(e)}, level=logging.CRITICAL)
            raise

    session = CrawlSession(driver=driver, store=store, index=index, policy=policy, dry_run=dry_run)
    try:
        with get_shutdown_handler().guard(driver.close):
            yield session
        session.transition(CrawlState.DONE)
    finally:
        driver.close()
        logger.info(f"Run finished: {session.stats.summary()}")
