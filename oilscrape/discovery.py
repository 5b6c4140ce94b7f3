"""Listing page discovery: find product detail links on a category page."""

from typing import List
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from bs4 import BeautifulSoup

from oilscrape.browser import BrowserDriver
from oilscrape.config import (
    DEFAULT_SORT,
    LISTING_READY_SELECTOR,
    LISTING_SETTLE_MS,
    NAVIGATION_TIMEOUT_MS,
    PAGE_PARAM,
    SCROLL_PASSES,
    SCROLL_PAUSE_MS,
    SELECTOR_TIMEOUT_MS,
    SORT_PARAM,
)
from oilscrape.errors import DiscoveryError, NavigationError
from oilscrape.logging_config import get_logger
from oilscrape.models import DetailLink
from oilscrape.url_validation import (
    URLValidationError,
    canonical_detail_url,
    is_product_url,
    validate_product_url,
)

__all__ = ["build_listing_url", "extract_detail_links", "discover"]

logger = get_logger("discovery")


def build_listing_url(category_url: str, page_index: int, sort: str = DEFAULT_SORT) -> str:
    """Append the page and sort parameters to a listing URL.

    Page indexes are zero-based, matching the site's own query parameter.
    """
    parsed = urlparse(category_url)
    params = [(k, v) for k, v in parse_qsl(parsed.query) if k not in (PAGE_PARAM, SORT_PARAM)]
    params.append((PAGE_PARAM, str(page_index)))
    if sort:
        params.append((SORT_PARAM, sort))
    return urlunparse(parsed._replace(query=urlencode(params)))


def _link_name(anchor) -> str:
    name = anchor.get_text(" ", strip=True)
    if not name:
        name = (anchor.get("title") or anchor.get("aria-label") or "").strip()
    if not name:
        img = anchor.find("img")
        if img is not None:
            name = (img.get("alt") or "").strip()
    return " ".join(name.split())


def extract_detail_links(html: str, base_url: str) -> List[DetailLink]:
    """Collect product detail links from listing HTML.

    Links whose path is not a detail page are ignored, as are links with no
    usable name. Duplicates are removed by absolute URL, within this page
    only; the first occurrence keeps its position.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    links: List[DetailLink] = []
    seen = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not is_product_url(href):
            continue

        name = _link_name(anchor)
        if not name:
            continue

        try:
            url = validate_product_url(canonical_detail_url(href, base_url))
        except URLValidationError as e:
            logger.warning(f"Skipping invalid product link {href!r}: {e}")
            continue

        if url in seen:
            continue
        seen.add(url)
        links.append(DetailLink(name=name, url=url))

    return links


def discover(driver: BrowserDriver, category_url: str, page_index: int) -> List[DetailLink]:
    """Load one listing page and return its detail links.

    An empty list means the category has no more pages. Navigation
    failures are raised as DiscoveryError so the caller can stop paginating
    this category without aborting the run.
    """
    listing_url = build_listing_url(category_url, page_index)
    logger.info(f"  Page {page_index}: {listing_url}")

    try:
        driver.navigate(listing_url, timeout_ms=NAVIGATION_TIMEOUT_MS)
    except NavigationError as e:
        raise DiscoveryError(f"Listing page {page_index} failed: {e}") from e

    if not driver.wait_for(LISTING_READY_SELECTOR, SELECTOR_TIMEOUT_MS):
        logger.debug(f"No product links rendered yet on {listing_url}")
    driver.pause(LISTING_SETTLE_MS)

    for _ in range(SCROLL_PASSES):
        driver.scroll_to_bottom()
        driver.pause(SCROLL_PAUSE_MS)

    links = extract_detail_links(driver.content(), listing_url)
    logger.info(f"    Found {len(links)} product links on page {page_index}")
    return links
