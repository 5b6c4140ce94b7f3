"""Business key derivation and identifier helpers."""

import re
import time
from typing import Optional
from urllib.parse import unquote, urlparse

__all__ = [
    "SLUG_KEY_PREFIX",
    "slug_from_url",
    "normalize_product_code",
    "derive_business_key",
    "name_from_slug",
    "generate_product_id",
]

# Slug-derived keys carry a prefix so they never collide with numeric codes
SLUG_KEY_PREFIX = "slug:"

DETAIL_PATH_RE = re.compile(r"/p/([^/?#]+)")
PRODUCT_CODE_RE = re.compile(r"\d{4,}")


def slug_from_url(url: Optional[str]) -> Optional[str]:
    """Return the detail slug of a URL ('/p/<slug>'), or the last path segment.

    >>> slug_from_url("https://www.doterra.com/TW/zh_TW/p/lavender-oil?x=1")
    'lavender-oil'
    """
    if not url:
        return None
    path = urlparse(url).path
    match = DETAIL_PATH_RE.search(path)
    if match:
        slug = match.group(1)
    else:
        segments = [s for s in path.split("/") if s]
        if not segments:
            return None
        slug = segments[-1]
    slug = unquote(slug).strip().lower()
    return slug or None


def normalize_product_code(code: Optional[str]) -> Optional[str]:
    """Reduce a scraped product code to its digits ('產品編號: 6020 0185' -> '60200185')."""
    if code is None:
        return None
    digits = re.sub(r"[\s-]", "", str(code))
    match = PRODUCT_CODE_RE.search(digits)
    return match.group(0) if match else None


def derive_business_key(product_code: Optional[str], url: Optional[str]) -> Optional[str]:
    """Derive the deduplication key for a record.

    The upstream product code wins; otherwise the URL slug is used with
    a prefix. Returns None when neither is available.
    """
    code = normalize_product_code(product_code)
    if code:
        return code
    slug = slug_from_url(url)
    if slug:
        return f"{SLUG_KEY_PREFIX}{slug}"
    return None


def name_from_slug(url: Optional[str]) -> Optional[str]:
    """Build a fallback display name from the URL slug ('lavender-oil' -> 'Lavender Oil')."""
    slug = slug_from_url(url)
    if not slug:
        return None
    words = [w for w in re.split(r"[-_]+", slug) if w]
    if not words:
        return None
    return " ".join(w.capitalize() for w in words)


def generate_product_id(category: str, url: Optional[str], now: Optional[float] = None) -> str:
    """Generate the internal id for a new record.

    The id is opaque and timestamp based; only the business key is stable
    across re-scrapes.
    """
    millis = int((now if now is not None else time.time()) * 1000)
    slug = slug_from_url(url) or "unknown"
    return f"doterra-{category}-{millis}-{slug}"
