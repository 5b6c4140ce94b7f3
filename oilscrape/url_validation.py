"""URL validation and sanitization utilities.

Provides security-focused URL validation for scraped content.
"""

import re
from typing import Optional, Set
from urllib.parse import urljoin, urlparse, urlunparse

__all__ = [
    "validate_url",
    "validate_product_url",
    "validate_image_url",
    "sanitize_url",
    "canonical_detail_url",
    "is_product_url",
    "URLValidationError",
    "ALLOWED_DOMAINS",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


# Domains we trust for scraping
ALLOWED_DOMAINS: Set[str] = frozenset({
    "www.doterra.com",
    "doterra.com",
    # CDN domains for images
    "media.doterra.com",
    "static.doterra.com",
})

# Detail pages: /TW/zh_TW/p/lavender-oil
PRODUCT_PATH_PATTERN = re.compile(r"^(?:/[A-Za-z]{2}/[A-Za-z]{2}_[A-Za-z]{2})?/p/[^/?#]+/?$")

# Pattern for image URLs
IMAGE_URL_PATTERN = re.compile(
    r"^https?://[a-zA-Z0-9.-]+\.[a-z]{2,}/.*\.(jpg|jpeg|png|webp|avif|gif)(\?.*)?$",
    re.IGNORECASE
)

# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}


def sanitize_url(url: str) -> str:
    """Sanitize a URL by stripping whitespace and normalizing.

    Args:
        url: Raw URL string

    Returns:
        Sanitized URL string
    """
    if not url:
        return ""

    # Strip whitespace and control characters
    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)

    # Remove any null bytes or other injection attempts
    url = url.replace("\x00", "").replace("%00", "")

    return url


def validate_url(
    url: str,
    allowed_domains: Optional[Set[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate a URL for safety.

    Args:
        url: URL to validate
        allowed_domains: Set of allowed domains (default: ALLOWED_DOMAINS)
        require_https: Whether to require HTTPS scheme

    Returns:
        Validated URL

    Raises:
        URLValidationError: If URL is invalid or from untrusted domain
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")

    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme}")

    domain = parsed.netloc.lower()
    if not domain:
        raise URLValidationError("URL has no domain")

    # Strip port if present for domain check
    domain_without_port = domain.split(":")[0]

    domains_to_check = allowed_domains if allowed_domains is not None else ALLOWED_DOMAINS
    if domains_to_check and domain_without_port not in domains_to_check:
        raise URLValidationError(
            f"URL domain '{domain_without_port}' not in allowed domains: {sorted(domains_to_check)}"
        )

    suspicious_patterns = [
        r"\.\.\/",           # Path traversal
        r"%2e%2e",           # Encoded path traversal
        r"<script",          # XSS attempt
        r"javascript:",      # JS injection
    ]

    url_lower = url.lower()
    for pattern in suspicious_patterns:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")

    return url


def is_product_url(href: str) -> bool:
    """Check if a URL or path looks like a product detail page."""
    if not href:
        return False
    path = urlparse(href).path
    return PRODUCT_PATH_PATTERN.match(path) is not None


def canonical_detail_url(href: str, base_url: str) -> str:
    """Resolve a detail link against the listing URL and drop query and fragment."""
    absolute = urljoin(base_url, sanitize_url(href))
    parsed = urlparse(absolute)
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme, parsed.netloc.lower(), path, "", "", ""))


def validate_product_url(url: str) -> str:
    """Validate a product page URL.

    Args:
        url: Product URL to validate

    Returns:
        Validated URL

    Raises:
        URLValidationError: If URL is not a valid product URL
    """
    url = validate_url(url, require_https=True)

    if not is_product_url(url):
        raise URLValidationError(
            f"URL does not match product pattern: {url}\n"
            f"Expected: https://www.doterra.com/TW/zh_TW/p/<slug>"
        )

    return url


def validate_image_url(url: str) -> str:
    """Validate an image URL.

    Args:
        url: Image URL to validate

    Returns:
        Validated URL

    Raises:
        URLValidationError: If URL is not a valid image URL
    """
    # Allow None/empty for optional images
    if not url:
        return ""

    # Images may come from any CDN, but the format is still checked
    url = sanitize_url(url)
    if url.startswith("//"):
        url = "https:" + url

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse image URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme in image: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid image URL scheme: {scheme}")

    if not IMAGE_URL_PATTERN.match(url):
        # Allow CDN URLs that might not have extensions
        if "medias" not in url.lower() and "media" not in url.lower():
            raise URLValidationError(f"URL does not look like an image: {url}")

    return url
