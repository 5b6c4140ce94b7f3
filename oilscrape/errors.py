"""Exception types raised across the scraping pipeline."""

__all__ = [
    "ScrapeError",
    "DriverInitError",
    "NavigationError",
    "DiscoveryError",
    "ExtractionError",
    "MissingNameError",
    "ReconciliationError",
    "PersistenceError",
]


class ScrapeError(Exception):
    """Base class for pipeline errors."""


class DriverInitError(ScrapeError):
    """Raised when the browser driver cannot be started. Fatal for the run."""


class NavigationError(ScrapeError):
    """Raised when a page fails to load or times out."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to load {url}: {reason}")
        self.url = url
        self.reason = reason


class DiscoveryError(ScrapeError):
    """Raised when a listing page cannot be discovered."""


class ExtractionError(ScrapeError):
    """Raised when a detail page cannot be turned into a record."""


class MissingNameError(ExtractionError):
    """Raised when no product name can be recovered, not even from the URL."""

    def __init__(self, url: str):
        super().__init__(f"No product name recoverable for {url}")
        self.url = url


class ReconciliationError(ScrapeError):
    """Raised when a record cannot be reconciled against the index."""


class PersistenceError(ScrapeError):
    """Raised when a partition write fails. Stops the run."""
