"""Per-run crawl context threaded through every pipeline stage."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

from oilscrape.backoff import BackoffPolicy
from oilscrape.browser import BrowserDriver
from oilscrape.logging_config import get_logger
from oilscrape.reconcile import ReconciliationIndex
from oilscrape.store import CategoryStore

__all__ = ["CrawlState", "RunStats", "CrawlSession"]

logger = get_logger("session")


class CrawlState(Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    DONE = "done"
    FATAL_ERROR = "fatal_error"


@dataclass
class RunStats:
    """Run-level counters. Per-item failures only surface here and in the logs."""

    pages: int = 0
    discovered: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    rejected: int = 0
    failed: int = 0
    collisions: int = 0
    ambiguities: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def record_error(self, url: str, error: BaseException) -> None:
        self.errors.append({"url": url, "error": f"{type(error).__name__}: {error}"})

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pages": self.pages,
            "discovered": self.discovered,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "failed": self.failed,
            "collisions": self.collisions,
            "ambiguities": self.ambiguities,
        }

    def summary(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.as_dict().items())


@dataclass
class CrawlSession:
    """Driver handle, store, key index, rate limiting and counters for one run."""

    driver: BrowserDriver
    store: CategoryStore
    index: ReconciliationIndex
    policy: BackoffPolicy = field(default_factory=BackoffPolicy)
    stats: RunStats = field(default_factory=RunStats)
    dry_run: bool = False
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    state: CrawlState = CrawlState.IDLE
    # Items processed so far; the first item is not delayed
    items_processed: int = 0

    def transition(self, state: CrawlState) -> None:
        if state is not self.state:
            logger.debug(f"State {self.state.value} -> {state.value}")
            self.state = state

    def throttle(self) -> float:
        """Wait the randomized inter-item delay. Returns the seconds waited."""
        if self.items_processed == 0:
            return 0.0
        delay = self.policy.item_delay()
        self.sleep(delay)
        return delay
