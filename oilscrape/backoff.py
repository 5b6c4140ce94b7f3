"""Delay policy shared by the orchestrator and the HTTP driver."""

import random
from dataclasses import dataclass, field
from typing import Optional

from oilscrape.config import (
    DELAY_BASE,
    DELAY_JITTER,
    DELAY_MAX,
    DELAY_OVERNIGHT_BASE,
    DELAY_OVERNIGHT_JITTER,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    RETRY_BACKOFF_BASE,
)

__all__ = ["BackoffPolicy"]


@dataclass
class BackoffPolicy:
    """Base delay plus jitter, with optional exponential growth for retries.

    The inter-item delay keeps the request rate against the source site
    bounded; the retry delay grows as ``growth ** attempt``.
    """

    base: float = DELAY_BASE
    jitter: float = DELAY_JITTER
    growth: float = RETRY_BACKOFF_BASE
    max_delay: float = DELAY_MAX
    max_retry_delay: float = MAX_RETRY_BACKOFF
    max_retries: int = MAX_RETRIES
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def overnight(cls, rng: Optional[random.Random] = None) -> "BackoffPolicy":
        """Slow profile for unattended runs."""
        return cls(
            base=DELAY_OVERNIGHT_BASE,
            jitter=DELAY_OVERNIGHT_JITTER,
            rng=rng or random.Random(),
        )

    def item_delay(self) -> float:
        """Seconds to wait between two detail pages."""
        delay = self.base + self.rng.uniform(0, self.jitter) if self.jitter > 0 else self.base
        return min(max(delay, 0.0), self.max_delay)

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        backoff = min(self.growth ** attempt, self.max_retry_delay)
        return backoff + self.rng.uniform(0, 1)
