"""Stop-between-items shutdown for crawls.

A crawl only ever stops at an item boundary: before the next category,
the next listing page or the next detail page. The product being scraped
when SIGINT/SIGTERM arrives is extracted, reconciled and written before
the loop sees the flag, so a partition is never left half-updated by an
interrupt. The static driver also stops retrying a page once the flag is
up, so the item in flight fails fast instead of waiting out its backoff.

A second signal is a force quit: every browser registered through
``ShutdownHandler.guard`` is closed and the process exits with status 130.
"""

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from oilscrape.logging_config import get_logger

__all__ = [
    "FORCE_QUIT_EXIT_CODE",
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
]

logger = get_logger("shutdown")

FORCE_QUIT_EXIT_CODE = 130


class ShutdownHandler:
    """Process-wide stop flag plus the browsers a force quit must close.

    Usage:
        handler = get_shutdown_handler().install()
        with handler.guard(driver.close):
            for link in links:
                if handler.shutdown_requested:
                    break
                process_item_safely(session, link)
    """

    _instance: Optional["ShutdownHandler"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._open_drivers: List[Callable[[], None]] = []
        self._original_sigint = None
        self._original_sigterm = None
        self._installed = False

    @classmethod
    def get_instance(cls) -> "ShutdownHandler":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def install(self) -> "ShutdownHandler":
        """Route SIGINT and SIGTERM to this handler. Returns self."""
        if self._installed:
            return self

        self._original_sigint = signal.getsignal(signal.SIGINT)
        self._original_sigterm = signal.getsignal(signal.SIGTERM)

        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

        self._installed = True
        return self

    def uninstall(self) -> None:
        """Restore the signal handlers that were active before install."""
        if not self._installed:
            return

        if self._original_sigint is not None:
            signal.signal(signal.SIGINT, self._original_sigint)
        if self._original_sigterm is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm)

        self._installed = False

    def _handle_signal(self, signum: int, frame) -> None:
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        print(f"\n\n⚠️  Received {signal_name} - saving the current product, then stopping...")
        print("    (Press Ctrl+C again to close the browser and quit now)\n")
        logger.warning(f"{signal_name} received, stopping at the next item boundary")

        self._stop.set()

        signal.signal(signum, self._force_exit)

    def _force_exit(self, signum: int, frame) -> None:
        print("\n❌ Force quitting...")
        logger.warning("Second signal received, closing browsers and exiting")
        self.close_open_drivers()
        sys.exit(FORCE_QUIT_EXIT_CODE)

    @property
    def shutdown_requested(self) -> bool:
        return self._stop.is_set()

    def request_shutdown(self) -> None:
        """Raise the stop flag without a signal."""
        self._stop.set()

    @contextmanager
    def guard(self, close: Callable[[], None]) -> Iterator[None]:
        """Keep ``close`` reachable by a force quit while the block runs.

        The callback is removed on exit, so a finished session leaves
        nothing behind in the handler.
        """
        self._open_drivers.append(close)
        try:
            yield
        finally:
            if close in self._open_drivers:
                self._open_drivers.remove(close)

    @property
    def open_drivers(self) -> int:
        return len(self._open_drivers)

    def close_open_drivers(self) -> None:
        """Close every guarded browser. Failures are logged, not raised."""
        while self._open_drivers:
            close = self._open_drivers.pop()
            try:
                close()
            except Exception as e:
                logger.warning(f"Closing browser failed: {e}")

    def reset(self) -> None:
        """Lower the stop flag so the handler can serve another run."""
        self._stop.clear()


def get_shutdown_handler() -> ShutdownHandler:
    return ShutdownHandler.get_instance()


def shutdown_requested() -> bool:
    """True once a stop has been requested for this process."""
    return get_shutdown_handler().shutdown_requested
