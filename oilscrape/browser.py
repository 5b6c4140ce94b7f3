"""Page drivers: a headless browser and a plain HTTP fallback.

Both expose the same small capability surface (navigate, content,
evaluate, wait_for, scroll, pause, close). Callers never touch Playwright
or requests directly, which keeps the pipeline testable with a fake
driver serving canned HTML.
"""

import time
from typing import Any, Callable, Optional

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from oilscrape.backoff import BackoffPolicy
from oilscrape.config import (
    HEADERS,
    HEADLESS,
    NAVIGATION_TIMEOUT_MS,
    REQUEST_TIMEOUT,
    RETRY_STATUS_CODES,
    USER_AGENT,
)
from oilscrape.errors import DriverInitError, NavigationError
from oilscrape.logging_config import get_logger
from oilscrape.shutdown import shutdown_requested
from oilscrape.url_validation import URLValidationError, validate_url

__all__ = [
    "BrowserDriver",
    "PlaywrightDriver",
    "StaticDriver",
    "create_driver",
]

logger = get_logger("browser")

# Hide the automation flag that bot defenses look for
HIDE_WEBDRIVER_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
delete window.__playwright;
delete window.__pw_manual;
"""

SCROLL_SCRIPT = "() => window.scrollTo(0, document.body.scrollHeight)"


class BrowserDriver:
    """Capability interface consumed by discovery and extraction."""

    name = "base"

    def navigate(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        """Load ``url``. Raises NavigationError on failure or timeout."""
        raise NotImplementedError

    def content(self) -> str:
        """Return the current document's HTML."""
        raise NotImplementedError

    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script against the live document and return its result."""
        raise NotImplementedError

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        """Wait until ``selector`` matches. Returns False on timeout."""
        raise NotImplementedError

    def scroll_to_bottom(self) -> None:
        """Scroll to the end of the document to trigger lazy loading."""

    def pause(self, ms: int) -> None:
        """Let client-side rendering settle."""
        time.sleep(ms / 1000)

    def close(self) -> None:
        """Release the underlying resources. Safe to call twice."""

    def __enter__(self) -> "BrowserDriver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PlaywrightDriver(BrowserDriver):
    """Headless Chromium driven through Playwright's sync API.

    A single page is reused for every navigation so the site only ever
    sees one tab from this client.
    """

    name = "playwright"

    def __init__(self, headless: bool = HEADLESS, user_agent: str = USER_AGENT):
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=headless,
                args=[
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                ],
            )
            self._context = self._browser.new_context(
                user_agent=user_agent,
                viewport={"width": 1920, "height": 1080},
                locale="zh-TW",
            )
            self._context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
            self._page = self._context.new_page()
        except PlaywrightError as e:
            self.close()
            raise DriverInitError(f"Failed to launch Chromium: {e}") from e
        logger.info(f"Browser started (headless={headless})")

    def navigate(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        try:
            response = self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from e
        except PlaywrightError as e:
            raise NavigationError(url, str(e)) from e
        if response is not None and response.status >= 400:
            raise NavigationError(url, f"HTTP {response.status}")

    def content(self) -> str:
        return self._page.content()

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return self._page.evaluate(script)
        return self._page.evaluate(script, arg)

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        try:
            self._page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.debug(f"Timed out waiting for {selector!r}")
            return False

    def scroll_to_bottom(self) -> None:
        self._page.evaluate(SCROLL_SCRIPT)

    def pause(self, ms: int) -> None:
        self._page.wait_for_timeout(ms)

    def close(self) -> None:
        for resource in (self._context, self._browser):
            if resource is not None:
                try:
                    resource.close()
                except Exception as e:
                    logger.debug(f"Ignoring error while closing browser: {e}")
        if self._playwright is not None:
            self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None


class StaticDriver(BrowserDriver):
    """Plain HTTP driver for pages that render server-side.

    Scripts cannot run, so evaluate() is unsupported and scrolling does
    nothing. Transient failures (429/5xx, connection errors, timeouts) are
    retried with the injected backoff policy.
    """

    name = "static"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or self.create_session()
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._html = ""
        self._soup: Optional[BeautifulSoup] = None

    @staticmethod
    def create_session() -> requests.Session:
        """Create a requests Session with connection pooling and proper headers."""
        session = requests.Session()
        session.headers.update(HEADERS)
        session.headers.setdefault("Accept-Encoding", "gzip, deflate")
        return session

    def navigate(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        try:
            url = validate_url(url)
        except URLValidationError as e:
            raise NavigationError(url, f"invalid URL: {e}") from e

        timeout = max(timeout_ms / 1000, REQUEST_TIMEOUT)
        last_error = "unknown error"

        for attempt in range(self.policy.max_retries + 1):
            if attempt and shutdown_requested():
                raise NavigationError(url, f"shutdown requested, not retrying ({last_error})")

            try:
                resp = self.session.get(url, timeout=timeout)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < self.policy.max_retries:
                    self._backoff(attempt, type(e).__name__)
                    continue
                raise NavigationError(url, last_error) from e
            except requests.exceptions.RequestException as e:
                raise NavigationError(url, str(e)) from e

            if resp.status_code in RETRY_STATUS_CODES and attempt < self.policy.max_retries:
                last_error = f"HTTP {resp.status_code}"
                self._backoff(attempt, last_error)
                continue

            if resp.status_code >= 400:
                raise NavigationError(url, f"HTTP {resp.status_code}: {resp.reason}")

            self._html = str(resp.text)
            self._soup = None
            return

        raise NavigationError(url, f"gave up after {self.policy.max_retries} retries ({last_error})")

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.policy.retry_delay(attempt)
        logger.warning(
            f"{reason}, backing off {delay:.1f}s (attempt {attempt + 1}/{self.policy.max_retries})"
        )
        self._sleep(delay)

    def content(self) -> str:
        return self._html

    def evaluate(self, script: str, arg: Any = None) -> Any:
        raise NotImplementedError("StaticDriver cannot execute scripts")

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        if self._soup is None:
            self._soup = BeautifulSoup(self._html, "html.parser")
        return self._soup.select_one(selector) is not None

    def pause(self, ms: int) -> None:
        # Nothing renders client-side
        return None

    def close(self) -> None:
        self.session.close()


def create_driver(kind: str = "playwright", headless: bool = HEADLESS, **kwargs: Any) -> BrowserDriver:
    """Build a driver by name ('playwright' or 'static')."""
    if kind == "playwright":
        return PlaywrightDriver(headless=headless)
    if kind == "static":
        return StaticDriver(**kwargs)
    raise ValueError(f"Unknown driver: {kind}")
