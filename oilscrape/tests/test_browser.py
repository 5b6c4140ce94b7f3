"""Tests for the static HTTP driver and the delay policy."""

import random
from unittest.mock import MagicMock

import pytest
import requests

from oilscrape.backoff import BackoffPolicy
from oilscrape.browser import StaticDriver, create_driver
from oilscrape.errors import NavigationError
from oilscrape.shutdown import get_shutdown_handler

URL = "https://www.doterra.com/TW/zh_TW/p/lavender-oil"


def response(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.reason = "Error" if status >= 400 else "OK"
    return resp


@pytest.fixture
def fast_policy():
    return BackoffPolicy(base=0, jitter=0, max_retries=2, rng=random.Random(1))


class TestStaticDriver:
    """The requests-backed driver and its retry loop."""

    def test_successful_fetch(self, fast_policy):
        """A 200 response becomes the page content."""
        session = MagicMock()
        session.get.return_value = response(200, "<html><h1>薰衣草精油</h1></html>")
        driver = StaticDriver(session=session, policy=fast_policy, sleep=lambda s: None)

        driver.navigate(URL)

        assert "薰衣草精油" in driver.content()
        assert driver.wait_for("h1", 1000)
        assert not driver.wait_for(".missing", 1000)

    def test_retries_transient_status(self, fast_policy):
        """503 and 429 are retried with a backoff wait."""
        waits = []
        session = MagicMock()
        session.get.side_effect = [response(503), response(429), response(200, "<html>ok</html>")]
        driver = StaticDriver(session=session, policy=fast_policy, sleep=waits.append)

        driver.navigate(URL)

        assert driver.content() == "<html>ok</html>"
        assert len(waits) == 2
        assert session.get.call_count == 3

    def test_retries_connection_errors_then_gives_up(self, fast_policy):
        """Connection errors are retried up to the limit, then fail."""
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("reset")
        driver = StaticDriver(session=session, policy=fast_policy, sleep=lambda s: None)

        with pytest.raises(NavigationError, match="ConnectionError"):
            driver.navigate(URL)
        assert session.get.call_count == 3

    def test_stops_retrying_after_shutdown(self, fast_policy):
        """A stop requested during backoff fails the page instead of retrying."""
        session = MagicMock()
        session.get.return_value = response(503)
        driver = StaticDriver(
            session=session,
            policy=fast_policy,
            sleep=lambda s: get_shutdown_handler().request_shutdown(),
        )

        with pytest.raises(NavigationError, match="shutdown requested"):
            driver.navigate(URL)
        assert session.get.call_count == 1

    def test_not_found_is_not_retried(self, fast_policy):
        """A 404 fails at once."""
        session = MagicMock()
        session.get.return_value = response(404)
        driver = StaticDriver(session=session, policy=fast_policy, sleep=lambda s: None)

        with pytest.raises(NavigationError, match="HTTP 404"):
            driver.navigate(URL)
        assert session.get.call_count == 1

    def test_foreign_url_rejected_without_request(self, fast_policy):
        """URLs outside the catalog domain are never requested."""
        session = MagicMock()
        driver = StaticDriver(session=session, policy=fast_policy)

        with pytest.raises(NavigationError):
            driver.navigate("https://example.com/p/lavender-oil")
        session.get.assert_not_called()

    def test_create_driver_unknown_kind(self):
        """Unknown driver names are rejected."""
        with pytest.raises(ValueError):
            create_driver("selenium")


class TestBackoffPolicy:
    """Delays between items and between retries."""

    def test_item_delay_within_bounds(self):
        """Item delays stay within base plus jitter."""
        policy = BackoffPolicy(base=2.0, jitter=1.0, rng=random.Random(7))

        delays = [policy.item_delay() for _ in range(50)]

        assert all(2.0 <= d <= 3.0 for d in delays)

    def test_item_delay_capped(self):
        """Item delays never exceed the cap."""
        assert BackoffPolicy(base=500, jitter=0, max_delay=60).item_delay() == 60

    def test_retry_delay_grows(self):
        """Retry delays grow exponentially up to the cap."""
        policy = BackoffPolicy(growth=2.0, max_retry_delay=60, rng=random.Random(3))

        assert 1.0 <= policy.retry_delay(0) <= 2.0
        assert 8.0 <= policy.retry_delay(3) <= 9.0
        assert 60.0 <= policy.retry_delay(10) <= 61.0

    def test_overnight_is_slower(self):
        """The overnight profile waits longer between items."""
        assert BackoffPolicy.overnight().base > BackoffPolicy().base
