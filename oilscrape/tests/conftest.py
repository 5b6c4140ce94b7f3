"""Shared test fixtures for the scraper test suite."""

from typing import Dict, List, Optional

import pytest
from bs4 import BeautifulSoup

from oilscrape.backoff import BackoffPolicy
from oilscrape.browser import BrowserDriver
from oilscrape.errors import NavigationError
from oilscrape.reconcile import ReconciliationIndex
from oilscrape.session import CrawlSession
from oilscrape.shutdown import get_shutdown_handler
from oilscrape.store import CategoryStore


LAVENDER_URL = "https://www.doterra.com/TW/zh_TW/p/lavender-oil"

LAVENDER_HTML = """
<html>
<head>
  <title>薰衣草精油 | dōTERRA 台灣</title>
  <meta property="og:image" content="https://media.doterra.com/tw/images/product/lavender-15ml.png">
  <meta name="description" content="薰衣草精油自古以來備受珍視。">
</head>
<body>
<div class="row">
  <div class="col-sm-4">
    <h4>萃取方法</h4>
    <p>蒸氣蒸餾法</p>
    <h4>萃取部位</h4>
    <p>花</p>
    <h4>香味描述</h4>
    <p>花香、清新、草本</p>
  </div>
  <div class="col-sm-8">
    <h1>薰衣草精油</h1>
    <h3 class="english-name">Lavender</h3>
    <p><i>Lavandula angustifolia</i></p>
    <div itemprop="description">薰衣草精油自古以來備受珍視，具有舒緩與平衡的特性。</div>
    <h2>主要功效</h2>
    <hr>
    <ul>
      <li>舒緩偶發性皮膚不適</li>
      <li>促進安穩睡眠</li>
      <li>減輕緊張情緒</li>
    </ul>
    <h2>使用方法</h2>
    <div class="spacer"></div>
    <p>擴香：在擴香儀中加入三至四滴。  局部使用：稀釋後塗抹於所需部位。</p>
    <h2>注意事項</h2>
    可能造成皮膚敏感。<br>請置於孩童無法取得處。
    <div class="pricing">
      <span>產品編號：30010001</span>
      <span>建議售價：NT$1,460</span>
      <span>會員價：NT$1,095</span>
      <span>PV：36.5</span>
      <span>規格：15ml</span>
    </div>
  </div>
</div>
</body>
</html>
"""


def detail_page(
    name: str,
    code: Optional[str] = None,
    benefits: Optional[List[str]] = None,
    cautions: Optional[str] = None,
    price: Optional[str] = None,
    description: str = "",
) -> str:
    """Build a minimal detail page."""
    parts = [f"<html><head><title>{name}</title></head><body><div class='col-sm-8'><h1>{name}</h1>"]
    if description:
        parts.append(f"<div itemprop='description'>{description}</div>")
    if benefits:
        items = "".join(f"<li>{b}</li>" for b in benefits)
        parts.append(f"<h2>主要功效</h2><ul>{items}</ul>")
    if cautions:
        parts.append(f"<h2>注意事項</h2><p>{cautions}</p>")
    extra = []
    if code:
        extra.append(f"<span>產品編號：{code}</span>")
    if price:
        extra.append(f"<span>建議售價：{price}</span>")
    if extra:
        parts.append(f"<div class='pricing'>{''.join(extra)}</div>")
    parts.append("</div></body></html>")
    return "".join(parts)


def listing_page(links: Dict[str, str]) -> str:
    """Build a listing page from {href: name}."""
    anchors = "".join(f"<div class='product'><a href='{href}'>{name}</a></div>" for href, name in links.items())
    return f"<html><body><nav><a href='/TW/zh_TW/pl/single-oils'>單方精油</a></nav>{anchors}</body></html>"


class FakeDriver(BrowserDriver):
    """In-memory driver serving canned HTML per URL."""

    name = "fake"

    def __init__(self, pages: Optional[Dict[str, str]] = None, failing: Optional[Dict[str, str]] = None):
        self.pages: Dict[str, str] = dict(pages or {})
        self.failing: Dict[str, str] = dict(failing or {})
        self.visited: List[str] = []
        self.scrolls = 0
        self.pauses: List[int] = []
        self.closed = False
        self._html = ""

    def navigate(self, url: str, timeout_ms: int = 0) -> None:
        self.visited.append(url)
        if url in self.failing:
            raise NavigationError(url, self.failing[url])
        if url not in self.pages:
            raise NavigationError(url, "HTTP 404")
        self._html = self.pages[url]

    def content(self) -> str:
        return self._html

    def evaluate(self, script: str, arg=None):
        return None

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        return BeautifulSoup(self._html, "html.parser").select_one(selector) is not None

    def scroll_to_bottom(self) -> None:
        self.scrolls += 1

    def pause(self, ms: int) -> None:
        self.pauses.append(ms)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_shutdown():
    """Clear the process-wide shutdown flag around every test."""
    handler = get_shutdown_handler()
    handler.reset()
    yield
    handler.reset()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "products"


@pytest.fixture
def store(data_dir):
    return CategoryStore(data_dir)


@pytest.fixture
def no_delay_policy():
    return BackoffPolicy(base=0, jitter=0)


@pytest.fixture
def make_session(store, no_delay_policy):
    """Factory building a crawl session over the temporary store."""

    def _make(driver: BrowserDriver, dry_run: bool = False) -> CrawlSession:
        return CrawlSession(
            driver=driver,
            store=store,
            index=ReconciliationIndex.from_store(store),
            policy=no_delay_policy,
            dry_run=dry_run,
            sleep=lambda seconds: None,
        )

    return _make


@pytest.fixture
def lavender_html():
    return LAVENDER_HTML


@pytest.fixture
def build_detail():
    return detail_page


@pytest.fixture
def build_listing():
    return listing_page


@pytest.fixture
def driver_factory():
    return FakeDriver
