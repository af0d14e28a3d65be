"""
Pytest fixtures and configuration for torsnap tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies
  - DEFAULT: Tests without marker are auto-classified as unit
- @pytest.mark.integration: Multiple components wired together, all
  network, browser and subprocess collaborators replaced by fakes

=============================================================================
Mock Strategy
=============================================================================

- Browser (Playwright): FakeBrowserProvider / FakePage below
- Direct HTTP (curl_cffi): patch ``AsyncSession`` or use FakeFetcher
- CLI fetch (torsocks curl): FakeFetcher, plus one real short-lived
  Python child process for timeout cleanup
- Webhook (httpx): httpx.MockTransport or RecordingSender
- File I/O: tmp_path
"""

import io
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from PIL import Image

from torsnap.crawler.fetch_result import FetchResult
from torsnap.report.sink import ArtifactStatus, LogLevel
from torsnap.report.webhook import DeliveryMetadata, WebhookSender
from torsnap.utils.config import Settings, _deep_merge, get_settings
from torsnap.utils.errors import ResourceLaunchError

# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with mocked external dependencies (<5s/test)"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without an explicit classification marker are unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Environment and Settings
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path) -> Generator[None, None, None]:
    """Keep host TORSNAP_* variables and config files out of every test."""
    for key in list(os.environ):
        if key.startswith("TORSNAP_") or key == "WEBHOOK_URL":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TORSNAP_CONFIG_DIR", str(tmp_path / "no-config"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Factory for Settings with zero delays and tmp_path storage.

    Keyword arguments are section dicts deep-merged over the test defaults,
    e.g. ``make_settings(proxy={"enabled": False})``.
    """

    def _make(**sections: dict[str, Any]) -> Settings:
        base: dict[str, Any] = {
            "general": {
                "data_dir": str(tmp_path / "data"),
                "logs_dir": str(tmp_path / "logs"),
            },
            "target": {"url": "http://exampleonionaddress.onion/"},
            "browser": {
                "validate_connection": False,
                "variant_reset_delay": 0,
                "page_settle_delay": 0,
                "post_click_delay": 0,
            },
            "webhook": {"url": "http://hooks.test/upload"},
            "storage": {"screenshots_dir": str(tmp_path / "screenshots")},
        }
        return Settings(**_deep_merge(base, sections))

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


# =============================================================================
# Images
# =============================================================================


def make_png(width: int, height: int) -> bytes:
    """Deterministic RGB test image: pixel (x, y) = (x % 256, y % 256, (x + y) % 256)."""
    img = Image.new("RGB", (width, height))
    img.putdata([(x % 256, y % 256, (x + y) % 256) for y in range(height) for x in range(width)])
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def decode_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


# =============================================================================
# Browser Fakes
# =============================================================================


class FakeElement:
    """Minimal ElementHandle."""

    def __init__(
        self,
        text: str = "",
        *,
        href: str | None = None,
        box: dict[str, float] | None = None,
        on_click: Callable[[], None] | None = None,
    ) -> None:
        self.text = text
        self.href = href
        self.box = box
        self.on_click = on_click
        self.clicks: list[float | None] = []
        self.page: "FakePage | None" = None

    async def inner_text(self) -> str:
        return self.text

    async def get_attribute(self, name: str) -> str | None:
        return self.href if name == "href" else None

    async def click(self, *, timeout: float | None = None) -> None:
        self.clicks.append(timeout)
        if self.page is not None:
            self.page.events.append("click")
        if self.on_click is not None:
            self.on_click()

    async def bounding_box(self) -> dict[str, float] | None:
        return self.box

    async def screenshot(self, *, type: str = "png") -> bytes:
        return make_png(4, 4)


class FakePage:
    """Minimal PageHandle recording every interaction.

    ``events`` keeps the relative order of navigation waits and anchor
    clicks: "expect_navigation", "click", "navigated".
    """

    def __init__(
        self,
        *,
        anchors: list[FakeElement] | None = None,
        elements: dict[str, FakeElement] | None = None,
        image: bytes | None = None,
        goto_error: Exception | None = None,
        navigation_error: Exception | None = None,
        javascript_enabled: bool = True,
    ) -> None:
        self.anchors = anchors or []
        for anchor in self.anchors:
            anchor.page = self
        self.elements = elements or {}
        self.image = image if image is not None else make_png(64, 48)
        self.goto_error = goto_error
        self.navigation_error = navigation_error
        self.javascript_enabled = javascript_enabled
        self.html = ""
        self.gotos: list[tuple[str, Any, float | None]] = []
        self.navigations: list[tuple[Any, float | None]] = []
        self.events: list[str] = []
        self.screenshots: list[bool] = []
        self.closed = False
        self._url = "about:blank"

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str, *, wait_until: Any = None, timeout: float | None = None) -> Any:
        self.gotos.append((url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error
        self._url = url
        return None

    async def set_content(self, html: str, *, timeout: float | None = None) -> None:
        self.html = html

    async def content(self) -> str:
        return self.html

    async def title(self) -> str:
        return ""

    async def query_selector(self, selector: str) -> FakeElement | None:
        return self.elements.get(selector)

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return list(self.anchors) if selector == "a" else []

    @asynccontextmanager
    async def expect_navigation(self, *, wait_until: Any = None, timeout: float | None = None):
        self.events.append("expect_navigation")
        self.navigations.append((wait_until, timeout))
        yield None
        if self.navigation_error is not None:
            raise self.navigation_error
        self.events.append("navigated")

    async def screenshot(self, *, full_page: bool = False, type: str = "png") -> bytes:
        self.screenshots.append(full_page)
        return self.image

    async def close(self) -> None:
        self.closed = True


PageFactory = Callable[[bool], FakePage]


class FakeSession:
    def __init__(self, provider: "FakeBrowserProvider", use_tor: bool) -> None:
        self.provider = provider
        self.use_tor = use_tor

    async def new_page(self, *, javascript_enabled: bool = True) -> FakePage:
        page = self.provider.next_page(javascript_enabled)
        page.javascript_enabled = javascript_enabled
        self.provider.pages_opened.append((self.use_tor, page))
        return page


class FakeBrowserProvider:
    """BrowserProvider handing out prepared pages in order.

    Args:
        pages: Pages returned by successive ``new_page`` calls.
        factory: Builds a page once ``pages`` is exhausted.
        launch_error: Raised by ``session()`` instead of yielding.
    """

    def __init__(
        self,
        pages: list[FakePage] | None = None,
        *,
        factory: PageFactory | None = None,
        launch_error: Exception | None = None,
    ) -> None:
        self._pages = list(pages or [])
        self._factory = factory or (lambda js: FakePage(javascript_enabled=js))
        self.launch_error = launch_error
        self.sessions: list[bool] = []
        self.closed_sessions = 0
        self.pages_opened: list[tuple[bool, FakePage]] = []

    def next_page(self, javascript_enabled: bool) -> FakePage:
        if self._pages:
            return self._pages.pop(0)
        return self._factory(javascript_enabled)

    @asynccontextmanager
    async def session(self, *, use_tor: bool = False):
        self.sessions.append(use_tor)
        if self.launch_error is not None:
            raise self.launch_error
        try:
            yield FakeSession(self, use_tor)
        finally:
            self.closed_sessions += 1


def unlaunchable_browser() -> FakeBrowserProvider:
    return FakeBrowserProvider(launch_error=ResourceLaunchError("chromium missing"))


# =============================================================================
# Transport Fakes
# =============================================================================


class FakeFetcher:
    """HTTPFetcher/CLIFetcher stand-in returning queued results.

    Each queued item is either a FetchResult or an exception to raise.
    """

    method = "fake"

    def __init__(self, *results: FetchResult | Exception) -> None:
        self._results = list(results)
        self.urls: list[str] = []

    async def fetch(self, url: str, *, timeout: float | None = None) -> FetchResult:
        self.urls.append(url)
        if not self._results:
            raise AssertionError(f"unexpected fetch of {url}")
        item = self._results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def html_result(url: str, html: str, *, status: int = 200) -> FetchResult:
    return FetchResult(ok=True, url=url, content=html.encode("utf-8"), status=status)


# =============================================================================
# Reporting Fakes
# =============================================================================


class RecordingSink:
    """LogSink keeping every entry."""

    def __init__(self) -> None:
        self.entries: list[tuple[LogLevel, str, dict[str, Any] | None]] = []

    def log(self, level: LogLevel, message: str, details: dict[str, Any] | None = None) -> None:
        self.entries.append((LogLevel(level), message, details))

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [m for lv, m, _ in self.entries if level is None or lv == level]


class RecordingArtifactStore:
    """ArtifactStore keeping every artifact in memory."""

    def __init__(self) -> None:
        self.saved: list[tuple[bytes, ArtifactStatus, str | None]] = []

    async def save_artifact(
        self,
        data: bytes,
        status: ArtifactStatus,
        note: str | None = None,
    ) -> str:
        self.saved.append((data, ArtifactStatus(status), note))
        return f"artifact-{len(self.saved)}"


class RecordingSender(WebhookSender):
    """WebhookSender that records deliveries instead of posting them."""

    def __init__(self, settings: Settings, *, error: Exception | None = None) -> None:
        super().__init__(settings)
        self.error = error
        self.sent: list[tuple[bytes, DeliveryMetadata]] = []

    async def send_image(self, image: bytes, metadata: DeliveryMetadata | None = None) -> None:
        self.sent.append((image, metadata or self.default_metadata()))
        if self.error is not None:
            raise self.error


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def artifacts() -> RecordingArtifactStore:
    return RecordingArtifactStore()
