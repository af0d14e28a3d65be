"""
Content targeting for torsnap.

Finds the qualifying link (first anchor whose visible text contains the
configured needle, case-insensitively) either in raw markup or on a live
page, and resolves the rectangle that should be cropped from the capture.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from torsnap.crawler.browser_provider import PageHandle
from torsnap.utils.errors import TargetNotFoundError, TransportError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LINK_TEXT = "expires in"


@dataclass(frozen=True)
class TargetLink:
    """Discovered anchor.

    Attributes:
        text: Visible anchor text.
        url: Absolute URL the anchor points to (empty when a live-page
            anchor has no href).
    """

    text: str
    url: str


@dataclass(frozen=True)
class TargetRegion:
    """Rectangle to crop, in CSS pixels of the full-page capture."""

    x: float
    y: float
    width: float
    height: float
    full_page: bool = False

    @classmethod
    def from_bounding_box(cls, box: dict[str, float]) -> TargetRegion:
        return cls(x=box["x"], y=box["y"], width=box["width"], height=box["height"])

    @classmethod
    def whole_page(cls) -> TargetRegion:
        return cls(x=0, y=0, width=0, height=0, full_page=True)


def _matches(text: str, needle: str) -> bool:
    return needle.lower() in text.lower()


def find_link_in_html(
    html: str,
    base_url: str,
    needle: str = DEFAULT_LINK_TEXT,
) -> TargetLink | None:
    """Find the first qualifying anchor in raw markup.

    Args:
        html: Page markup.
        base_url: URL the markup was fetched from (relative hrefs resolve against it).
        needle: Case-insensitive substring the anchor text must contain.

    Returns:
        TargetLink, or None when no anchor with an href matches.
    """
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a"):
        text = anchor.get_text(" ", strip=True)
        if not _matches(text, needle):
            continue
        href = anchor.get("href")
        if not href:
            logger.debug("Matching anchor has no href", text=text[:80])
            return None
        return TargetLink(text=text, url=urljoin(base_url, str(href).strip()))
    return None


async def find_link_on_page(
    page: PageHandle,
    needle: str = DEFAULT_LINK_TEXT,
    *,
    base_url: str | None = None,
):
    """Find the first qualifying anchor on a live page.

    Args:
        page: Live page.
        needle: Case-insensitive substring the anchor text must contain.
        base_url: URL relative hrefs resolve against (default: the page URL).

    Returns:
        Tuple of (ElementHandle, TargetLink), or None when nothing matches.
    """
    for element in await page.query_selector_all("a"):
        text = (await element.inner_text()).strip()
        if _matches(text, needle):
            href = await element.get_attribute("href") or ""
            url = urljoin(base_url or page.url, href) if href else ""
            return element, TargetLink(text=text, url=url)
    return None


def _not_found(page: PageHandle, needle: str) -> TargetNotFoundError:
    return TargetNotFoundError(
        f'Could not find link containing "{needle}"',
        details={"url": page.url},
    )


async def follow_link(
    page: PageHandle,
    needle: str = DEFAULT_LINK_TEXT,
    *,
    click_timeout: float = 30.0,
    navigation_timeout: float = 60.0,
) -> TargetLink:
    """Click the qualifying anchor and wait for the navigation it starts.

    The click runs inside ``expect_navigation`` so the new document has
    reached ``domcontentloaded`` before returning. An anchor that does not
    navigate (in-page fragment, script handler) leaves the page as is and
    only logs a warning once the navigation timeout expires.

    Args:
        page: Live page.
        needle: Case-insensitive substring the anchor text must contain.
        click_timeout: Seconds allowed for the click.
        navigation_timeout: Seconds allowed for the resulting load.

    Returns:
        The clicked link.

    Raises:
        TargetNotFoundError: No anchor matches.
    """
    found = await find_link_on_page(page, needle)
    if found is None:
        raise _not_found(page, needle)

    element, link = found
    logger.info("Clicking target link", text=link.text[:80], href=link.url[:120])
    clicked = False
    try:
        async with page.expect_navigation(
            wait_until="domcontentloaded", timeout=navigation_timeout * 1000
        ):
            await element.click(timeout=click_timeout * 1000)
            clicked = True
    except PlaywrightTimeoutError:
        if not clicked:
            raise
        logger.warning("No navigation after click", href=link.url[:120], url=page.url)
    return link


async def open_link(
    page: PageHandle,
    needle: str = DEFAULT_LINK_TEXT,
    *,
    base_url: str,
    rewrite: Callable[[str], str],
    navigation_timeout: float = 60.0,
) -> TargetLink:
    """Navigate to the qualifying anchor's target instead of clicking it.

    For pages served through the forwarding proxy: hrefs resolve against
    ``base_url`` (the upstream page) and ``rewrite`` maps the upstream URL
    to the address the browser can load.

    Raises:
        TargetNotFoundError: No anchor matches, or the match has no href.
        TransportError: The rewritten URL could not be loaded.
    """
    found = await find_link_on_page(page, needle, base_url=base_url)
    if found is None:
        raise _not_found(page, needle)

    _, link = found
    if not link.url:
        raise TargetNotFoundError(
            f'Link containing "{needle}" has no href',
            details={"url": page.url, "text": link.text[:80]},
        )

    url = rewrite(link.url)
    logger.info("Opening target link", text=link.text[:80], href=link.url[:120], via=url)
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=navigation_timeout * 1000)
    except Exception as e:
        raise TransportError(f"Navigation failed: {e}", details={"url": url}) from e
    return link


async def resolve_region(page: PageHandle, selector: str) -> TargetRegion:
    """Bounding box of ``selector``, or the whole page when it is absent.

    A missing element (or one without a layout box) is a degraded success:
    a warning is logged and the full page is used.
    """
    element = await page.query_selector(selector)
    if element is None:
        logger.warning("Target element not found, using full page", selector=selector)
        return TargetRegion.whole_page()

    box = await element.bounding_box()
    if box is None:
        logger.warning("Target element has no bounding box, using full page", selector=selector)
        return TargetRegion.whole_page()

    region = TargetRegion.from_bounding_box(box)
    logger.debug(
        "Target region resolved",
        selector=selector,
        x=region.x,
        y=region.y,
        width=region.width,
        height=region.height,
    )
    return region
