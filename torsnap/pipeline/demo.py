"""
Demo fallback: a synthetic capture used when every real strategy failed.

The page is rendered locally (no network) and cropped through the same
capture path as real pages. If no browser can be started at all, a static
Pillow card is used instead, so the run always ends with an image.
"""

import html
import re
from datetime import UTC, datetime

from torsnap.capture.screenshot import ScreenshotCapture, render_demo_card
from torsnap.crawler.browser_provider import BrowserProvider
from torsnap.extractor.targeting import resolve_region
from torsnap.report.sink import LogLevel, LogSink
from torsnap.utils.config import Settings
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)

DEMO_LINK_TEXT = "Demo link expires in 24 hours"

DEMO_PAGE_TEMPLATE = """<html>
<head><title>Tor Automation Demo</title></head>
<body style="font-family: Arial, sans-serif; padding: 20px;">
<h1>Tor Automation Demo</h1>
{open_tags}
<h2>Demo Content</h2>
<p>All connection strategies failed; this placeholder was generated locally.</p>
<a href="#" style="color: #007bff;">{link_text}</a>
<p>Timestamp: {timestamp}</p>
{close_tags}
</body>
</html>
"""

DEMO_REGION_STYLE = "border: 2px solid #007bff; padding: 15px; background: #f0f8ff;"

# tag, #id and .class parts joined by descendant or child combinators
_COMBINATOR = re.compile(r"\s*>\s*|\s+")
_COMPOUND = re.compile(r"([a-zA-Z][\w-]*)?((?:[#.][\w-]+)*)")
_SIMPLE = re.compile(r"[#.][\w-]+")

ElementSpec = tuple[str, dict[str, str]]


def selector_elements(selector: str) -> list[ElementSpec] | None:
    """Nested elements (outermost first) that ``selector`` matches.

    Returns None for selectors beyond tag/id/class compounds joined by
    descendant or child combinators.
    """
    chain: list[ElementSpec] = []
    for part in _COMBINATOR.split(selector.strip()):
        match = _COMPOUND.fullmatch(part)
        if not part or match is None:
            return None
        attrs: dict[str, str] = {}
        classes = []
        for token in _SIMPLE.findall(match.group(2)):
            if token.startswith("#"):
                attrs["id"] = token[1:]
            else:
                classes.append(token[1:])
        if classes:
            attrs["class"] = " ".join(classes)
        chain.append((match.group(1) or "div", attrs))
    return chain


def _open_tag(tag: str, attrs: dict[str, str]) -> str:
    rendered = "".join(f' {name}="{html.escape(value)}"' for name, value in attrs.items())
    return f"<{tag}{rendered}>"


def demo_page_html(selector: str = ".link-listonline") -> str:
    """Fixed demo page whose content block matches ``selector``.

    An unsupported selector still yields a page; the crop then degrades to
    the full page like a real page without the element.
    """
    chain = selector_elements(selector)
    if chain is None:
        logger.warning("Selector not reproducible in demo page", selector=selector)
        chain = [("div", {})]

    *outer, (tag, attrs) = chain
    open_tags = "".join(_open_tag(t, a) for t, a in outer)
    open_tags += _open_tag(tag, {**attrs, "style": DEMO_REGION_STYLE})
    close_tags = "".join(f"</{t}>" for t, _ in reversed(chain))
    return DEMO_PAGE_TEMPLATE.format(
        open_tags=open_tags,
        close_tags=close_tags,
        link_text=DEMO_LINK_TEXT,
        timestamp=datetime.now(UTC).isoformat(),
    )


class DemoFallback:
    """Produces the placeholder image for a run with no real capture."""

    def __init__(
        self,
        settings: Settings,
        *,
        browser: BrowserProvider,
        sink: LogSink,
        capturer: ScreenshotCapture | None = None,
    ) -> None:
        self._settings = settings
        self._browser = browser
        self._sink = sink
        self._capturer = capturer or ScreenshotCapture()

    async def produce(self, reason: str | None = None) -> bytes:
        """Render, capture and crop the demo page.

        Never raises; falls back to a static card on any rendering error.
        """
        self._sink.log(
            LogLevel.WARNING,
            "All connection strategies failed, creating demo content",
            {"reason": reason} if reason else None,
        )
        selector = self._settings.target.region_selector
        try:
            async with self._browser.session(use_tor=False) as session:
                page = await session.new_page(javascript_enabled=False)
                await page.set_content(demo_page_html(selector))
                region = await resolve_region(page, selector)
                image = await self._capturer.capture(page)
                cropped = self._capturer.crop(image, region)
        except Exception as e:
            logger.warning("Demo page rendering failed, using static card", error=str(e))
            self._sink.log(LogLevel.WARNING, "Demo page rendering failed, using static demo card")
            return render_demo_card(DEMO_LINK_TEXT)

        self._sink.log(LogLevel.INFO, "Demo screenshot created")
        return cropped
