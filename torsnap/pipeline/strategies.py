"""
Capture strategies for the torsnap pipeline.

Each strategy exposes ``attempt(target_url) -> StrategyResult`` and never
raises: its failures are folded into the result so the orchestrator can
decide whether to advance to the next strategy or go straight to the demo
fallback.

Error mapping:
- TransportError, TargetNotFoundError, anything unexpected: fail, advance.
- ImageProcessingError (incl. RegionOutOfBoundsError), ResourceLaunchError:
  fail with ``abort_to_demo``.
"""

import asyncio
from typing import Protocol

from torsnap.capture.screenshot import ScreenshotCapture
from torsnap.crawler.browser_provider import (
    NAVIGATION_VARIANTS,
    BrowserProvider,
    NavigationVariant,
    PageHandle,
)
from torsnap.crawler.cli_fetcher import CLIFetcher
from torsnap.crawler.http_fetcher import HTTPFetcher
from torsnap.crawler.tor_route import forwarded_url, strip_scheme
from torsnap.extractor.targeting import (
    TargetRegion,
    find_link_in_html,
    follow_link,
    open_link,
    resolve_region,
)
from torsnap.pipeline.state import StrategyKind, StrategyResult
from torsnap.report.sink import ArtifactStatus, ArtifactStore, LogLevel, LogSink
from torsnap.utils.config import Settings
from torsnap.utils.errors import (
    ImageProcessingError,
    ResourceLaunchError,
    TargetNotFoundError,
    TransportError,
)
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)

DEBUG_SCREENSHOT_NOTE = "Link not found - debug screenshot"


class Strategy(Protocol):
    kind: StrategyKind

    async def attempt(self, target_url: str) -> StrategyResult:
        ...


async def navigate(page: PageHandle, url: str, *, wait_until: str, timeout: float) -> None:
    """``page.goto`` with any failure reported as TransportError."""
    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
    except Exception as e:
        raise TransportError(
            f"Navigation failed: {e}",
            details={"url": url, "wait_until": wait_until},
        ) from e


class BrowserStrategy:
    """Shared plumbing: error mapping and the click/locate/capture/crop step."""

    kind: StrategyKind

    def __init__(
        self,
        settings: Settings,
        *,
        browser: BrowserProvider,
        sink: LogSink,
        artifacts: ArtifactStore,
        capturer: ScreenshotCapture | None = None,
    ) -> None:
        self._settings = settings
        self._browser = browser
        self._sink = sink
        self._artifacts = artifacts
        self._capturer = capturer or ScreenshotCapture()

    async def attempt(self, target_url: str) -> StrategyResult:
        attempts: list[str] = []
        try:
            return await self._run(target_url, attempts)
        except (ImageProcessingError, ResourceLaunchError) as e:
            self._sink.log(LogLevel.ERROR, f"{self.kind.value} aborted", e.to_dict())
            return StrategyResult.failed(
                self.kind, e.message, abort_to_demo=True, attempts=attempts
            )
        except (TransportError, TargetNotFoundError) as e:
            self._sink.log(LogLevel.WARNING, f"{self.kind.value} failed", e.to_dict())
            return StrategyResult.failed(self.kind, e.message, attempts=attempts)
        except Exception as e:
            logger.exception("Unexpected strategy error", strategy=self.kind.value)
            self._sink.log(LogLevel.ERROR, f"{self.kind.value} failed", {"error": str(e)})
            return StrategyResult.failed(self.kind, str(e), attempts=attempts)

    async def _run(self, target_url: str, attempts: list[str]) -> StrategyResult:
        raise NotImplementedError

    async def _save_debug_screenshot(self, page: PageHandle) -> None:
        try:
            image = await self._capturer.capture(page)
            await self._artifacts.save_artifact(image, ArtifactStatus.FAILED, DEBUG_SCREENSHOT_NOTE)
        except Exception as e:
            logger.warning("Debug screenshot failed", error=str(e))

    async def _locate_and_crop(self, page: PageHandle) -> tuple[bytes, TargetRegion]:
        selector = self._settings.target.region_selector
        region = await resolve_region(page, selector)
        if region.full_page:
            self._sink.log(
                LogLevel.WARNING,
                f'Target element "{selector}" not found, taking full page screenshot',
            )
        else:
            self._sink.log(LogLevel.SUCCESS, f"Found target element {selector}")

        image = await self._capturer.capture(page)
        return self._capturer.crop(image, region), region

    async def capture_target(
        self, page: PageHandle, *, upstream_url: str | None = None
    ) -> StrategyResult:
        """Follow the link, wait, locate the region, capture and crop.

        Args:
            page: Page showing the target.
            upstream_url: Set when ``page`` is a forwarding-proxy copy of
                this URL; the link is then opened through the proxy rather
                than clicked.

        Raises:
            TargetNotFoundError: No qualifying link (a debug screenshot is stored first).
        """
        browser = self._settings.browser
        needle = self._settings.target.link_text

        self._sink.log(LogLevel.INFO, f'Looking for link containing "{needle}"...')
        try:
            if upstream_url is None:
                link = await follow_link(
                    page,
                    needle,
                    click_timeout=browser.click_timeout,
                    navigation_timeout=browser.navigation_timeout,
                )
            else:
                link = await open_link(
                    page,
                    needle,
                    base_url=upstream_url,
                    rewrite=lambda url: forwarded_url(url, self._settings),
                    navigation_timeout=browser.navigation_timeout,
                )
        except TargetNotFoundError:
            self._sink.log(
                LogLevel.WARNING,
                f'Could not find link containing "{needle}"',
                {"url": page.url},
            )
            await self._save_debug_screenshot(page)
            raise

        self._sink.log(
            LogLevel.SUCCESS,
            f'Successfully followed link containing "{needle}"',
            {"href": link.url},
        )
        await asyncio.sleep(browser.post_click_delay)

        image, region = await self._locate_and_crop(page)
        return StrategyResult(kind=self.kind, ok=True, image=image, link=link, region=region)


class DirectTransportStrategy(BrowserStrategy):
    """Single proxied GET; on success, render the target and capture it.

    A completed response of any status counts as success; it only confirms
    the route works before a browser is started.
    """

    kind = StrategyKind.DIRECT_TRANSPORT

    def __init__(self, settings: Settings, *, fetcher: HTTPFetcher | None = None, **kwargs) -> None:
        super().__init__(settings, **kwargs)
        self._fetcher = fetcher or HTTPFetcher(settings)

    async def _run(self, target_url: str, attempts: list[str]) -> StrategyResult:
        attempts.append(self.kind.value)
        self._sink.log(LogLevel.INFO, "Testing direct SOCKS5 connection to onion site...")

        result = await self._fetcher.fetch(target_url)
        self._sink.log(
            LogLevel.SUCCESS,
            "Direct SOCKS connection successful!",
            result.to_dict(),
        )

        browser = self._settings.browser
        if self._settings.proxy.enabled:
            url, use_tor, upstream = forwarded_url(target_url, self._settings), False, target_url
            self._sink.log(LogLevel.INFO, "Navigating to onion site through local proxy...")
        else:
            url, use_tor, upstream = target_url, True, None
            self._sink.log(LogLevel.INFO, "Navigating to onion site through Tor...")

        async with self._browser.session(use_tor=use_tor) as session:
            page = await session.new_page(javascript_enabled=True)
            await navigate(
                page, url, wait_until="domcontentloaded", timeout=browser.navigation_timeout
            )
            await asyncio.sleep(browser.page_settle_delay)
            captured = await self.capture_target(page, upstream_url=upstream)

        captured.attempts = attempts
        return captured


class ProxiedBrowserNavigationStrategy(BrowserStrategy):
    """Tor-routed browser trying each navigation variant in order."""

    kind = StrategyKind.PROXIED_BROWSER_NAVIGATION

    def __init__(
        self,
        settings: Settings,
        *,
        variants: tuple[NavigationVariant, ...] = NAVIGATION_VARIANTS,
        **kwargs,
    ) -> None:
        super().__init__(settings, **kwargs)
        self._variants = variants

    async def _run(self, target_url: str, attempts: list[str]) -> StrategyResult:
        browser = self._settings.browser
        self._sink.log(LogLevel.INFO, "Launching browser with Tor proxy...")

        async with self._browser.session(use_tor=True) as session:
            self._sink.log(LogLevel.SUCCESS, "Browser launched successfully")
            page: PageHandle | None = None

            for index, variant in enumerate(self._variants):
                attempts.append(f"{self.kind.value}:{variant.name}")
                if index > 0:
                    await asyncio.sleep(browser.variant_reset_delay)

                url = strip_scheme(target_url) if variant.strip_scheme else target_url
                self._sink.log(LogLevel.INFO, f"Trying navigation variant: {variant.name}")
                candidate = await session.new_page(javascript_enabled=variant.javascript_enabled)
                try:
                    await navigate(
                        candidate,
                        url,
                        wait_until=variant.wait_until,
                        timeout=browser.navigation_timeout,
                    )
                except TransportError as e:
                    self._sink.log(
                        LogLevel.WARNING,
                        f"Navigation variant '{variant.name}' failed",
                        {"error": e.message},
                    )
                    await candidate.close()
                    continue

                self._sink.log(LogLevel.SUCCESS, f"Successfully connected using: {variant.name}")
                page = candidate
                break

            if page is None:
                self._sink.log(LogLevel.WARNING, "All navigation variants failed")
                return StrategyResult.failed(
                    self.kind, "all navigation variants failed", attempts=attempts
                )

            await asyncio.sleep(browser.page_settle_delay)
            captured = await self.capture_target(page)

        captured.attempts = attempts
        return captured


class WrappedCliFetchStrategy(BrowserStrategy):
    """``torsocks curl`` fetch, follow the link the same way, render the markup."""

    kind = StrategyKind.WRAPPED_CLI_FETCH

    def __init__(self, settings: Settings, *, fetcher: CLIFetcher | None = None, **kwargs) -> None:
        super().__init__(settings, **kwargs)
        self._fetcher = fetcher or CLIFetcher(settings)

    async def _run(self, target_url: str, attempts: list[str]) -> StrategyResult:
        needle = self._settings.target.link_text
        attempts.append(self.kind.value)
        self._sink.log(LogLevel.INFO, "Running automation with torsocks wrapper...")

        result = await self._fetcher.fetch(target_url)
        if not result.ok:
            self._sink.log(
                LogLevel.WARNING,
                "Onion site access restricted",
                result.to_dict(),
            )
            return StrategyResult.failed(
                self.kind, result.reason or "fetch failed", attempts=attempts
            )

        self._sink.log(
            LogLevel.SUCCESS,
            "Successfully fetched onion site with torsocks!",
            {**result.to_dict(), "preview": result.preview()},
        )

        link = find_link_in_html(result.text, target_url, needle)
        if link is None:
            self._sink.log(LogLevel.WARNING, f'No "{needle}" links found in the HTML content')
            return StrategyResult.failed(self.kind, "no qualifying link", attempts=attempts)

        attempts.append(f"{self.kind.value}:follow_link")
        self._sink.log(LogLevel.INFO, f"Following link: {link.url}", {"text": link.text})
        followed = await self._fetcher.fetch(link.url)
        if not followed.ok:
            self._sink.log(
                LogLevel.ERROR,
                "Failed to fetch target page",
                followed.to_dict(),
            )
            return StrategyResult.failed(
                self.kind, followed.reason or "follow-up fetch failed", attempts=attempts
            )

        self._sink.log(LogLevel.SUCCESS, "Successfully fetched target page!")
        image, region = await self._render(followed.text)
        return StrategyResult(
            kind=self.kind,
            ok=True,
            image=image,
            link=link,
            region=region,
            attempts=attempts,
        )

    async def _render(self, html: str) -> tuple[bytes, TargetRegion]:
        timeout = self._settings.browser.navigation_timeout
        async with self._browser.session(use_tor=False) as session:
            page = await session.new_page(javascript_enabled=False)
            await page.set_content(html, timeout=timeout * 1000)
            return await self._locate_and_crop(page)
