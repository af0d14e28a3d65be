"""
Playwright-based browser provider for torsnap.

Implements the BrowserProvider protocol with headless Chromium. A session
optionally routes through the Tor SOCKS proxy; every page gets its own
context so JavaScript can be toggled per navigation variant.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from torsnap.crawler.tor_route import get_browser_proxy
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import ResourceLaunchError
from torsnap.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

logger = get_logger(__name__)


class PlaywrightSession:
    """A launched Chromium instance and the contexts opened on it."""

    def __init__(self, browser: "Browser", settings: Settings) -> None:
        self._browser = browser
        self._settings = settings
        self._contexts: list[BrowserContext] = []

    async def new_page(self, *, javascript_enabled: bool = True) -> "Page":
        """Open a page in a fresh context.

        Args:
            javascript_enabled: Whether scripts run on the page.

        Returns:
            Playwright Page.
        """
        browser_settings = self._settings.browser
        context = await self._browser.new_context(
            viewport={
                "width": browser_settings.viewport_width,
                "height": browser_settings.viewport_height,
            },
            user_agent=self._settings.transport.user_agent,
            java_script_enabled=javascript_enabled,
            ignore_https_errors=True,
        )
        self._contexts.append(context)
        return await context.new_page()

    async def close(self) -> None:
        for context in self._contexts:
            try:
                await context.close()
            except Exception as e:
                logger.debug("Context close error", error=str(e))
        self._contexts.clear()
        await self._browser.close()


class PlaywrightProvider:
    """Browser provider using Playwright Chromium."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    async def _validate_tor(self, session: PlaywrightSession) -> None:
        """Load an IP echo page through the proxy and log what it reports.

        Purely informational; failures are logged and ignored.
        """
        browser_settings = self._settings.browser
        page = await session.new_page(javascript_enabled=False)
        try:
            await page.goto(
                browser_settings.validation_url,
                timeout=browser_settings.validation_timeout * 1000,
            )
            body = await page.content()
            logger.info("Tor connection validated", response=body[:200])
        except Exception as e:
            logger.warning("Tor validation failed, continuing anyway", error=str(e))
        finally:
            await page.close()

    @asynccontextmanager
    async def session(self, *, use_tor: bool = False) -> AsyncIterator[PlaywrightSession]:
        """Launch Chromium for the duration of the ``async with`` block.

        Args:
            use_tor: Route all browser traffic through the Tor SOCKS proxy.

        Yields:
            PlaywrightSession.

        Raises:
            ResourceLaunchError: Playwright or Chromium failed to start.
        """
        browser_settings = self._settings.browser
        proxy = get_browser_proxy(self._settings) if use_tor else None

        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise ResourceLaunchError(f"Playwright failed to start: {e}") from e

        try:
            try:
                browser = await playwright.chromium.launch(
                    headless=browser_settings.headless,
                    args=list(browser_settings.args),
                    proxy=proxy,
                    timeout=browser_settings.launch_timeout * 1000,
                )
            except Exception as e:
                raise ResourceLaunchError(
                    f"Browser launch failed: {e}",
                    details={"use_tor": use_tor},
                ) from e

            logger.info("Browser launched", use_tor=use_tor, headless=browser_settings.headless)
            session = PlaywrightSession(browser, self._settings)
            try:
                if use_tor and browser_settings.validate_connection:
                    await self._validate_tor(session)
                yield session
            finally:
                await session.close()
                logger.debug("Browser closed", use_tor=use_tor)
        finally:
            await playwright.stop()
