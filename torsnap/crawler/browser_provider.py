"""
Rendering capability interfaces for torsnap.

The pipeline drives pages only through these protocols. Method names and
argument conventions follow Playwright's async API (timeouts in
milliseconds), so Playwright pages and element handles satisfy them
directly and tests can substitute light fakes.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class NavigationVariant:
    """
    One way of loading the target in a browser.

    Attributes:
        name: Identifier used in logs and run traces.
        javascript_enabled: Whether page scripts run.
        wait_until: Load state that marks navigation complete.
        strip_scheme: Navigate to the host-only form of the URL.
    """

    name: str
    javascript_enabled: bool = False
    wait_until: str = "domcontentloaded"
    strip_scheme: bool = False


# Tried in this order; first success wins.
NAVIGATION_VARIANTS: tuple[NavigationVariant, ...] = (
    NavigationVariant("standard_http", javascript_enabled=False),
    NavigationVariant("http_with_js", javascript_enabled=True),
    NavigationVariant("direct_connect", javascript_enabled=False, strip_scheme=True),
    NavigationVariant("network_idle", javascript_enabled=True, wait_until="networkidle"),
)


@runtime_checkable
class ElementHandle(Protocol):
    """A DOM element on a live page."""

    async def inner_text(self) -> str:
        ...

    async def get_attribute(self, name: str) -> str | None:
        ...

    async def click(self, *, timeout: float | None = None) -> None:
        ...

    async def bounding_box(self) -> dict[str, float] | None:
        ...

    async def screenshot(self, *, type: str = "png") -> bytes:
        ...


@runtime_checkable
class PageHandle(Protocol):
    """A browser tab."""

    @property
    def url(self) -> str:
        ...

    async def goto(
        self,
        url: str,
        *,
        wait_until: Any = None,
        timeout: float | None = None,
    ) -> Any:
        ...

    async def set_content(self, html: str, *, timeout: float | None = None) -> None:
        ...

    async def content(self) -> str:
        ...

    async def title(self) -> str:
        ...

    async def query_selector(self, selector: str) -> ElementHandle | None:
        ...

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        ...

    def expect_navigation(
        self,
        *,
        wait_until: Any = None,
        timeout: float | None = None,
    ) -> AbstractAsyncContextManager[Any]:
        """Wraps an action that starts a navigation; exits once it has loaded."""
        ...

    async def screenshot(self, *, full_page: bool = False, type: str = "png") -> bytes:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class BrowserSession(Protocol):
    """A launched browser; owns every page it creates."""

    async def new_page(self, *, javascript_enabled: bool = True) -> PageHandle:
        ...


@runtime_checkable
class BrowserProvider(Protocol):
    """Factory for scoped browser sessions.

    ``session()`` launches a browser and guarantees it is closed when the
    ``async with`` block exits, including on errors. Launch failures raise
    ResourceLaunchError.
    """

    def session(self, *, use_tor: bool = False) -> AbstractAsyncContextManager[BrowserSession]:
        ...
