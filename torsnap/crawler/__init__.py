"""
torsnap crawler module.

Transports for reaching the target over Tor: direct HTTP through the SOCKS
proxy, a CLI-wrapped fetch, and Playwright browser sessions.
"""

from torsnap.crawler.browser_provider import (
    NAVIGATION_VARIANTS,
    BrowserProvider,
    BrowserSession,
    ElementHandle,
    NavigationVariant,
    PageHandle,
)
from torsnap.crawler.cli_fetcher import CLIFetcher, CommandResult, run_command
from torsnap.crawler.fetch_result import FetchResult
from torsnap.crawler.http_fetcher import HTTPFetcher
from torsnap.crawler.tor_route import (
    forwarded_url,
    get_browser_proxy,
    get_proxy_dict,
    get_socks_proxy_url,
    strip_scheme,
)

__all__ = [
    "NAVIGATION_VARIANTS",
    "BrowserProvider",
    "BrowserSession",
    "CLIFetcher",
    "CommandResult",
    "ElementHandle",
    "FetchResult",
    "HTTPFetcher",
    "NavigationVariant",
    "PageHandle",
    "forwarded_url",
    "get_browser_proxy",
    "get_proxy_dict",
    "get_socks_proxy_url",
    "run_command",
    "strip_scheme",
]
