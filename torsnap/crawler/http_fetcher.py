"""Direct HTTP fetcher over the Tor SOCKS route."""

import time

from curl_cffi.requests import AsyncSession

from torsnap.crawler.fetch_result import FetchResult
from torsnap.crawler.tor_route import get_proxy_dict
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import TransportError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)


class HTTPFetcher:
    """HTTP client fetcher using curl_cffi through Tor.

    A single GET with a fixed User-Agent. Any completed response counts as
    success, whatever its status code; only a raised client error fails.
    """

    method = "direct"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    async def fetch(self, url: str, *, timeout: float | None = None) -> FetchResult:
        """Fetch URL through the Tor SOCKS proxy.

        Args:
            url: URL to fetch.
            timeout: Request timeout in seconds (defaults to transport.direct_timeout).

        Returns:
            FetchResult with ok=True.

        Raises:
            TransportError: Connection, proxy, DNS or timeout failure.
        """
        transport = self._settings.transport
        timeout = transport.direct_timeout if timeout is None else timeout
        proxies = get_proxy_dict(self._settings)
        start = time.monotonic()

        try:
            async with AsyncSession() as session:
                response = await session.get(
                    url,
                    headers={"User-Agent": transport.user_agent},
                    proxies=proxies,
                    timeout=timeout,
                    allow_redirects=True,
                )
        except Exception as e:
            logger.debug("Direct fetch error", url=url[:80], error=str(e))
            raise TransportError(
                f"Direct fetch failed: {e}",
                details={"url": url, "method": self.method},
            ) from e

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Direct fetch completed",
            url=url[:80],
            status=response.status_code,
            content_length=len(response.content),
        )

        return FetchResult(
            ok=True,
            url=url,
            final_url=str(response.url),
            content=response.content,
            status=response.status_code,
            headers=dict(response.headers),
            method=self.method,
            elapsed_ms=elapsed_ms,
        )
