"""
torsnap forwarding proxy.

Lightweight local HTTP server that lets an unproxied browser reach onion
services: the path after ``/onion/`` is fetched over the Tor SOCKS route and
the body is returned as-is.

Routes:
  /onion/{host/path} -> http://{host/path} (via Tor)
  /health -> Health check
  /{path} with a /onion/{host}/... Referer -> 307 to /onion/{host}/{path}

Security:
- Bound to 127.0.0.1 by default
- GET only, no authentication (trusted local process)
"""

from urllib.parse import urlsplit

from aiohttp import web

from torsnap.crawler.http_fetcher import HTTPFetcher
from torsnap.report.sink import LogLevel, LogSink, StructlogSink
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import TransportError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)

_HOP_BY_HOP = frozenset(
    (
        "connection",
        "keep-alive",
        "transfer-encoding",
        "content-encoding",
        "content-length",
        "upgrade",
    )
)

_ONION_PREFIX = "/onion/"


def _upstream_host(referer: str) -> str | None:
    """Host segment of a ``/onion/{host}/...`` referer, if any."""
    path = urlsplit(referer).path
    if not path.startswith(_ONION_PREFIX):
        return None
    host = path[len(_ONION_PREFIX) :].split("/", 1)[0]
    return host or None


class TorProxyServer:
    """aiohttp app forwarding ``/onion/*`` requests through Tor."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sink: LogSink | None = None,
        fetcher: HTTPFetcher | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._sink = sink or StructlogSink()
        self._fetcher = fetcher or HTTPFetcher(self._settings)
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Create aiohttp application."""
        app = web.Application()
        app.router.add_get("/onion/{path:.*}", self.handle_onion)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/{path:.*}", self.handle_relative)
        return app

    async def handle_onion(self, request: web.Request) -> web.Response:
        """Fetch ``http://{path}`` over Tor and relay the body."""
        target_url = f"http://{request.match_info['path']}"
        if request.query_string:
            target_url = f"{target_url}?{request.query_string}"

        self._sink.log(LogLevel.INFO, f"Proxying request to: {target_url}")
        try:
            result = await self._fetcher.fetch(
                target_url, timeout=self._settings.proxy.request_timeout
            )
        except TransportError as e:
            self._sink.log(
                LogLevel.ERROR,
                "Proxy request failed",
                {"error": e.message, "url": request.path_qs},
            )
            return web.Response(status=500, text="Proxy request failed")

        status = result.status or 200
        if status >= 400:
            self._sink.log(
                LogLevel.ERROR,
                "Proxy request failed",
                {"status": status, "url": request.path_qs},
            )
            return web.Response(status=500, text="Proxy request failed")

        headers = {k: v for k, v in result.headers.items() if k.lower() not in _HOP_BY_HOP}
        self._sink.log(LogLevel.SUCCESS, f"Successfully proxied request to {target_url}")
        return web.Response(status=status, headers=headers, body=result.content)

    async def handle_relative(self, request: web.Request) -> web.Response:
        """Send root-relative requests from a proxied page back under its host.

        A page served from ``/onion/abc.onion/`` that references ``/p1``
        makes the browser ask for ``/p1`` on this server; the Referer names
        the upstream host.
        """
        host = _upstream_host(request.headers.get("Referer", ""))
        if host is None:
            raise web.HTTPNotFound()

        location = f"/onion/{host}{request.path_qs}"
        logger.debug("Redirecting relative request", path=request.path_qs, location=location)
        raise web.HTTPTemporaryRedirect(location)

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        tor = self._settings.tor
        return web.json_response(
            {"status": "ok", "socks": f"{tor.socks_host}:{tor.socks_port}"}
        )

    async def start(self) -> None:
        """Bind and serve on the configured host and port."""
        proxy = self._settings.proxy
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, proxy.host, proxy.port)
        await site.start()
        self._sink.log(LogLevel.SUCCESS, f"Tor proxy server started on port {proxy.port}")
        logger.info("Proxy server running", url=proxy.base_url)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Proxy server stopped")
