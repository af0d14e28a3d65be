"""
Tests for the transport layer: Tor route helpers, direct HTTP fetcher and
the CLI-wrapped fetcher with its subprocess runner.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-TR-N-01 | Default Tor settings | Equivalence – normal | socks5h://127.0.0.1:9050 | Remote DNS |
| TC-TR-N-02 | Browser proxy | Equivalence – normal | socks5:// server | Chromium |
| TC-TR-N-03 | Onion target | Equivalence – normal | Local /onion/ URL | Forwarding |
| TC-HF-N-01 | 200 response | Equivalence – normal | ok=True, body kept | Direct |
| TC-HF-N-02 | 404 response | Boundary – HTTP error | ok=True, status=404 | Permissive |
| TC-HF-N-03 | Request kwargs | Equivalence – normal | UA, proxy, timeout passed | Contract |
| TC-HF-A-01 | Client raises | Abnormal – network | TransportError | Wrap |
| TC-CL-N-01 | Command line | Equivalence – normal | torsocks curl ... url | Contract |
| TC-CL-N-02 | exit 0 + body | Equivalence – normal | ok=True | Success |
| TC-CL-A-01 | exit 0 + empty body | Boundary – empty | ok=False | Rule |
| TC-CL-A-02 | exit 7 | Abnormal – failure | ok=False, exit code | Rule |
| TC-CL-N-03 | stderr output, exit 0 | Equivalence – normal | ok=True | stderr ignored |
| TC-RC-N-01 | Real child prints | Equivalence – normal | stdout/stderr/exit | Runner |
| TC-RC-A-01 | Real child hangs | Abnormal – timeout | TransportError, child reaped | Cleanup |
| TC-RC-A-02 | Missing program | Abnormal – launch | ResourceLaunchError | Launch |
"""

import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from torsnap.crawler.cli_fetcher import CLIFetcher, CommandResult, run_command
from torsnap.crawler.http_fetcher import HTTPFetcher
from torsnap.crawler.tor_route import (
    forwarded_url,
    get_browser_proxy,
    get_proxy_dict,
    get_socks_proxy_url,
    strip_scheme,
)
from torsnap.utils.errors import ResourceLaunchError, TransportError

pytestmark = pytest.mark.unit


# =============================================================================
# Tor route
# =============================================================================


class TestTorRoute:
    def test_socks_url_resolves_through_tor(self, settings):
        """Default route uses socks5h so .onion names resolve inside Tor (TC-TR-N-01)."""
        assert get_socks_proxy_url(settings) == "socks5h://127.0.0.1:9050"
        assert get_proxy_dict(settings) == {
            "http": "socks5h://127.0.0.1:9050",
            "https": "socks5h://127.0.0.1:9050",
        }

    def test_socks_url_local_resolution(self, make_settings):
        settings = make_settings(tor={"resolve_through_tor": False, "socks_port": 9150})
        assert get_socks_proxy_url(settings) == "socks5://127.0.0.1:9150"

    def test_browser_proxy_uses_plain_socks5(self, settings):
        """Chromium gets a socks5:// server entry (TC-TR-N-02)."""
        assert get_browser_proxy(settings) == {"server": "socks5://127.0.0.1:9050"}

    def test_forwarded_url(self, settings):
        """Onion target is rewritten onto the local forwarding proxy (TC-TR-N-03)."""
        # Given: An onion target with a path
        # When: Building the forwarded URL
        url = forwarded_url("http://abc.onion/page?x=1", settings)

        # Then: Scheme is dropped and the proxy prefix added
        assert url == "http://127.0.0.1:8080/onion/abc.onion/page?x=1"

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("http://abc.onion/", "abc.onion/"),
            ("https://abc.onion", "abc.onion"),
            ("abc.onion/x", "abc.onion/x"),
        ],
    )
    def test_strip_scheme(self, url, expected):
        assert strip_scheme(url) == expected


# =============================================================================
# Direct HTTP fetcher
# =============================================================================


def _mock_session(response=None, error: Exception | None = None):
    session = MagicMock()
    if error is not None:
        session.get = AsyncMock(side_effect=error)
    else:
        session.get = AsyncMock(return_value=response)
    session_cls = MagicMock()
    session_cls.return_value.__aenter__ = AsyncMock(return_value=session)
    session_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return session_cls, session


def _response(status: int, body: bytes, url: str):
    response = MagicMock()
    response.status_code = status
    response.content = body
    response.url = url
    response.headers = {"content-type": "text/html"}
    return response


class TestHTTPFetcher:
    @pytest.mark.asyncio
    async def test_success(self, settings):
        """A 200 response is a successful fetch with the body kept (TC-HF-N-01)."""
        # Given: A session returning HTML
        url = "http://abc.onion/"
        session_cls, _ = _mock_session(_response(200, b"<html>ok</html>", url))

        # When: Fetching
        with patch("torsnap.crawler.http_fetcher.AsyncSession", session_cls):
            result = await HTTPFetcher(settings).fetch(url)

        # Then: ok with content and status
        assert result.ok is True
        assert result.status == 200
        assert result.text == "<html>ok</html>"
        assert result.method == "direct"

    @pytest.mark.asyncio
    async def test_error_status_still_counts_as_success(self, settings):
        """HTTP 404 is not inspected; the fetch succeeded (TC-HF-N-02)."""
        url = "http://abc.onion/"
        session_cls, _ = _mock_session(_response(404, b"missing", url))

        with patch("torsnap.crawler.http_fetcher.AsyncSession", session_cls):
            result = await HTTPFetcher(settings).fetch(url)

        assert result.ok is True
        assert result.status == 404

    @pytest.mark.asyncio
    async def test_request_parameters(self, settings):
        """GET carries the fixed UA, the socks5h proxies and the 30s timeout (TC-HF-N-03)."""
        # Given: A recording session
        url = "http://abc.onion/"
        session_cls, session = _mock_session(_response(200, b"x", url))

        # When: Fetching with defaults
        with patch("torsnap.crawler.http_fetcher.AsyncSession", session_cls):
            await HTTPFetcher(settings).fetch(url)

        # Then: The call arguments match the route settings
        args, kwargs = session.get.call_args
        assert args == (url,)
        assert kwargs["headers"]["User-Agent"] == settings.transport.user_agent
        assert kwargs["proxies"]["http"] == "socks5h://127.0.0.1:9050"
        assert kwargs["timeout"] == 30.0

    @pytest.mark.asyncio
    async def test_client_error_becomes_transport_error(self, settings):
        """Connection failures surface as TransportError (TC-HF-A-01)."""
        # Given: A session whose GET raises
        session_cls, _ = _mock_session(error=ConnectionError("SOCKS connect failed"))

        # When/Then: fetch raises TransportError with the cause chained
        with patch("torsnap.crawler.http_fetcher.AsyncSession", session_cls):
            with pytest.raises(TransportError) as exc_info:
                await HTTPFetcher(settings).fetch("http://abc.onion/")

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert exc_info.value.details["method"] == "direct"


# =============================================================================
# CLI fetcher
# =============================================================================


class TestCLIFetcher:
    def test_build_command(self, settings):
        """Command mirrors ``torsocks curl -s`` with both timeouts and UA (TC-CL-N-01)."""
        cmd = CLIFetcher(settings).build_command("http://abc.onion/")

        assert cmd == [
            "torsocks",
            "curl",
            "-s",
            "--connect-timeout",
            "60",
            "--max-time",
            "120",
            "-H",
            f"User-Agent: {settings.transport.user_agent}",
            "http://abc.onion/",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exit_code, stdout, stderr, expected_ok, expected_reason",
        [
            (0, b"<html>body</html>", "", True, None),
            (0, b"", "", False, "empty response body"),
            (7, b"", "Failed to connect", False, "exit code 7"),
            (0, b"<html>body</html>", "torsocks WARNING", True, None),
        ],
        ids=["TC-CL-N-02", "TC-CL-A-01", "TC-CL-A-02", "TC-CL-N-03"],
    )
    async def test_success_rule(
        self, settings, exit_code, stdout, stderr, expected_ok, expected_reason
    ):
        """Success needs exit 0 and a non-empty body; stderr alone never fails."""
        # Given: A runner returning a prepared result
        result = CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)
        runner = AsyncMock(return_value=result)

        # When: Fetching
        with patch("torsnap.crawler.cli_fetcher.run_command", runner):
            fetched = await CLIFetcher(settings).fetch("http://abc.onion/")

        # Then: The success rule is applied
        assert fetched.ok is expected_ok
        assert fetched.reason == expected_reason
        assert fetched.exit_code == exit_code
        assert fetched.stderr == stderr
        assert runner.call_args.kwargs["timeout"] == 130.0


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_collects_output(self):
        """Real child output and exit code are returned (TC-RC-N-01)."""
        # Given: A child writing to both streams and exiting 3
        code = "import sys; sys.stdout.write('out'); sys.stderr.write('err'); sys.exit(3)"

        # When: Running it
        result = await run_command([sys.executable, "-c", code], timeout=30)

        # Then: Everything is captured
        assert result.exit_code == 3
        assert result.stdout == b"out"
        assert result.stderr == "err"

    @pytest.mark.asyncio
    async def test_timeout_kills_child(self):
        """A hung child is killed and reaped before TransportError propagates (TC-RC-A-01)."""
        # Given: A child that sleeps far longer than the timeout
        created: list[asyncio.subprocess.Process] = []
        original = asyncio.create_subprocess_exec

        async def tracking_exec(*args, **kwargs):
            process = await original(*args, **kwargs)
            created.append(process)
            return process

        # When: Running with a short timeout
        with patch("torsnap.crawler.cli_fetcher.asyncio.create_subprocess_exec", tracking_exec):
            with pytest.raises(TransportError):
                await run_command(
                    [sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5
                )

        # Then: The process has exited (was killed and waited for)
        assert len(created) == 1
        assert created[0].returncode is not None

    @pytest.mark.asyncio
    async def test_missing_program(self):
        """An uninstalled wrapper raises ResourceLaunchError (TC-RC-A-02)."""
        with pytest.raises(ResourceLaunchError):
            await run_command(["torsnap-no-such-binary-xyz"], timeout=5)
