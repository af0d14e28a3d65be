"""CLI-wrapped fetcher (``torsocks curl``) and the subprocess runner it uses."""

import asyncio
import time
from dataclasses import dataclass

from torsnap.crawler.fetch_result import FetchResult
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import ResourceLaunchError, TransportError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished subprocess.

    Attributes:
        exit_code: Process return code.
        stdout: Raw standard output.
        stderr: Standard error decoded as UTF-8.
        elapsed_ms: Wall time until exit.
    """

    exit_code: int
    stdout: bytes
    stderr: str
    elapsed_ms: float = 0.0


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


async def run_command(cmd: list[str], *, timeout: float) -> CommandResult:
    """Run a command to completion and collect its output.

    The child is killed and reaped on every exit path that leaves it running
    (timeout, cancellation).

    Args:
        cmd: Program and arguments.
        timeout: Seconds to wait for the process to exit.

    Returns:
        CommandResult.

    Raises:
        ResourceLaunchError: The program could not be started.
        TransportError: The process did not finish within ``timeout``.
    """
    start = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ResourceLaunchError(
            f"Failed to start {cmd[0]}: {e}",
            details={"command": cmd[0]},
        ) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as e:
        raise TransportError(
            f"{cmd[0]} timed out after {timeout:.0f}s",
            details={"command": cmd[0], "timeout": timeout},
        ) from e
    finally:
        await _terminate(process)

    return CommandResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout or b"",
        stderr=(stderr or b"").decode("utf-8", errors="replace"),
        elapsed_ms=(time.monotonic() - start) * 1000,
    )


class CLIFetcher:
    """Fetch a URL by spawning ``torsocks curl``.

    Success requires exit code 0 and a non-empty body. stderr is kept on
    the result for logging but never fails the fetch by itself.
    """

    method = "cli"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def build_command(self, url: str) -> list[str]:
        """Command line used to fetch ``url``."""
        transport = self._settings.transport
        return [
            *transport.cli_wrapper,
            transport.cli_tool,
            "-s",
            "--connect-timeout",
            str(transport.cli_connect_timeout),
            "--max-time",
            str(transport.cli_max_time),
            "-H",
            f"User-Agent: {transport.user_agent}",
            url,
        ]

    async def fetch(self, url: str) -> FetchResult:
        """Fetch URL via the wrapped CLI tool.

        Args:
            url: URL to fetch.

        Returns:
            FetchResult; ok is False when the tool exited non-zero or printed nothing.

        Raises:
            ResourceLaunchError: The wrapper or tool is not installed.
            TransportError: The tool hung past its own max-time.
        """
        transport = self._settings.transport
        timeout = transport.cli_max_time + transport.cli_kill_grace
        result = await run_command(self.build_command(url), timeout=timeout)

        if result.stderr:
            logger.warning("CLI fetch stderr", url=url[:80], stderr=result.stderr[:500])

        ok = result.exit_code == 0 and len(result.stdout) > 0
        reason = None
        if not ok:
            reason = (
                f"exit code {result.exit_code}"
                if result.exit_code != 0
                else "empty response body"
            )

        logger.info(
            "CLI fetch finished",
            url=url[:80],
            ok=ok,
            exit_code=result.exit_code,
            content_length=len(result.stdout),
        )

        return FetchResult(
            ok=ok,
            url=url,
            content=result.stdout,
            reason=reason,
            method=self.method,
            elapsed_ms=result.elapsed_ms,
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
