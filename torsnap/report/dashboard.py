"""
torsnap monitoring dashboard.

In-memory log and screenshot history with a small aiohttp web view. The
Dashboard is both the pipeline's LogSink and its ArtifactStore: every log
entry is kept (bounded) and forwarded to structlog, every artifact is
written as a PNG under ``storage.screenshots_dir``.

Routes:
  /                        -> HTML overview (polls the API)
  /api/logs                -> last N log entries
  /api/screenshots         -> last N artifact entries
  /api/status              -> counters, success rate, scheduler state
  /api/trigger (POST)      -> request an ad-hoc run
  /screenshots/{filename}  -> stored PNG
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypedDict

from aiohttp import web

from torsnap.report.sink import ArtifactStatus, LogLevel, emit
from torsnap.utils.config import Settings, get_settings, resolve_path
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)


class LogEntry(TypedDict):
    timestamp: str
    level: str
    message: str
    details: dict[str, Any] | None


class ScreenshotEntry(TypedDict):
    id: str
    timestamp: str
    filename: str
    status: str
    error: str | None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Tor Automation Dashboard</title>
<style>
body { font-family: sans-serif; background: #1a1a1a; color: #fff; margin: 0; }
.container { max-width: 1200px; margin: 0 auto; padding: 20px; }
h1, h2 { color: #4CAF50; }
.cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 16px; }
.card { background: #2d2d2d; padding: 16px; border-radius: 8px; }
.card .value { font-size: 1.6em; font-weight: bold; }
.log { padding: 8px; margin: 4px 0; background: #222; border-left: 3px solid #666; }
.log.info { border-left-color: #2196F3; }
.log.success { border-left-color: #4CAF50; }
.log.warning { border-left-color: #FF9800; }
.log.error { border-left-color: #f44336; }
.shots { display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 12px; }
.shot img { max-width: 100%; }
.shot.success { border: 2px solid #4CAF50; }
.shot.failed { border: 2px solid #f44336; }
</style>
</head>
<body>
<div class="container">
<h1>Tor Automation Dashboard</h1>
<button onclick="trigger()">Run now</button>
<div class="cards" id="status"></div>
<h2>Recent Logs</h2>
<div id="logs"></div>
<h2>Recent Screenshots</h2>
<div class="shots" id="shots"></div>
</div>
<script>
function esc(s) {
  const d = document.createElement('div');
  d.textContent = s == null ? '' : String(s);
  return d.innerHTML;
}
async function refresh() {
  const [status, logs, shots] = await Promise.all([
    fetch('/api/status').then(r => r.json()),
    fetch('/api/logs').then(r => r.json()),
    fetch('/api/screenshots').then(r => r.json()),
  ]);
  document.getElementById('status').innerHTML = [
    ['Status', status.status],
    ['Total Executions', status.total_executions],
    ['Success Rate', status.success_rate + '%'],
    ['Last Execution', status.last_execution || 'Never'],
    ['Scheduler', status.scheduler_running ? 'running' : 'stopped'],
  ].map(([k, v]) => `<div class="card"><div>${esc(k)}</div><div class="value">${esc(v)}</div></div>`).join('');
  document.getElementById('logs').innerHTML = logs.slice().reverse().map(l =>
    `<div class="log ${esc(l.level)}"><small>${esc(l.timestamp)}</small> ${esc(l.message)}</div>`).join('');
  document.getElementById('shots').innerHTML = shots.slice().reverse().map(s =>
    `<div class="shot ${esc(s.status)}"><img src="/screenshots/${encodeURIComponent(s.filename)}">` +
    `<div>${esc(s.timestamp)}</div><div>${esc(s.error || s.status)}</div></div>`).join('');
}
async function trigger() {
  await fetch('/api/trigger', {method: 'POST'});
  setTimeout(refresh, 1000);
}
refresh();
setInterval(refresh, 30000);
</script>
</body>
</html>
"""


class Dashboard:
    """Monitoring collaborator: LogSink + ArtifactStore + web view."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        dashboard = self._settings.dashboard
        self._logs: deque[LogEntry] = deque(maxlen=dashboard.max_log_entries)
        self._screenshots: deque[ScreenshotEntry] = deque(maxlen=dashboard.max_artifact_entries)
        self._screenshot_dir = resolve_path(self._settings.storage.screenshots_dir)
        self._counter = 0
        self._trigger: Callable[[], Awaitable[Any]] | None = None
        self._scheduler_state: Callable[[], dict[str, Any]] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._runner: web.AppRunner | None = None

    @property
    def screenshot_dir(self) -> Path:
        return self._screenshot_dir

    @property
    def logs(self) -> list[LogEntry]:
        return list(self._logs)

    @property
    def screenshots(self) -> list[ScreenshotEntry]:
        return list(self._screenshots)

    def bind(
        self,
        *,
        trigger: Callable[[], Awaitable[Any]] | None = None,
        scheduler_state: Callable[[], dict[str, Any]] | None = None,
    ) -> None:
        """Attach the ad-hoc run trigger and scheduler state reporter."""
        if trigger is not None:
            self._trigger = trigger
        if scheduler_state is not None:
            self._scheduler_state = scheduler_state

    # LogSink

    def log(
        self,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        level = LogLevel(level)
        self._logs.append(
            LogEntry(
                timestamp=_now_iso(),
                level=level.value,
                message=message,
                details=details,
            )
        )
        emit(level, message, details)

    # ArtifactStore

    async def save_artifact(
        self,
        data: bytes,
        status: ArtifactStatus,
        note: str | None = None,
    ) -> str:
        """Write ``data`` to the screenshot directory and record it.

        Returns:
            The stored filename, which is also the artifact id.
        """
        status = ArtifactStatus(status)
        self._counter += 1
        stamp = _now_iso().replace(":", "-").replace(".", "-")
        filename = f"screenshot_{stamp}_{self._counter:04d}.png"
        path = self._screenshot_dir / filename

        def _write() -> None:
            self._screenshot_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            self.log(LogLevel.ERROR, "Failed to save screenshot", {"error": str(e)})
            raise

        self._screenshots.append(
            ScreenshotEntry(
                id=filename,
                timestamp=_now_iso(),
                filename=filename,
                status=status.value,
                error=note,
            )
        )
        if status == ArtifactStatus.SUCCESS:
            self.log(LogLevel.SUCCESS, "Screenshot success", {"filename": filename})
        else:
            self.log(LogLevel.ERROR, "Screenshot failed", {"filename": filename, "error": note})
        return filename

    # Web view

    def success_rate(self) -> int:
        if not self._screenshots:
            return 0
        successful = sum(1 for s in self._screenshots if s["status"] == ArtifactStatus.SUCCESS.value)
        return round(successful / len(self._screenshots) * 100)

    def status(self) -> dict[str, Any]:
        tor = self._settings.tor
        result: dict[str, Any] = {
            "status": "running",
            "last_execution": self._logs[-1]["timestamp"] if self._logs else None,
            "total_executions": len(self._screenshots),
            "success_rate": self.success_rate(),
            "tor_ports": [tor.socks_port, tor.socks_port + 1],
            "target_url": self._settings.target.url,
            "scheduler_running": False,
            "automation_running": False,
        }
        if self._scheduler_state is not None:
            result.update(self._scheduler_state())
        return result

    async def handle_index(self, request: web.Request) -> web.Response:
        return web.Response(text=DASHBOARD_HTML, content_type="text/html")

    async def handle_logs(self, request: web.Request) -> web.Response:
        limit = self._settings.dashboard.api_log_limit
        return web.json_response(list(self._logs)[-limit:])

    async def handle_screenshots(self, request: web.Request) -> web.Response:
        limit = self._settings.dashboard.api_artifact_limit
        return web.json_response(list(self._screenshots)[-limit:])

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.status())

    async def handle_trigger(self, request: web.Request) -> web.Response:
        self.log(LogLevel.INFO, "Manual automation trigger requested via dashboard")
        if self._trigger is None:
            return web.json_response({"message": "No scheduler attached"}, status=503)

        task = asyncio.create_task(self._trigger())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return web.json_response({"message": "Automation trigger requested"})

    async def handle_screenshot_file(self, request: web.Request) -> web.StreamResponse:
        filename = request.match_info["filename"]
        if Path(filename).name != filename or filename.startswith("."):
            raise web.HTTPNotFound(text="Screenshot not found")

        path = self._screenshot_dir / filename
        if not path.is_file():
            raise web.HTTPNotFound(text="Screenshot not found")
        return web.FileResponse(path)

    def create_app(self) -> web.Application:
        """Create aiohttp application."""
        app = web.Application()
        app.router.add_get("/", self.handle_index)
        app.router.add_get("/api/logs", self.handle_logs)
        app.router.add_get("/api/screenshots", self.handle_screenshots)
        app.router.add_get("/api/status", self.handle_status)
        app.router.add_post("/api/trigger", self.handle_trigger)
        app.router.add_get("/screenshots/{filename}", self.handle_screenshot_file)
        return app

    async def start(self, host: str | None = None, port: int | None = None) -> None:
        dashboard = self._settings.dashboard
        host = host or dashboard.host
        port = port or dashboard.port

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        self.log(LogLevel.INFO, f"Dashboard started on port {port}")
        logger.info("Dashboard available", url=f"http://{host}:{port}")

    async def stop(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
