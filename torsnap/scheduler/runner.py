"""
Periodic scheduler for torsnap automation runs.

Fires one run immediately on start and then once per interval. At most one
run is active at a time: a tick that finds a run in progress is dropped with
a warning, never queued.

Lifecycle:
- start(): begin the timer (requires a running event loop)
- stop(): cancel the timer; an in-flight run is left to finish
- shutdown(): stop() and wait for the in-flight run
- run_once(): one ad-hoc run, awaited to its terminal state
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from torsnap.pipeline.state import Run
from torsnap.report.sink import LogLevel, LogSink, StructlogSink
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)


class RunExecutor(Protocol):
    async def run(self, run: Run | None = None) -> Run:
        ...


class AutomationScheduler:
    """Owns the timer and the single-flight guard around the orchestrator."""

    def __init__(
        self,
        orchestrator: RunExecutor,
        *,
        sink: LogSink | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._sink = sink or StructlogSink()
        self._settings = settings or get_settings()
        self._sleep = sleep
        self._timer: asyncio.Task[None] | None = None
        self._current: asyncio.Task[Run | None] | None = None
        self._in_progress = False
        self.skipped_ticks = 0
        self.total_runs = 0
        self.last_run: Run | None = None

    @property
    def is_scheduler_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def is_automation_running(self) -> bool:
        # The task check covers the gap between scheduling and the flag being set
        return self._in_progress or (self._current is not None and not self._current.done())

    def state(self) -> dict[str, Any]:
        """Scheduler fields for status reporting."""
        return {
            "scheduler_running": self.is_scheduler_running,
            "automation_running": self.is_automation_running,
            "skipped_ticks": self.skipped_ticks,
            "total_runs": self.total_runs,
            "last_outcome": (
                self.last_run.outcome.value
                if self.last_run is not None and self.last_run.outcome is not None
                else None
            ),
        }

    def start(self, interval_minutes: float | None = None) -> None:
        """Start periodic execution.

        Args:
            interval_minutes: Minutes between ticks (defaults to scheduler.interval_minutes).

        Raises:
            ValueError: interval_minutes is not positive.
        """
        interval = (
            self._settings.scheduler.interval_minutes
            if interval_minutes is None
            else interval_minutes
        )
        if interval <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval}")

        if self.is_scheduler_running:
            logger.warning("Scheduler already running")
            return

        self._sink.log(
            LogLevel.INFO,
            f"Starting automation scheduler with {interval:g} minute intervals",
        )
        self._timer = asyncio.create_task(self._tick_loop(interval * 60))
        self._sink.log(LogLevel.SUCCESS, "Scheduler started successfully")

    def stop(self) -> None:
        """Cancel future ticks. Does not interrupt a run in progress."""
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self._sink.log(LogLevel.INFO, "Automation scheduler stopped")

    async def shutdown(self) -> None:
        """Stop the timer and wait for the in-flight run, if any."""
        self.stop()
        current = self._current
        if current is not None and not current.done():
            logger.info("Waiting for in-flight run to finish")
            await asyncio.wait({current})

    async def run_once(self) -> Run | None:
        """Trigger one run and wait for it.

        Returns:
            The finished Run, or None when the tick was skipped (a run was
            already active) or the orchestrator raised.
        """
        task = self._trigger()
        if task is None:
            return None
        return await asyncio.shield(task)

    async def _tick_loop(self, interval_seconds: float) -> None:
        while True:
            self._trigger()
            await self._sleep(interval_seconds)

    def _trigger(self) -> "asyncio.Task[Run | None] | None":
        if self.is_automation_running:
            self.skipped_ticks += 1
            self._sink.log(LogLevel.WARNING, "Automation already running, skipping this execution")
            return None

        self._current = asyncio.create_task(self._execute())
        return self._current

    async def _execute(self) -> Run | None:
        self._in_progress = True
        try:
            self._sink.log(LogLevel.INFO, "Starting automated execution...")
            run = await self._orchestrator.run(Run())
            self.last_run = run
            self._sink.log(
                LogLevel.INFO,
                "Automated execution finished",
                {"run_id": run.run_id, "outcome": run.outcome.value if run.outcome else None},
            )
            return run
        except Exception as e:
            logger.exception("Automation run raised")
            self._sink.log(LogLevel.ERROR, "All automation methods failed", {"error": str(e)})
            return None
        finally:
            self.total_runs += 1
            self._in_progress = False
