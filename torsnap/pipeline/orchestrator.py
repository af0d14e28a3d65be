"""
Fallback orchestrator: one automation run, end to end.

Tries each strategy in the fixed order until one yields a cropped image,
falls back to the demo capture when none does, then delivers exactly one
image and stores exactly one artifact. ``run()`` never raises.

    Direct -> ProxiedBrowserNavigation (4 variants) -> WrappedCliFetch
        -> [DemoFallback] -> Deliver -> Done
"""

from collections.abc import Sequence
from datetime import UTC, datetime

from torsnap.crawler.browser_provider import BrowserProvider
from torsnap.pipeline.demo import DemoFallback
from torsnap.pipeline.state import (
    Artifact,
    CaptureKind,
    Run,
    RunOutcome,
    StrategyKind,
)
from torsnap.pipeline.strategies import (
    DirectTransportStrategy,
    ProxiedBrowserNavigationStrategy,
    Strategy,
    WrappedCliFetchStrategy,
)
from torsnap.report.sink import (
    ArtifactStatus,
    ArtifactStore,
    DiscardArtifactStore,
    LogLevel,
    LogSink,
    StructlogSink,
)
from torsnap.report.webhook import WebhookSender
from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import DeliveryError
from torsnap.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class AutomationOrchestrator:
    """Owns the outcome of a single run."""

    def __init__(
        self,
        settings: Settings,
        *,
        sink: LogSink,
        artifacts: ArtifactStore,
        strategies: Sequence[Strategy],
        demo: DemoFallback,
        sender: WebhookSender,
    ) -> None:
        self._settings = settings
        self._sink = sink
        self._artifacts = artifacts
        self._strategies = tuple(strategies)
        self._demo = demo
        self._sender = sender

    @property
    def strategy_kinds(self) -> tuple[StrategyKind, ...]:
        return tuple(s.kind for s in self._strategies)

    async def run(self, run: Run | None = None) -> Run:
        """Execute one run to its terminal state.

        Args:
            run: Run record created by the caller; a fresh one when omitted.

        Returns:
            The finished Run (outcome always set).
        """
        run = run or Run()
        with LogContext(run_id=run.run_id):
            self._sink.log(
                LogLevel.INFO,
                "Starting automation run",
                {"run_id": run.run_id, "target": self._settings.target.url},
            )
            try:
                artifact = await self._capture(run)
                await self._deliver(run, artifact)
            except Exception as e:
                logger.exception("Automation run crashed", run_id=run.run_id)
                self._sink.log(LogLevel.ERROR, "Automation run failed", {"error": str(e)})
                run.outcome = RunOutcome.FAILURE
                run.error = str(e)
            finally:
                run.finished_at = datetime.now(UTC)

            logger.info("Automation run finished", **run.to_dict())
        return run

    async def _capture(self, run: Run) -> Artifact:
        target_url = self._settings.target.url
        reason: str | None = None

        for strategy in self._strategies:
            run.strategy = strategy.kind
            result = await strategy.attempt(target_url)
            run.attempts.extend(result.attempts)

            if result.ok and result.image:
                self._sink.log(
                    LogLevel.SUCCESS,
                    f"Target captured via {strategy.kind.value}",
                    {"size": len(result.image)},
                )
                return Artifact(data=result.image, status=ArtifactStatus.SUCCESS)

            reason = f"{strategy.kind.value}: {result.reason}"
            if result.abort_to_demo:
                logger.info("Skipping remaining strategies", strategy=strategy.kind.value)
                break

        image = await self._demo.produce(reason)
        run.attempts.append("demo_fallback")
        return Artifact(
            data=image,
            status=ArtifactStatus.FAILED,
            error=f"Demo fallback ({reason})" if reason else "Demo fallback",
            capture=CaptureKind.DEMO,
        )

    async def _deliver(self, run: Run, artifact: Artifact) -> None:
        run.capture = artifact.capture
        metadata = self._sender.default_metadata(capture=artifact.capture.value)

        try:
            await self._sender.send_image(artifact.data, metadata)
        except DeliveryError as e:
            self._sink.log(
                LogLevel.ERROR,
                "Webhook delivery failed",
                {"error": e.message, "status_code": e.status_code},
            )
            run.outcome = RunOutcome.FAILURE
            run.error = e.message
            status, note = ArtifactStatus.FAILED, e.message
        else:
            if artifact.capture == CaptureKind.REAL:
                run.outcome = RunOutcome.SUCCESS
                self._sink.log(LogLevel.SUCCESS, "Screenshot sent to webhook")
            else:
                run.outcome = RunOutcome.DEMO_FALLBACK
                run.error = artifact.error
                self._sink.log(LogLevel.SUCCESS, "Demo screenshot sent to webhook")
            status, note = artifact.status, artifact.error

        try:
            run.artifact_id = await self._artifacts.save_artifact(artifact.data, status, note)
        except Exception as e:
            # Outcome stands; only the monitoring copy is lost
            logger.error("Artifact store failed", error=str(e), run_id=run.run_id)


def build_orchestrator(
    settings: Settings | None = None,
    *,
    sink: LogSink | None = None,
    artifacts: ArtifactStore | None = None,
    browser: BrowserProvider | None = None,
    sender: WebhookSender | None = None,
) -> AutomationOrchestrator:
    """Wire the production strategies around one browser provider."""
    settings = settings or get_settings()
    sink = sink or StructlogSink()
    artifacts = artifacts or DiscardArtifactStore()
    if browser is None:
        from torsnap.crawler.playwright_provider import PlaywrightProvider

        browser = PlaywrightProvider(settings)

    shared = {"browser": browser, "sink": sink, "artifacts": artifacts}
    strategies: list[Strategy] = [
        DirectTransportStrategy(settings, **shared),
        ProxiedBrowserNavigationStrategy(settings, **shared),
        WrappedCliFetchStrategy(settings, **shared),
    ]
    return AutomationOrchestrator(
        settings,
        sink=sink,
        artifacts=artifacts,
        strategies=strategies,
        demo=DemoFallback(settings, browser=browser, sink=sink),
        sender=sender or WebhookSender(settings),
    )
