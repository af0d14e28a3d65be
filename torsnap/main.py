"""
Main entry point for torsnap.

Commands:
  serve          dashboard + forwarding proxy + periodic scheduler
  once           a single automation run
  check-webhook  post a connectivity ping to the webhook
"""

import argparse
import asyncio
import functools
import signal
import sys

from torsnap.pipeline.orchestrator import build_orchestrator
from torsnap.proxy.server import TorProxyServer
from torsnap.report.dashboard import Dashboard
from torsnap.report.sink import LogLevel
from torsnap.report.webhook import WebhookSender
from torsnap.scheduler.runner import AutomationScheduler
from torsnap.utils.config import Settings, ensure_directories, get_settings
from torsnap.utils.dotenv import load_dotenv_if_present
from torsnap.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def initialize() -> Settings:
    """Load environment and settings, prepare directories and logging."""
    load_dotenv_if_present()
    settings = get_settings()
    ensure_directories(settings)
    log_file = configure_logging(
        log_level=settings.general.log_level,
        json_format=settings.general.log_json,
    )

    logger.info(
        "torsnap initializing",
        version=settings.general.version,
        target=settings.target.url,
        interval_minutes=settings.scheduler.interval_minutes,
        log_file=str(log_file),
    )
    if not settings.webhook.url:
        logger.warning("WEBHOOK_URL not configured; deliveries will fail until it is set")
    return settings


async def serve(settings: Settings, interval_minutes: float | None = None) -> None:
    """Run dashboard, proxy and scheduler until SIGINT/SIGTERM."""
    dashboard = Dashboard(settings)
    proxy = TorProxyServer(settings, sink=dashboard) if settings.proxy.enabled else None
    orchestrator = build_orchestrator(settings, sink=dashboard, artifacts=dashboard)
    scheduler = AutomationScheduler(orchestrator, sink=dashboard, settings=settings)
    dashboard.bind(trigger=scheduler.run_once, scheduler_state=scheduler.state)

    if settings.dashboard.enabled:
        await dashboard.start()
    if proxy is not None:
        await proxy.start()

    scheduler.start(interval_minutes)
    dashboard.log(LogLevel.SUCCESS, "Application started successfully")

    stop_event = asyncio.Event()

    def handle_signal(sig: int) -> None:
        dashboard.log(LogLevel.INFO, f"Received {signal.Signals(sig).name}, shutting down gracefully...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, functools.partial(handle_signal, sig))

    try:
        await stop_event.wait()
    finally:
        await scheduler.shutdown()
        if proxy is not None:
            await proxy.stop()
        await dashboard.stop()
        logger.info("torsnap shutdown complete")


async def run_once(settings: Settings) -> int:
    """Execute one run; exit code 0 once it reached a terminal state."""
    dashboard = Dashboard(settings)
    proxy = TorProxyServer(settings, sink=dashboard) if settings.proxy.enabled else None
    orchestrator = build_orchestrator(settings, sink=dashboard, artifacts=dashboard)
    scheduler = AutomationScheduler(orchestrator, sink=dashboard, settings=settings)

    if proxy is not None:
        await proxy.start()
    try:
        run = await scheduler.run_once()
    finally:
        if proxy is not None:
            await proxy.stop()

    if run is None:
        return 1
    print(f"Run {run.run_id} finished: {run.outcome.value if run.outcome else 'unknown'}")
    return 0


async def check_webhook(settings: Settings) -> int:
    ok = await WebhookSender(settings).test_webhook()
    print("Webhook test successful" if ok else "Webhook test failed")
    return 0 if ok else 1


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="torsnap - scheduled Tor page capture with webhook delivery"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run dashboard, proxy and scheduler")
    serve_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Minutes between runs (overrides scheduler.interval_minutes)",
    )
    subparsers.add_parser("once", help="Execute a single automation run")
    subparsers.add_parser("check-webhook", help="Test webhook connectivity")

    args = parser.parse_args()
    if args.command == "serve" and args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")

    settings = initialize()

    if args.command == "serve":
        asyncio.run(serve(settings, args.interval))
        exit_code = 0
    elif args.command == "once":
        exit_code = asyncio.run(run_once(settings))
    else:
        exit_code = asyncio.run(check_webhook(settings))

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
