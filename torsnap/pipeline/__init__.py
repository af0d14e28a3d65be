"""
torsnap automation pipeline.

Strategies, demo fallback and the orchestrator that turns one scheduler
tick into exactly one delivered image.
"""

from torsnap.pipeline.demo import DemoFallback
from torsnap.pipeline.orchestrator import AutomationOrchestrator, build_orchestrator
from torsnap.pipeline.state import (
    STRATEGY_ORDER,
    Artifact,
    CaptureKind,
    Run,
    RunOutcome,
    StrategyKind,
    StrategyResult,
)
from torsnap.pipeline.strategies import (
    DirectTransportStrategy,
    ProxiedBrowserNavigationStrategy,
    WrappedCliFetchStrategy,
)

__all__ = [
    "STRATEGY_ORDER",
    "Artifact",
    "AutomationOrchestrator",
    "CaptureKind",
    "DemoFallback",
    "DirectTransportStrategy",
    "ProxiedBrowserNavigationStrategy",
    "Run",
    "RunOutcome",
    "StrategyKind",
    "StrategyResult",
    "WrappedCliFetchStrategy",
    "build_orchestrator",
]
