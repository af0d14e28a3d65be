"""
Run data model for the torsnap pipeline.

A Run is created when the scheduler fires and lives only for that
execution; its final state is summarized into log and artifact entries.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from torsnap.extractor.targeting import TargetLink, TargetRegion
from torsnap.report.sink import ArtifactStatus


class StrategyKind(str, Enum):
    """Fixed, ordered set of capture strategies."""

    DIRECT_TRANSPORT = "direct_transport"
    PROXIED_BROWSER_NAVIGATION = "proxied_browser_navigation"
    WRAPPED_CLI_FETCH = "wrapped_cli_fetch"


# Process-wide order; the orchestrator never reorders it.
STRATEGY_ORDER: tuple[StrategyKind, ...] = (
    StrategyKind.DIRECT_TRANSPORT,
    StrategyKind.PROXIED_BROWSER_NAVIGATION,
    StrategyKind.WRAPPED_CLI_FETCH,
)


class RunOutcome(str, Enum):
    """Terminal state of a run."""

    SUCCESS = "success"
    FAILURE = "failure"
    DEMO_FALLBACK = "demo_fallback"


class CaptureKind(str, Enum):
    """Whether the delivered image is a genuine capture."""

    REAL = "real"
    DEMO = "demo"


@dataclass
class StrategyResult:
    """What one strategy attempt produced.

    Attributes:
        kind: Strategy that ran.
        ok: A cropped image was produced.
        image: Cropped PNG when ok.
        link: Link that was followed, if any.
        region: Region the image was cropped to.
        reason: Failure description when not ok.
        abort_to_demo: Skip remaining strategies and go straight to the demo fallback.
        attempts: Ordered step names tried (e.g. ``proxied_browser_navigation:standard_http``).
    """

    kind: StrategyKind
    ok: bool = False
    image: bytes | None = None
    link: TargetLink | None = None
    region: TargetRegion | None = None
    reason: str | None = None
    abort_to_demo: bool = False
    attempts: list[str] = field(default_factory=list)

    @classmethod
    def failed(
        cls,
        kind: StrategyKind,
        reason: str,
        *,
        abort_to_demo: bool = False,
        attempts: list[str] | None = None,
    ) -> "StrategyResult":
        return cls(
            kind=kind,
            ok=False,
            reason=reason,
            abort_to_demo=abort_to_demo,
            attempts=attempts or [kind.value],
        )


@dataclass
class Artifact:
    """Final image of a run and its status."""

    data: bytes
    status: ArtifactStatus
    error: str | None = None
    capture: CaptureKind = CaptureKind.REAL


@dataclass
class Run:
    """One execution of the fallback pipeline."""

    run_id: str = field(default_factory=lambda: f"run_{uuid.uuid4().hex[:12]}")
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    strategy: StrategyKind | None = None
    outcome: RunOutcome | None = None
    artifact_id: str | None = None
    error: str | None = None
    attempts: list[str] = field(default_factory=list)
    capture: CaptureKind | None = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "strategy": self.strategy.value if self.strategy else None,
            "outcome": self.outcome.value if self.outcome else None,
            "artifact_id": self.artifact_id,
            "error": self.error,
            "attempts": list(self.attempts),
            "capture": self.capture.value if self.capture else None,
        }
