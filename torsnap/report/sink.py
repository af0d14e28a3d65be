"""
Log-sink and artifact-store interfaces used by the pipeline.

The pipeline reports every step through a LogSink and hands every produced
image to an ArtifactStore. The dashboard implements both; StructlogSink is the
default when nothing else is wired.
"""

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from torsnap.utils.logging import get_logger, log_at

logger = get_logger(__name__)


class LogLevel(str, Enum):
    """Levels understood by the monitoring layer."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class ArtifactStatus(str, Enum):
    """Status attached to a stored screenshot."""

    SUCCESS = "success"
    FAILED = "failed"


@runtime_checkable
class LogSink(Protocol):
    """Fire-and-forget log stream."""

    def log(
        self,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        ...


@runtime_checkable
class ArtifactStore(Protocol):
    """Destination for screenshots (real, demo and debug)."""

    async def save_artifact(
        self,
        data: bytes,
        status: ArtifactStatus,
        note: str | None = None,
    ) -> str:
        ...


def emit(level: LogLevel, message: str, details: dict[str, Any] | None = None) -> None:
    """Forward a sink entry to structlog."""
    log_at(logger, LogLevel(level).value, message, **(details or {}))


class StructlogSink:
    """LogSink writing straight to structlog."""

    def log(
        self,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        emit(level, message, details)


class DiscardArtifactStore:
    """ArtifactStore that keeps nothing (used when no dashboard is wired)."""

    def __init__(self) -> None:
        self._counter = 0

    async def save_artifact(
        self,
        data: bytes,
        status: ArtifactStatus,
        note: str | None = None,
    ) -> str:
        self._counter += 1
        artifact_id = f"discarded-{self._counter}"
        logger.debug(
            "Artifact discarded",
            artifact_id=artifact_id,
            status=status.value,
            size=len(data),
            note=note,
        )
        return artifact_id
