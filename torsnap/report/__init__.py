"""
torsnap reporting module.

Log sink and artifact store interfaces, the monitoring dashboard, and
webhook delivery.
"""

from torsnap.report.dashboard import Dashboard
from torsnap.report.sink import (
    ArtifactStatus,
    ArtifactStore,
    DiscardArtifactStore,
    LogLevel,
    LogSink,
    StructlogSink,
)
from torsnap.report.webhook import DeliveryMetadata, WebhookSender

__all__ = [
    "ArtifactStatus",
    "ArtifactStore",
    "Dashboard",
    "DeliveryMetadata",
    "DiscardArtifactStore",
    "LogLevel",
    "LogSink",
    "StructlogSink",
    "WebhookSender",
]
