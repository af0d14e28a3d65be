"""
torsnap utilities: configuration, logging and error kinds.
"""

from torsnap.utils.config import Settings, get_settings, load_settings
from torsnap.utils.errors import (
    AutomationError,
    DeliveryError,
    ImageProcessingError,
    RegionOutOfBoundsError,
    ResourceLaunchError,
    TargetNotFoundError,
    TransportError,
)
from torsnap.utils.logging import LogContext, configure_logging, get_logger, log_at

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "load_settings",
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "log_at",
    # Errors
    "AutomationError",
    "TransportError",
    "TargetNotFoundError",
    "ImageProcessingError",
    "RegionOutOfBoundsError",
    "DeliveryError",
    "ResourceLaunchError",
]
