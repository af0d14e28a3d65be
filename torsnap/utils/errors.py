"""
Error kinds for the torsnap automation pipeline.

Recovery policy (applied by the orchestrator):
- TransportError, TargetNotFoundError: advance to the next strategy.
- ImageProcessingError (incl. RegionOutOfBoundsError), ResourceLaunchError:
  abandon real strategies and fall through to the demo fallback.
- DeliveryError: terminal for the run, logged and never re-raised to the scheduler.
"""

from typing import Any


class AutomationError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a log-friendly dictionary."""
        return {"error": type(self).__name__, "message": self.message, **self.details}


class TransportError(AutomationError):
    """Connection, timeout or DNS failure while fetching or navigating."""


class TargetNotFoundError(AutomationError):
    """The expected link or element is missing from the page."""


class ImageProcessingError(AutomationError):
    """Raster decoding, cropping or encoding failed."""


class RegionOutOfBoundsError(ImageProcessingError):
    """Crop rectangle does not lie inside the captured image."""

    def __init__(
        self,
        region: tuple[int, int, int, int],
        image_size: tuple[int, int],
    ):
        x, y, width, height = region
        image_width, image_height = image_size
        super().__init__(
            f"Crop region ({x}, {y}, {width}x{height}) exceeds image bounds "
            f"{image_width}x{image_height}",
            details={"region": list(region), "image_size": list(image_size)},
        )
        self.region = region
        self.image_size = image_size


class DeliveryError(AutomationError):
    """Webhook rejected the payload or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code


class ResourceLaunchError(AutomationError):
    """A browser or subprocess could not be started."""
