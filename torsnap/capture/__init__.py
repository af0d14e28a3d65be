"""
Capture module for torsnap.

Full-page captures and pixel-exact crops.
"""

from torsnap.capture.screenshot import (
    ScreenshotCapture,
    get_image_info,
    optimize_image,
    render_demo_card,
)

__all__ = [
    "ScreenshotCapture",
    "get_image_info",
    "optimize_image",
    "render_demo_card",
]
