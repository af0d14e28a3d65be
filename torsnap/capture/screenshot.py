"""
Capture & crop for torsnap.

Full-page PNG capture from a live page, pixel-exact crop to a TargetRegion,
and the small Pillow helpers around them.
"""

import io
import math
from datetime import UTC, datetime
from typing import Any

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from torsnap.crawler.browser_provider import PageHandle
from torsnap.extractor.targeting import TargetRegion
from torsnap.utils.errors import ImageProcessingError, RegionOutOfBoundsError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)

PNG_COMPRESS_LEVEL = 6


def _round_px(value: float) -> int:
    # Half-up, so 10.5 -> 11 and -0.5 -> 0
    return math.floor(value + 0.5)


def _open(image: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(image))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Cannot decode image: {e}") from e
    return img


def _to_png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    return buffer.getvalue()


class ScreenshotCapture:
    """Takes full-page captures and crops them."""

    async def capture(self, page: PageHandle) -> bytes:
        """Full-page PNG of ``page``."""
        image = await page.screenshot(full_page=True, type="png")
        logger.debug("Full-page screenshot captured", size=len(image))
        return image

    def crop(self, image: bytes, region: TargetRegion) -> bytes:
        """Crop ``image`` to ``region``.

        Coordinates are rounded to whole pixels (half-up) before cropping. A
        full-page region returns the image unchanged.

        Args:
            image: PNG (or any Pillow-readable) bytes.
            region: Rectangle to keep.

        Returns:
            PNG bytes of exactly ``width x height`` pixels.

        Raises:
            RegionOutOfBoundsError: Rectangle is empty or not fully inside the image.
            ImageProcessingError: Input cannot be decoded.
        """
        if region.full_page:
            return image

        img = _open(image)
        left, top = _round_px(region.x), _round_px(region.y)
        width, height = _round_px(region.width), _round_px(region.height)
        img_w, img_h = img.size

        if (
            left < 0
            or top < 0
            or width <= 0
            or height <= 0
            or left + width > img_w
            or top + height > img_h
        ):
            raise RegionOutOfBoundsError((left, top, width, height), (img_w, img_h))

        logger.info("Cropping image", x=left, y=top, width=width, height=height)
        cropped = _to_png(img.crop((left, top, left + width, top + height)))
        logger.debug("Image cropped", size=len(cropped))
        return cropped


def optimize_image(image: bytes, max_width: int | None = None) -> bytes:
    """Re-encode as PNG, downscaling to ``max_width`` if wider (never enlarging)."""
    img = _open(image)
    if max_width and img.width > max_width:
        new_height = max(1, round(img.height * max_width / img.width))
        img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
    return _to_png(img)


def get_image_info(image: bytes) -> dict[str, Any]:
    """Format, dimensions and mode of an encoded image."""
    img = _open(image)
    return {
        "format": img.format,
        "width": img.width,
        "height": img.height,
        "mode": img.mode,
        "size": len(image),
    }


def render_demo_card(
    text: str = "Demo link expires in 24 hours",
    *,
    width: int = 600,
    height: int = 160,
) -> bytes:
    """Static placeholder image for runs where no browser could be used."""
    img = Image.new("RGB", (width, height), (240, 248, 255))
    draw = ImageDraw.Draw(img)
    draw.rectangle((1, 1, width - 2, height - 2), outline=(0, 123, 255), width=2)

    font = ImageFont.load_default()
    stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
    draw.text((20, 24), "Demo Content", fill=(33, 37, 41), font=font)
    draw.text((20, 64), text, fill=(0, 123, 255), font=font)
    draw.text((20, 104), f"Generated at: {stamp}", fill=(108, 117, 125), font=font)
    return _to_png(img)
