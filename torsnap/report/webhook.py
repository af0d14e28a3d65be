"""
Webhook delivery for torsnap.

Posts a captured image plus metadata as multipart/form-data. Exactly one
attempt per call; any non-2xx status or transport error becomes a
DeliveryError.
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from torsnap.utils.config import Settings, get_settings
from torsnap.utils.errors import DeliveryError
from torsnap.utils.logging import get_logger

logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class DeliveryMetadata:
    """Form fields sent alongside the image.

    Attributes:
        site: Target URL the image was taken from.
        source: Producer tag.
        capture: ``real`` for a genuine capture, ``demo`` for the placeholder.
        timestamp: ISO-8601 UTC time of sending.
    """

    site: str
    source: str = "tor-automation-script"
    capture: str = "real"
    timestamp: str = field(default_factory=_now_iso)

    def to_form(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "source": self.source,
            "site": self.site,
            "capture": self.capture,
        }


class WebhookSender:
    """Single-attempt multipart uploader."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.webhook.url)

    def default_metadata(self, *, capture: str = "real") -> DeliveryMetadata:
        return DeliveryMetadata(
            site=self._settings.target.url,
            source=self._settings.webhook.source,
            capture=capture,
        )

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": self._settings.webhook.user_agent},
            transport=self._transport,
        )

    async def send_image(self, image: bytes, metadata: DeliveryMetadata | None = None) -> None:
        """Upload ``image`` to the configured webhook.

        Args:
            image: PNG bytes.
            metadata: Form fields; defaults to a ``real`` capture of the target.

        Raises:
            DeliveryError: Not configured, body too large, non-2xx, or transport failure.
        """
        webhook = self._settings.webhook
        metadata = metadata or self.default_metadata()

        if not webhook.url:
            raise DeliveryError("Webhook URL is not configured")
        if len(image) > webhook.max_body_bytes:
            raise DeliveryError(
                f"Image of {len(image)} bytes exceeds the {webhook.max_body_bytes} byte limit",
                details={"size": len(image)},
            )

        filename = f"screenshot_{int(time.time() * 1000)}.png"
        logger.info(
            "Sending image to webhook",
            size=len(image),
            capture=metadata.capture,
            filename=filename,
        )

        try:
            async with self._client(webhook.timeout) as client:
                response = await client.post(
                    webhook.url,
                    data=metadata.to_form(),
                    files={"image": (filename, image, "image/png")},
                )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook delivery failed: {e}") from e

        if not response.is_success:
            raise DeliveryError(
                f"Webhook returned status {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        logger.info("Image sent to webhook", status=response.status_code)

    async def test_webhook(self) -> bool:
        """Post a JSON ping and report whether the endpoint answered 2xx."""
        webhook = self._settings.webhook
        if not webhook.url:
            logger.warning("Webhook test skipped, no URL configured")
            return False

        payload: dict[str, Any] = {
            "test": True,
            "timestamp": _now_iso(),
            "message": "Webhook connectivity test",
        }
        try:
            async with self._client(webhook.test_timeout) as client:
                response = await client.post(webhook.url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Webhook test failed", error=str(e))
            return False

        ok = response.is_success
        if ok:
            logger.info("Webhook test successful", status=response.status_code)
        else:
            logger.error("Webhook test failed", status=response.status_code)
        return ok
