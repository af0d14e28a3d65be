"""
Tests for webhook delivery.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-WH-N-01 | 200 response | Equivalence – normal | One multipart POST | Fields + file |
| TC-WH-N-02 | Default metadata | Equivalence – normal | source=tor-automation-script | Form |
| TC-WH-N-03 | 204 response | Boundary – 2xx | No error | Success range |
| TC-WH-A-01 | 500 response | Abnormal – server | DeliveryError(500) | No retry |
| TC-WH-A-02 | 404 response | Abnormal – client | DeliveryError(404) | |
| TC-WH-A-03 | Connect error | Abnormal – network | DeliveryError | Wrapped |
| TC-WH-A-04 | No URL configured | Abnormal – config | DeliveryError, no request | |
| TC-WH-A-05 | Image over size limit | Boundary – max body | DeliveryError, no request | |
| TC-WT-N-01 | Ping answered 200 | Equivalence – normal | True, JSON payload | Test ping |
| TC-WT-A-01 | Ping answered 500 | Abnormal – server | False | |
| TC-WT-A-02 | No URL | Abnormal – config | False | |
"""

import json

import httpx
import pytest

from tests.conftest import make_png
from torsnap.report.webhook import DeliveryMetadata, WebhookSender
from torsnap.utils.errors import DeliveryError

pytestmark = pytest.mark.unit


class RecordingTransport:
    """Builds an httpx.MockTransport answering with a fixed status."""

    def __init__(self, status: int = 200, error: Exception | None = None) -> None:
        self.status = status
        self.error = error
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text="ok")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def image() -> bytes:
    return make_png(20, 10)


class TestSendImage:
    @pytest.mark.asyncio
    async def test_multipart_upload(self, settings, image):
        """Image and metadata are posted once as multipart/form-data (TC-WH-N-01)."""
        # Given: An endpoint answering 200
        recorder = RecordingTransport(200)
        sender = WebhookSender(settings, transport=recorder.transport)

        # When: Sending the image
        await sender.send_image(image)

        # Then: One POST carries the file part and the form fields
        assert len(recorder.requests) == 1
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://hooks.test/upload"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert request.headers["user-agent"] == "Tor-Automation-Script/1.0"
        body = request.content
        assert b'name="image"; filename="screenshot_' in body
        assert b"Content-Type: image/png" in body
        assert image in body

    @pytest.mark.asyncio
    async def test_default_metadata_fields(self, settings, image):
        """Default metadata names the producer and the target site (TC-WH-N-02)."""
        recorder = RecordingTransport(200)
        sender = WebhookSender(settings, transport=recorder.transport)

        await sender.send_image(image)

        body = recorder.requests[0].content
        assert b'name="source"\r\n\r\ntor-automation-script' in body
        assert b'name="site"\r\n\r\nhttp://exampleonionaddress.onion/' in body
        assert b'name="capture"\r\n\r\nreal' in body
        assert b'name="timestamp"' in body

    @pytest.mark.asyncio
    async def test_explicit_demo_metadata(self, settings, image):
        recorder = RecordingTransport(200)
        sender = WebhookSender(settings, transport=recorder.transport)

        await sender.send_image(image, DeliveryMetadata(site="s", capture="demo"))

        assert b'name="capture"\r\n\r\ndemo' in recorder.requests[0].content

    @pytest.mark.asyncio
    async def test_any_2xx_is_success(self, settings, image):
        """204 No Content still counts as delivered (TC-WH-N-03)."""
        recorder = RecordingTransport(204)
        await WebhookSender(settings, transport=recorder.transport).send_image(image)
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 404], ids=["TC-WH-A-01", "TC-WH-A-02"])
    async def test_non_2xx_raises(self, settings, image, status):
        """Non-2xx responses raise DeliveryError carrying the status, without retry."""
        # Given: An endpoint answering an error status
        recorder = RecordingTransport(status)
        sender = WebhookSender(settings, transport=recorder.transport)

        # When/Then: DeliveryError with the status code
        with pytest.raises(DeliveryError) as exc_info:
            await sender.send_image(image)

        assert exc_info.value.status_code == status
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_connect_error(self, settings, image):
        """Transport failures become DeliveryError (TC-WH-A-03)."""
        recorder = RecordingTransport(error=httpx.ConnectError("refused"))
        sender = WebhookSender(settings, transport=recorder.transport)

        with pytest.raises(DeliveryError) as exc_info:
            await sender.send_image(image)

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_missing_url(self, make_settings, image):
        """No configured URL fails before any request (TC-WH-A-04)."""
        recorder = RecordingTransport(200)
        sender = WebhookSender(make_settings(webhook={"url": ""}), transport=recorder.transport)

        assert sender.configured is False
        with pytest.raises(DeliveryError):
            await sender.send_image(image)
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_oversized_image(self, make_settings):
        """Bodies over the configured limit are refused locally (TC-WH-A-05)."""
        # Given: A 100-byte limit and a larger image
        recorder = RecordingTransport(200)
        settings = make_settings(webhook={"max_body_bytes": 100})
        sender = WebhookSender(settings, transport=recorder.transport)

        # When/Then: DeliveryError without sending
        with pytest.raises(DeliveryError):
            await sender.send_image(b"x" * 101)
        assert recorder.requests == []


class TestWebhookPing:
    @pytest.mark.asyncio
    async def test_ping_success(self, settings):
        """A 2xx answer to the JSON ping returns True (TC-WT-N-01)."""
        recorder = RecordingTransport(200)
        sender = WebhookSender(settings, transport=recorder.transport)

        assert await sender.test_webhook() is True

        payload = json.loads(recorder.requests[0].content)
        assert payload["test"] is True
        assert payload["message"] == "Webhook connectivity test"
        assert payload["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_ping_failure_status(self, settings):
        """A non-2xx answer returns False (TC-WT-A-01)."""
        recorder = RecordingTransport(500)
        assert await WebhookSender(settings, transport=recorder.transport).test_webhook() is False

    @pytest.mark.asyncio
    async def test_ping_without_url(self, make_settings):
        """No URL returns False without a request (TC-WT-A-02)."""
        recorder = RecordingTransport(200)
        sender = WebhookSender(make_settings(webhook={"url": ""}), transport=recorder.transport)

        assert await sender.test_webhook() is False
        assert recorder.requests == []
