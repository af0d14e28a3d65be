"""Fetch result data class for the transport strategies."""

from typing import Any


class FetchResult:
    """Result of a fetch operation.

    Produced by every transport (direct HTTP, CLI-wrapped fetch). A transport
    that cannot complete raises TransportError instead of returning ok=False,
    so ``ok`` here only encodes the per-transport success rule (e.g. the CLI
    fetch requires non-empty output).
    """

    def __init__(
        self,
        ok: bool,
        url: str,
        *,
        content: bytes = b"",
        status: int | None = None,
        headers: dict[str, str] | None = None,
        reason: str | None = None,
        method: str = "direct",
        elapsed_ms: float = 0.0,
        exit_code: int | None = None,
        stderr: str = "",
        final_url: str | None = None,
    ):
        self.ok = ok
        self.url = url
        self.final_url = final_url or url
        self.content = content
        self.status = status
        self.headers = headers or {}
        self.reason = reason
        self.method = method
        self.elapsed_ms = elapsed_ms
        self.exit_code = exit_code
        self.stderr = stderr

    @property
    def text(self) -> str:
        """Body decoded as UTF-8 (invalid bytes replaced)."""
        return self.content.decode("utf-8", errors="replace")

    @property
    def content_length(self) -> int:
        return len(self.content)

    def preview(self, limit: int = 200) -> str:
        """First ``limit`` characters of the body, for logs."""
        return self.text[:limit]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without the body)."""
        result: dict[str, Any] = {
            "ok": self.ok,
            "url": self.url,
            "final_url": self.final_url,
            "status": self.status,
            "content_length": self.content_length,
            "reason": self.reason,
            "method": self.method,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        if self.stderr:
            result["stderr"] = self.stderr
        return result
