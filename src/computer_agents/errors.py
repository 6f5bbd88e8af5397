from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import StreamEvent


class ApiClientError(Exception):
    """Base exception for the computer-agents package.

    Every failure surfaced by the client is an instance of this class, so
    callers can always branch on `status` and `code`.
    """

    def __init__(
        self,
        message: str,
        status: int,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Create an API error.

        Args:
            message: Human-readable description.
            status: HTTP-style numeric status.
            code: Optional machine-readable error code.
            details: Optional server-provided error payload.
        """
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status={self.status}, code={self.code!r})"
        )


class ApiTransportError(ApiClientError):
    """Raised when the HTTP connection fails (DNS, refused, reset)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 500, code="NETWORK_ERROR")


class ApiTimeoutError(ApiClientError):
    """Raised when a request or streamed execution exceeds its deadline."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Request timeout after {timeout:g}s", 408, code="TIMEOUT")
        self.timeout = timeout


class ApiHttpError(ApiClientError):
    """Raised for non-2xx responses with a parsed or synthesized error body."""


class StreamError(ApiClientError):
    """Raised when the server emits a `stream.error` event mid-stream."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        event: StreamEvent | None = None,
        events: list[StreamEvent] | None = None,
    ) -> None:
        super().__init__(message, 500, code=code or "STREAM_ERROR")
        self.event = event
        self.events = events if events is not None else []


class ApiProtocolError(ApiClientError):
    """Raised when a stream fails before any event, closes uncleanly, or a
    response does not have the expected shape.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, status if status is not None else 502, code="PROTOCOL_ERROR")
