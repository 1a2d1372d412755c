"""Error types raised by the commerce API client.

Only transport-level failures are raised. Stream-level problems (malformed
lines, ``error`` events) are delivered in-band and never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_ERROR_MESSAGE = "Request failed"


@dataclass(eq=False)
class ApiError(Exception):
    """A request that did not produce a successful response.

    Attributes:
        message: Human-readable error description.
        status: HTTP status code, when a response was received.
        payload: Decoded error body, when it was JSON.
    """

    message: str
    status: int | None = None
    payload: Any = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_response(cls, status: int, payload: Any, reason: str | None = None) -> "ApiError":
        """Build an error from a failed response body.

        The message prefers the body's ``message`` then ``error`` keys, then
        the HTTP reason phrase.
        """

        message = None
        if isinstance(payload, Mapping):
            message = payload.get("message") or payload.get("error")
        if not isinstance(message, str) or not message:
            message = reason or DEFAULT_ERROR_MESSAGE
        return cls(message=message, status=status, payload=payload)


@dataclass(eq=False)
class StreamUnavailableError(ApiError):
    """A successful response that carried no readable event stream."""

    message: str = "Stream not available"


__all__ = ["ApiError", "StreamUnavailableError", "DEFAULT_ERROR_MESSAGE"]
