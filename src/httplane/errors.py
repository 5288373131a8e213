"""Error taxonomy for httplane.

Every failure surfaced by the client derives from HttpLaneError so callers
can catch the whole family in one place. Synchronous callers receive these
as raised exceptions; asynchronous callers receive them from the
ResponseFuture.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .http.response import Response


class HttpLaneError(Exception):
    """
    Base exception for all httplane errors.

    Attributes:
        message: Human-readable error description
        uri: URI of the request that failed, if known
    """

    def __init__(self, message: str, uri: Optional[str] = None):
        self.message = message
        self.uri = uri
        super().__init__(message)

    def __str__(self) -> str:
        if self.uri:
            return f"{self.message} ({self.uri})"
        return self.message


class InvalidRequest(HttpLaneError, ValueError):
    """A request could not be built: bad URI, scheme or header."""


class ConnectError(HttpLaneError):
    """DNS resolution or TCP connect failed, or the connection was lost."""


class TLSError(ConnectError):
    """TLS handshake or certificate verification failed."""


class ProtocolError(HttpLaneError):
    """The server sent malformed HTTP framing or closed the connection early."""


class Timeout(HttpLaneError):
    """The connect timeout or the overall request deadline was exceeded."""


class TooManyRedirects(HttpLaneError):
    """
    The redirect loop guard tripped.

    Attributes:
        response: The last redirect response received (body discarded)
        max_redirects: The configured hop limit
    """

    def __init__(self, message: str, response: "Response[None]", max_redirects: int):
        self.response = response
        self.max_redirects = max_redirects
        super().__init__(message, uri=response.uri)


class Cancelled(HttpLaneError):
    """The caller cancelled the request."""
