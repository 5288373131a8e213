"""Inbound response value objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from ..models.config import HttpVersion
from .headers import Headers
from .request import Request

T = TypeVar("T")


@dataclass(frozen=True)
class ResponseHead:
    """
    Status line and headers of a response, before the body is read.

    Attributes:
        status_code: HTTP status code (100-599)
        reason: Reason phrase sent by the server
        version: Protocol version of the status line
        headers: Response headers
    """

    status_code: int
    reason: str
    version: HttpVersion
    headers: Headers

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400


@dataclass(frozen=True)
class Response(Generic[T]):
    """
    Immutable HTTP response returned by HttpClient.

    Attributes:
        status_code: HTTP status code (200, 404, etc.)
        version: Negotiated protocol version
        headers: All response headers
        body: Body as produced by the caller's body handler
        request: The request this response answers (after redirects)
        uri: URI the response was received from
        previous_response: Prior hop of a redirect or authentication chain
    """

    status_code: int
    version: HttpVersion
    headers: Headers
    body: T
    request: Request
    uri: str
    previous_response: Optional[Response[None]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def history(self) -> list[Response[None]]:
        """Earlier hops, oldest first."""
        hops: list[Response[None]] = []
        current = self.previous_response
        while current is not None:
            hops.append(current)
            current = current.previous_response
        hops.reverse()
        return hops

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}] {self.version.value} {self.uri}>"
