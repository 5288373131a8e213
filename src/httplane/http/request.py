"""Outbound request value objects and their builder."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlencode, urlsplit

from ..errors import InvalidRequest
from ..models.config import HttpVersion
from ..security.url_validator import UriValidator
from .headers import Headers

DEFAULT_PORTS = {"http": 80, "https": 443}

# Managed by the transport; callers may not set them.
RESTRICTED_HEADERS = frozenset({"connection", "content-length", "expect", "host", "transfer-encoding", "upgrade"})

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

# Header values go on the wire as ASCII: visible characters, space and tab
_FIELD_VALUE_RE = re.compile(r"^[\t\x20-\x7e]*$")

_validator = UriValidator()


class Method(str, Enum):
    """Request methods understood by the client."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"


@dataclass(frozen=True)
class BodyPublisher:
    """
    A request body with a known length.

    Attributes:
        content: Encoded body bytes
        content_type: Content-Type implied by the body, if any
    """

    content: bytes = b""
    content_type: Optional[str] = None

    def __len__(self) -> int:
        return len(self.content)


class BodyPublishers:
    """Factories for request bodies."""

    @staticmethod
    def no_body() -> BodyPublisher:
        """An empty body (sent as ``Content-Length: 0``)."""
        return BodyPublisher(b"")

    @staticmethod
    def of_string(text: str, charset: str = "utf-8") -> BodyPublisher:
        return BodyPublisher(text.encode(charset))

    @staticmethod
    def of_bytes(data: bytes) -> BodyPublisher:
        return BodyPublisher(bytes(data))

    @staticmethod
    def of_form(fields: Union[Mapping[str, str], list[tuple[str, str]]]) -> BodyPublisher:
        """URL-encode ``fields`` as an ``application/x-www-form-urlencoded`` body."""
        items = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
        return BodyPublisher(urlencode(items).encode("ascii"), FORM_CONTENT_TYPE)


@dataclass(frozen=True)
class Request:
    """
    Immutable outbound request.

    Built with ``Request.builder(uri)``; safe to share between threads and
    to resend for redirects and authentication retries.

    Attributes:
        method: Request method name (upper case)
        uri: Absolute http(s) URI
        headers: Caller-supplied headers
        body: Body to send, or None
        timeout: Overall deadline in seconds (overrides the client default)
        version: Preferred protocol version (overrides the client default)
    """

    method: str
    uri: str
    headers: Headers = field(default_factory=Headers)
    body: Optional[BodyPublisher] = None
    timeout: Optional[float] = None
    version: Optional[HttpVersion] = None

    @staticmethod
    def builder(uri: Optional[str] = None) -> RequestBuilder:
        return RequestBuilder(uri)

    def to_builder(self) -> RequestBuilder:
        """Return a builder pre-filled with this request's fields."""
        builder = RequestBuilder(self.uri)
        builder._method = self.method
        builder._headers = self.headers
        builder._body = self.body
        builder._timeout = self.timeout
        builder._version = self.version
        return builder

    @property
    def scheme(self) -> str:
        return urlsplit(self.uri).scheme.lower()

    @property
    def host(self) -> str:
        return urlsplit(self.uri).hostname or ""

    @property
    def port(self) -> int:
        parts = urlsplit(self.uri)
        return parts.port or DEFAULT_PORTS[parts.scheme.lower()]

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def authority(self) -> str:
        """Host header value; the port is omitted when it is the scheme default."""
        host = self.host
        if ":" in host:
            host = f"[{host}]"
        if self.port == DEFAULT_PORTS[self.scheme]:
            return host
        return f"{host}:{self.port}"

    @property
    def target(self) -> str:
        """Request-target in origin form: path plus query."""
        parts = urlsplit(self.uri)
        path = parts.path or "/"
        if parts.query:
            return f"{path}?{parts.query}"
        return path

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.uri}>"


class RequestBuilder:
    """
    Mutable builder producing immutable Request objects.

    Example:
        request = (
            Request.builder("http://localhost:8080/post")
            .timeout(240)
            .post(BodyPublishers.of_string("firstName=Ramin&lastName=Zare"))
            .header("Content-Type", "application/x-www-form-urlencoded")
            .build()
        )
    """

    def __init__(self, uri: Optional[str] = None) -> None:
        self._uri = uri
        self._method: str = Method.GET.value
        self._headers = Headers()
        self._body: Optional[BodyPublisher] = None
        self._timeout: Optional[float] = None
        self._version: Optional[HttpVersion] = None

    def uri(self, uri: str) -> RequestBuilder:
        self._uri = uri
        return self

    def header(self, name: str, value: str) -> RequestBuilder:
        """Add a header value, keeping existing values for the same name."""
        self._check_header(name, value)
        self._headers = self._headers.with_header(name, value)
        return self

    def set_header(self, name: str, value: str) -> RequestBuilder:
        """Set a header, replacing any existing values for the same name."""
        self._check_header(name, value)
        self._headers = self._headers.replace(name, value)
        return self

    def headers(self, *pairs: str) -> RequestBuilder:
        """Add headers given as alternating name, value arguments."""
        if len(pairs) % 2:
            raise InvalidRequest("headers() takes name/value pairs")
        for name, value in zip(pairs[::2], pairs[1::2]):
            self.header(name, value)
        return self

    def timeout(self, seconds: Optional[float]) -> RequestBuilder:
        if seconds is not None and seconds <= 0:
            raise InvalidRequest(f"Timeout must be positive, got {seconds}")
        self._timeout = seconds
        return self

    def version(self, version: Optional[HttpVersion]) -> RequestBuilder:
        self._version = version
        return self

    def get(self) -> RequestBuilder:
        return self.method(Method.GET)

    def head(self) -> RequestBuilder:
        return self.method(Method.HEAD)

    def delete(self) -> RequestBuilder:
        return self.method(Method.DELETE)

    def post(self, body: Optional[BodyPublisher] = None) -> RequestBuilder:
        return self.method(Method.POST, body or BodyPublishers.no_body())

    def put(self, body: Optional[BodyPublisher] = None) -> RequestBuilder:
        return self.method(Method.PUT, body or BodyPublishers.no_body())

    def patch(self, body: Optional[BodyPublisher] = None) -> RequestBuilder:
        return self.method(Method.PATCH, body or BodyPublishers.no_body())

    def method(self, name: Union[str, Method], body: Optional[BodyPublisher] = None) -> RequestBuilder:
        """Set an arbitrary method and body."""
        value = name.value if isinstance(name, Method) else str(name)
        if not _TOKEN_RE.match(value):
            raise InvalidRequest(f"Invalid method name: {value!r}")
        self._method = value.upper()
        self._body = body
        return self

    def build(self) -> Request:
        """
        Validate and freeze the request.

        Raises:
            InvalidRequest: If the URI is missing, relative or unsupported
        """
        if self._uri is None:
            raise InvalidRequest("Request URI not set")

        reason = _validator.get_rejection_reason(self._uri)
        if reason is not None:
            raise InvalidRequest(reason, uri=self._uri)

        headers = self._headers
        if self._body is not None and self._body.content_type and "content-type" not in headers:
            headers = headers.with_header("Content-Type", self._body.content_type)

        return Request(
            method=self._method,
            uri=self._uri,
            headers=headers,
            body=self._body,
            timeout=self._timeout,
            version=self._version,
        )

    @staticmethod
    def _check_header(name: str, value: str) -> None:
        if not _TOKEN_RE.match(name):
            raise InvalidRequest(f"Invalid header name: {name!r}")
        if name.lower() in RESTRICTED_HEADERS:
            raise InvalidRequest(f"Header {name!r} is managed by the client and cannot be set")
        if "\r" in value or "\n" in value:
            raise InvalidRequest(f"Header {name!r} value contains a line break")
        if not _FIELD_VALUE_RE.match(value):
            raise InvalidRequest(f"Header {name!r} value must be printable ASCII")
