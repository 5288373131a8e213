"""
Socket transport: one TCP (optionally TLS) connection speaking HTTP/1.1.

Framing is delegated to h11, which parses status lines, headers,
content-length, chunked and close-delimited bodies. This module owns the
socket: connecting, TLS, deadlines, and handing finished connections back
for reuse.
"""

from __future__ import annotations

import contextlib
import logging
import select
import socket
import ssl
import time
from collections.abc import Iterator
from pathlib import Path
from types import TracebackType
from typing import Callable, Optional, Union

import h11

from ..errors import ConnectError, ProtocolError, Timeout, TLSError
from ..models.config import HttpVersion
from .headers import Headers
from .request import Request
from .response import ResponseHead

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

# Methods that always carry a Content-Length, even when empty
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

ConnectionKey = tuple[str, str, int]


def create_ssl_context(verify: bool = True, ca_bundle: Optional[Union[str, Path]] = None) -> ssl.SSLContext:
    """
    Build the TLS context used for https connections.

    Only ``http/1.1`` is offered over ALPN: the transport does not speak
    HTTP/2 frames, so a server is never invited to select ``h2``.
    """
    context = ssl.create_default_context(cafile=str(ca_bundle) if ca_bundle else None)
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.set_alpn_protocols(["http/1.1"])
    return context


def connect(
    host: str,
    port: int,
    use_tls: bool,
    *,
    timeout: Optional[float] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
    preferred_version: HttpVersion = HttpVersion.HTTP_1_1,
) -> Connection:
    """
    Open a connection to ``host:port``.

    Args:
        host: Host name or IP address
        port: TCP port
        use_tls: Wrap the socket in TLS (SNI = host)
        timeout: Connect + handshake timeout in seconds
        ssl_context: TLS context (default: create_ssl_context())
        preferred_version: Version the caller would like to speak

    Returns:
        An open Connection

    Raises:
        ConnectError: DNS or TCP failure
        TLSError: Handshake or certificate failure
        Timeout: Connect timeout expired
    """
    scheme = "https" if use_tls else "http"
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout as exc:
        raise Timeout(f"Connect to {host}:{port} timed out after {timeout}s") from exc
    except OSError as exc:
        raise ConnectError(f"Cannot connect to {host}:{port}: {exc}") from exc

    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        if use_tls:
            context = ssl_context or create_ssl_context()
            sock = context.wrap_socket(sock, server_hostname=host)
    except socket.timeout as exc:
        sock.close()
        raise Timeout(f"TLS handshake with {host}:{port} timed out after {timeout}s") from exc
    except ssl.SSLError as exc:
        sock.close()
        raise TLSError(f"TLS handshake with {host}:{port} failed: {exc}") from exc
    except OSError as exc:
        sock.close()
        raise ConnectError(f"Connection to {host}:{port} failed during setup: {exc}") from exc

    logger.debug(f"Opened {scheme} connection to {host}:{port}")
    return Connection(sock, (scheme, host, port), preferred_version)


def negotiate_version(preferred: HttpVersion, wire_version: bytes) -> HttpVersion:
    """Map the status-line version to HttpVersion; a higher preference falls back silently."""
    actual = HttpVersion.HTTP_1_0 if wire_version == b"1.0" else HttpVersion.HTTP_1_1
    if preferred == HttpVersion.HTTP_2:
        logger.debug(f"HTTP/2 requested but not negotiated, using {actual.value}")
    return actual


class Connection:
    """
    A single HTTP/1.1 connection.

    Not thread-safe: one exchange uses it at a time. The only call allowed
    from another thread is abort().
    """

    def __init__(
        self,
        sock: socket.socket,
        key: ConnectionKey,
        preferred_version: HttpVersion = HttpVersion.HTTP_1_1,
    ) -> None:
        self.key = key
        self._sock = sock
        self._h11 = h11.Connection(our_role=h11.CLIENT)
        self._preferred_version = preferred_version
        self._deadline: Optional[float] = None
        self._idle_timeout: Optional[float] = None
        self._closed = False
        self.requests_sent = 0
        self.response_started = False
        self.idle_since = time.monotonic()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_reused(self) -> bool:
        """True when an earlier exchange already ran on this connection."""
        return self.requests_sent > 1

    @property
    def alpn_protocol(self) -> Optional[str]:
        if isinstance(self._sock, ssl.SSLSocket):
            return self._sock.selected_alpn_protocol()
        return None

    def set_deadline(self, deadline: Optional[float], idle_timeout: Optional[float] = None) -> None:
        """
        Bound the following socket operations.

        Args:
            deadline: Absolute time.monotonic() value, or None
            idle_timeout: Maximum wait for any single read or write
        """
        self._deadline = deadline
        self._idle_timeout = idle_timeout

    def write(self, request: Request) -> None:
        """Serialize and send a complete request."""
        headers: list[tuple[str, str]] = [("Host", request.authority)]
        headers.extend(request.headers)
        body = request.body.content if request.body is not None else b""
        if request.body is not None or request.method in BODY_METHODS:
            headers.append(("Content-Length", str(len(body))))

        try:
            chunks = [self._h11.send(h11.Request(method=request.method, target=request.target, headers=headers))]
            if body:
                chunks.append(self._h11.send(h11.Data(data=body)))
            chunks.append(self._h11.send(h11.EndOfMessage()))
        except (h11.LocalProtocolError, UnicodeEncodeError) as exc:
            self.close()
            raise ProtocolError(f"Cannot encode request: {exc}", uri=request.uri) from exc

        self.requests_sent += 1
        self._send_all(b"".join(chunk for chunk in chunks if chunk))

    def read_response_head(self) -> ResponseHead:
        """
        Read the status line and headers, skipping 1xx interim responses.

        Raises:
            ProtocolError: Malformed framing or EOF before a response
        """
        while True:
            event = self._next_event()
            if isinstance(event, h11.InformationalResponse):
                logger.debug(f"Skipping interim response {event.status_code}")
                continue
            if isinstance(event, h11.Response):
                break
            self.close()
            raise ProtocolError(f"Unexpected {type(event).__name__} before response head")

        if event.status_code > 599:
            self.close()
            raise ProtocolError(f"Status code out of range: {event.status_code}")

        headers = Headers(
            (name.decode("latin-1"), value.decode("latin-1")) for name, value in event.headers.raw_items()
        )
        return ResponseHead(
            status_code=event.status_code,
            reason=event.reason.decode("latin-1"),
            version=negotiate_version(self._preferred_version, event.http_version),
            headers=headers,
        )

    def body_stream(self, release: Optional[Callable[[Connection], None]] = None) -> BodyStream:
        """Return the body of the response whose head was just read."""
        return BodyStream(self, release)

    def iter_body(self) -> Iterator[bytes]:
        while True:
            event = self._next_event()
            if isinstance(event, h11.Data):
                if event.data:
                    yield bytes(event.data)
            elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return
            else:
                self.close()
                raise ProtocolError(f"Unexpected {type(event).__name__} in response body")

    def finish_cycle(self) -> bool:
        """
        Reset after a complete exchange.

        Returns:
            True when the connection can carry another request,
            False when it had to be closed (Connection: close, HTTP/1.0, ...)
        """
        if not self._closed and self._h11.our_state is h11.DONE and self._h11.their_state is h11.DONE:
            self._h11.start_next_cycle()
            self.response_started = False
            self._deadline = None
            self._idle_timeout = None
            self.idle_since = time.monotonic()
            return True
        self.close()
        return False

    def is_reusable(self) -> bool:
        """An idle connection is reusable if the server has sent nothing (not even EOF)."""
        if self._closed or self._h11.our_state is not h11.IDLE:
            return False
        try:
            readable, _, _ = select.select([self._sock], [], [], 0)
        except (OSError, ValueError):
            return False
        return not readable

    def abort(self) -> None:
        """Interrupt a blocked read or write from another thread."""
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        logger.debug(f"Closed connection to {self.key[1]}:{self.key[2]}")

    def _timeout(self) -> Optional[float]:
        if self._deadline is None:
            return self._idle_timeout
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            self.close()
            raise Timeout("Request deadline exceeded")
        if self._idle_timeout is not None:
            return min(remaining, self._idle_timeout)
        return remaining

    def _send_all(self, data: bytes) -> None:
        if self._closed:
            raise ConnectError("Connection is closed")
        try:
            self._sock.settimeout(self._timeout())
            self._sock.sendall(data)
        except socket.timeout as exc:
            self.close()
            raise Timeout("Timed out sending request") from exc
        except OSError as exc:
            self.close()
            raise ConnectError(f"Connection lost while sending: {exc}") from exc

    def _recv(self) -> bytes:
        if self._closed:
            raise ConnectError("Connection is closed")
        try:
            self._sock.settimeout(self._timeout())
            data = self._sock.recv(READ_CHUNK_SIZE)
        except socket.timeout as exc:
            self.close()
            raise Timeout("Timed out waiting for response data") from exc
        except OSError as exc:
            self.close()
            raise ConnectError(f"Connection lost while reading: {exc}") from exc
        if data:
            self.response_started = True
        return data

    def _next_event(self) -> object:
        while True:
            try:
                event = self._h11.next_event()
            except h11.RemoteProtocolError as exc:
                self.close()
                raise ProtocolError(f"Malformed response: {exc}") from exc
            if event is h11.NEED_DATA:
                self._h11.receive_data(self._recv())
                continue
            return event

    def __repr__(self) -> str:
        scheme, host, port = self.key
        state = "closed" if self._closed else "open"
        return f"<Connection {scheme}://{host}:{port} {state}>"


class BodyStream:
    """
    Response body as a one-shot iterator of byte chunks.

    Reaching the end of the message hands the connection to ``release``
    (the keep-alive pool) when it can be reused; closing the stream before
    the end closes the socket instead.
    """

    def __init__(self, connection: Connection, release: Optional[Callable[[Connection], None]] = None) -> None:
        self._connection = connection
        self._release = release
        self._chunks = connection.iter_body()
        self._closed = False
        self.bytes_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> BodyStream:
        return self

    def __next__(self) -> bytes:
        if self._closed:
            raise StopIteration
        try:
            chunk = next(self._chunks)
        except StopIteration:
            self._finish()
            raise
        except BaseException:
            self.close()
            raise
        self.bytes_read += len(chunk)
        return chunk

    def read(self) -> bytes:
        """Read the remaining body into memory."""
        return b"".join(self)

    def drain(self) -> None:
        """Read and discard the remaining body."""
        for _ in self:
            pass

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._connection.close()

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._connection.finish_cycle() and self._release is not None:
            self._release(self._connection)
        elif self._release is None:
            self._connection.close()

    def __enter__(self) -> BodyStream:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()
