"""HTTP client façade: synchronous send() and pooled send_async()."""

from __future__ import annotations

import dataclasses
import logging
import ssl
import threading
import time
from concurrent.futures import Executor
from types import TracebackType
from typing import Any, Callable, Optional

from ..concurrency.future import ResponseFuture
from ..concurrency.manager import ConcurrencyManager, get_default_manager
from ..errors import Cancelled, ConnectError, HttpLaneError, ProtocolError, Timeout, TooManyRedirects
from ..models.config import ClientConfig
from ..models.events import ExchangeEvent, RequestPhase
from .auth import AuthenticationHook
from .handlers import BodyHandler, StringHandler
from .pool import ConnectionPool
from .redirect import RedirectEngine
from .request import Request
from .response import Response, ResponseHead
from .transport import BodyStream, Connection, connect, create_ssl_context

logger = logging.getLogger(__name__)

EventHook = Callable[[ExchangeEvent], None]


class _Exchange:
    """
    State of one logical request across redirects and the auth retry.

    Owned by the thread executing the request; abort() is the only
    method called from other threads.
    """

    def __init__(self, request: Request, event_hook: Optional[EventHook] = None) -> None:
        self.request = request
        self.phase = RequestPhase.BUILDING
        self.hop = 0
        self._event_hook = event_hook
        self._lock = threading.Lock()
        self._connection: Optional[Connection] = None
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def enter(
        self,
        phase: RequestPhase,
        uri: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        self.phase = phase
        if self._event_hook is not None:
            self._event_hook(ExchangeEvent(phase=phase, uri=uri, status_code=status_code, hop=self.hop, error=error))

    def attach(self, connection: Connection) -> None:
        """Record the connection in use so abort() can interrupt it."""
        with self._lock:
            self._connection = connection
            cancelled = self._cancelled
        if cancelled:
            connection.close()
        self.raise_if_cancelled()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled("Request was cancelled", uri=self.request.uri)

    def abort(self) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._cancelled = True
            connection = self._connection
        logger.debug(f"Cancelling {self.request.method} {self.request.uri} during {self.phase.value}")
        if connection is not None:
            connection.abort()
        return True

    def detach(self, connection: Connection) -> None:
        """Forget a connection that went back to the pool."""
        with self._lock:
            if self._connection is connection:
                self._connection = None

    def complete(self) -> bool:
        """
        Mark the exchange done unless it was cancelled first.

        After this, abort() returns False, so a caller can never cancel a
        request that is about to deliver its response.
        """
        with self._lock:
            self._finished = True
            self._connection = None
            return not self._cancelled

    def finish(self, failed: bool = False) -> None:
        """Close out the exchange; on failure the connection in use is closed."""
        with self._lock:
            self._finished = True
            connection = self._connection
            self._connection = None
        if failed and connection is not None:
            connection.close()


class HttpClient:
    """
    HTTP/1.1 client with redirect policy, Basic authentication and a
    keep-alive connection cache.

    Configuration (redirect policy, authenticator, worker pool, timeouts)
    is fixed at construction and applies to every request. send() runs a
    request on the calling thread; send_async() runs it on a worker thread
    and returns a ResponseFuture immediately. Concurrent requests share
    nothing but the read-only configuration and the connection pool.

    Example:
        config = ClientConfig(redirect_policy=RedirectPolicy.NORMAL)

        with HttpClient(config) as client:
            request = Request.builder("http://localhost:8080/xml").build()
            response = client.send(request, BodyHandlers.of_string())
            print(response.status_code, response.body[:40])
    """

    def __init__(self, config: Optional[ClientConfig] = None, *, event_hook: Optional[EventHook] = None) -> None:
        """
        Initialize the client.

        Args:
            config: Client configuration (defaults to ClientConfig())
            event_hook: Called with an ExchangeEvent on every phase
                        transition of every request, on the thread running
                        the request. Exceptions it raises fail the request.
        """
        self.config = config or ClientConfig()
        self._event_hook = event_hook
        self._redirects = RedirectEngine(self.config.redirect_policy, self.config.max_redirects)

        authenticator = self.config.resolve_authenticator()
        self._auth = AuthenticationHook(authenticator) if authenticator is not None else None

        self._pool = ConnectionPool(
            max_idle_per_host=self.config.max_idle_connections_per_host,
            idle_timeout=self.config.idle_connection_timeout,
        )

        self._own_manager: Optional[ConcurrencyManager] = None
        if self.config.executor is None and self.config.worker_threads is not None:
            self._own_manager = ConcurrencyManager(self.config.worker_threads)

        self._ssl_context: Optional[ssl.SSLContext] = None
        self._ssl_lock = threading.Lock()
        self._closed = False

    @property
    def executor(self) -> Executor:
        """Worker pool used by send_async()."""
        if self.config.executor is not None:
            return self.config.executor
        if self._own_manager is not None:
            return self._own_manager.executor
        return get_default_manager().executor

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def send(self, request: Request, handler: Optional[BodyHandler[Any]] = None) -> Response[Any]:
        """
        Send a request and block until the response body is handled.

        Args:
            request: The request to send
            handler: Body handler (default: StringHandler)

        Returns:
            The terminal response, body produced by ``handler``

        Raises:
            ConnectError, TLSError, ProtocolError, Timeout, TooManyRedirects
        """
        self._check_open()
        return self._execute(_Exchange(request, self._event_hook), handler or StringHandler())

    def send_async(self, request: Request, handler: Optional[BodyHandler[Any]] = None) -> ResponseFuture[Response[Any]]:
        """
        Schedule a request on the worker pool.

        Returns immediately; the future completes with the Response or
        fails with the same errors send() raises, or Cancelled.
        """
        self._check_open()
        exchange = _Exchange(request, self._event_hook)
        future = self.executor.submit(self._execute, exchange, handler or StringHandler())
        return ResponseFuture(future, abort=exchange.abort)

    def close(self) -> None:
        """Close idle connections and the client's own worker pool."""
        if self._closed:
            return
        self._closed = True
        self._pool.close()
        if self._own_manager is not None:
            self._own_manager.shutdown(wait=True)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Client is closed")

    def _execute(self, exchange: _Exchange, handler: BodyHandler[Any]) -> Response[Any]:
        request = self._prepare(exchange.request)
        timeout = request.timeout or self.config.request_timeout
        deadline = time.monotonic() + timeout if timeout else None
        previous: Optional[Response[None]] = None
        auth_retried = False
        failed = False

        def release(connection: Connection) -> None:
            exchange.detach(connection)
            self._pool.release(connection)

        try:
            while True:
                conn, head = self._round_trip(exchange, request, deadline)
                stream = conn.body_stream(release)

                if head.status_code == 401 and self._auth is not None and not auth_retried:
                    auth_retried = True
                    retry = self._auth.retry_request(request, head)
                    if retry is not None:
                        previous = self._discard(stream, head, request, previous)
                        exchange.enter(RequestPhase.AUTHENTICATING, request.uri, head.status_code)
                        request = retry
                        continue

                follow = self._redirects.follow_up(request, head)
                if follow is not None:
                    previous = self._discard(stream, head, request, previous)
                    if exchange.hop >= self._redirects.max_redirects:
                        raise TooManyRedirects(
                            f"Exceeded {self._redirects.max_redirects} redirects",
                            response=previous,
                            max_redirects=self._redirects.max_redirects,
                        )
                    exchange.hop += 1
                    exchange.enter(RequestPhase.REDIRECTING, follow.uri, head.status_code)
                    request = follow
                    continue

                conn.set_deadline(None, idle_timeout=timeout)
                body = handler.consume(stream, head)
                if not exchange.complete():
                    _close_body(body)
                    raise Cancelled("Request was cancelled", uri=request.uri)
                response: Response[Any] = Response(
                    status_code=head.status_code,
                    version=head.version,
                    headers=head.headers,
                    body=body,
                    request=request,
                    uri=request.uri,
                    previous_response=previous,
                )
                exchange.enter(RequestPhase.COMPLETE, request.uri, head.status_code)
                return response

        except Exception as exc:
            failed = True
            failure: Exception = exc
            if exchange.cancelled and not isinstance(exc, Cancelled):
                failure = Cancelled("Request was cancelled", uri=request.uri)
            elif isinstance(exc, HttpLaneError) and exc.uri is None:
                exc.uri = request.uri
            if isinstance(failure, Timeout):
                logger.warning(f"{request.method} {request.uri} timed out: {failure.message}")
            exchange.enter(RequestPhase.FAILED, request.uri, error=str(failure))
            if failure is exc:
                raise
            raise failure from exc
        finally:
            exchange.finish(failed)

    def _round_trip(
        self,
        exchange: _Exchange,
        request: Request,
        deadline: Optional[float],
    ) -> tuple[Connection, ResponseHead]:
        """Connect (or reuse), send the request and read the response head."""
        exchange.raise_if_cancelled()
        exchange.enter(RequestPhase.CONNECTING, request.uri)
        key = (request.scheme, request.host, request.port)

        conn = self._pool.get(key, lambda: self._connect(request, deadline))
        exchange.attach(conn)
        try:
            return conn, self._write_and_read(exchange, conn, request, deadline)
        except (ConnectError, ProtocolError):
            # A kept-alive connection the server closed while idle fails
            # before sending anything; that one is replaced, once.
            if exchange.cancelled or not conn.is_reused or conn.response_started:
                raise
            logger.debug(f"Pooled connection to {request.authority} went stale, reconnecting")

        conn = self._pool.get(key, lambda: self._connect(request, deadline), reuse=False)
        exchange.attach(conn)
        return conn, self._write_and_read(exchange, conn, request, deadline)

    def _write_and_read(
        self,
        exchange: _Exchange,
        conn: Connection,
        request: Request,
        deadline: Optional[float],
    ) -> ResponseHead:
        conn.set_deadline(deadline)
        exchange.enter(RequestPhase.SENDING, request.uri)
        conn.write(request)
        exchange.enter(RequestPhase.AWAITING_RESPONSE, request.uri)
        head = conn.read_response_head()
        exchange.raise_if_cancelled()
        return head

    def _connect(self, request: Request, deadline: Optional[float]) -> Connection:
        timeout = self.config.connect_timeout
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise Timeout("Request deadline exceeded before connecting", uri=request.uri)
            timeout = min(timeout, remaining) if timeout else remaining

        return connect(
            request.host,
            request.port,
            request.is_secure,
            timeout=timeout,
            ssl_context=self._get_ssl_context() if request.is_secure else None,
            preferred_version=request.version or self.config.version,
        )

    def _get_ssl_context(self) -> ssl.SSLContext:
        with self._ssl_lock:
            if self._ssl_context is None:
                self._ssl_context = create_ssl_context(self.config.verify_tls, self.config.ca_bundle)
            return self._ssl_context

    def _prepare(self, request: Request) -> Request:
        if "user-agent" in request.headers:
            return request
        return dataclasses.replace(request, headers=request.headers.with_header("User-Agent", self.config.user_agent))

    @staticmethod
    def _discard(
        stream: BodyStream,
        head: ResponseHead,
        request: Request,
        previous: Optional[Response[None]],
    ) -> Response[None]:
        """Drain an intermediate response and keep it as a history entry."""
        stream.drain()
        return Response(
            status_code=head.status_code,
            version=head.version,
            headers=head.headers,
            body=None,
            request=request,
            uri=request.uri,
            previous_response=previous,
        )


def _close_body(body: Any) -> None:
    """Release whatever a handler kept open (a lazy line sequence holds its connection)."""
    close = getattr(body, "close", None)
    if callable(close):
        close()


def fetch(
    url: str,
    handler: Optional[BodyHandler[Any]] = None,
    config: Optional[ClientConfig] = None,
) -> Response[Any]:
    """
    GET ``url`` with a short-lived client.

    Example:
        xml = fetch("http://localhost:8080/xml").body
    """
    request = Request.builder(url).get().build()
    with HttpClient(config) as client:
        return client.send(request, handler)
