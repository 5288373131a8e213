"""
httplane - a small HTTP/1.1 client with redirect policies, Basic
authentication and pooled asynchronous requests.

Usage:
    from httplane import BodyHandlers, ClientConfig, HttpClient, RedirectPolicy, Request

    config = ClientConfig(redirect_policy=RedirectPolicy.NORMAL)

    with HttpClient(config) as client:
        request = Request.builder("http://localhost:8080/xml").build()
        response = client.send(request, BodyHandlers.of_string())

        future = client.send_async(request, BodyHandlers.of_file("xml.txt"))
        path = future.then_apply(lambda r: r.body).result()
"""

__version__ = "1.0.0"

from .concurrency import (
    ConcurrencyManager,
    ResponseFuture,
    get_default_manager,
    set_default_manager,
    shutdown_default_manager,
)
from .errors import (
    Cancelled,
    ConnectError,
    HttpLaneError,
    InvalidRequest,
    ProtocolError,
    Timeout,
    TLSError,
    TooManyRedirects,
)
from .http import (
    Authenticator,
    BodyHandlers,
    BodyPublishers,
    Credentials,
    Headers,
    HttpClient,
    LineSequence,
    Method,
    Request,
    Response,
    StaticAuthenticator,
    fetch,
)
from .models import (
    AuthConfig,
    AuthType,
    ClientConfig,
    ExchangeEvent,
    HttpVersion,
    RedirectPolicy,
    RequestPhase,
)

__all__ = [
    "__version__",
    # Client
    "HttpClient",
    "fetch",
    "Request",
    "Response",
    "Headers",
    "Method",
    "BodyPublishers",
    "BodyHandlers",
    "LineSequence",
    # Auth
    "Authenticator",
    "Credentials",
    "StaticAuthenticator",
    # Config
    "ClientConfig",
    "AuthConfig",
    "AuthType",
    "HttpVersion",
    "RedirectPolicy",
    # Events
    "ExchangeEvent",
    "RequestPhase",
    # Concurrency
    "ConcurrencyManager",
    "ResponseFuture",
    "get_default_manager",
    "set_default_manager",
    "shutdown_default_manager",
    # Errors
    "HttpLaneError",
    "InvalidRequest",
    "ConnectError",
    "TLSError",
    "ProtocolError",
    "Timeout",
    "TooManyRedirects",
    "Cancelled",
]
