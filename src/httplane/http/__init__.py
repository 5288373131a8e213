"""HTTP client, transport, redirect and authentication for httplane."""

from .auth import (
    AuthenticationHook,
    Authenticator,
    Challenge,
    Credentials,
    StaticAuthenticator,
    basic_authorization,
    parse_challenges,
)
from .client import HttpClient, fetch
from .handlers import (
    BodyHandler,
    BodyHandlers,
    BytesHandler,
    DiscardingHandler,
    FileHandler,
    LineSequence,
    LineSequenceHandler,
    StringHandler,
)
from .headers import Headers
from .pool import ConnectionPool
from .redirect import RedirectEngine
from .request import BodyPublisher, BodyPublishers, Method, Request, RequestBuilder
from .response import Response, ResponseHead
from .transport import BodyStream, Connection, connect

__all__ = [
    "AuthenticationHook",
    "Authenticator",
    "BodyHandler",
    "BodyHandlers",
    "BodyPublisher",
    "BodyPublishers",
    "BodyStream",
    "BytesHandler",
    "Challenge",
    "Connection",
    "ConnectionPool",
    "Credentials",
    "DiscardingHandler",
    "FileHandler",
    "Headers",
    "HttpClient",
    "LineSequence",
    "LineSequenceHandler",
    "Method",
    "RedirectEngine",
    "Request",
    "RequestBuilder",
    "Response",
    "ResponseHead",
    "StaticAuthenticator",
    "StringHandler",
    "basic_authorization",
    "connect",
    "fetch",
    "parse_challenges",
]
