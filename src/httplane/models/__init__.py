"""httplane configuration and event models."""

from .config import (
    DEFAULT_USER_AGENT,
    AuthConfig,
    AuthType,
    ClientConfig,
    HttpVersion,
    RedirectPolicy,
)
from .events import ExchangeEvent, RequestPhase

__all__ = [
    # Config
    "AuthConfig",
    "AuthType",
    "ClientConfig",
    "DEFAULT_USER_AGENT",
    "HttpVersion",
    "RedirectPolicy",
    # Events
    "ExchangeEvent",
    "RequestPhase",
]
