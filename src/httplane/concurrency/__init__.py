"""Worker pools and future handles for asynchronous requests."""

from .future import ResponseFuture
from .manager import (
    ConcurrencyManager,
    get_default_manager,
    set_default_manager,
    shutdown_default_manager,
)

__all__ = [
    "ConcurrencyManager",
    "ResponseFuture",
    "get_default_manager",
    "set_default_manager",
    "shutdown_default_manager",
]
