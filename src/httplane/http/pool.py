"""Thread-safe cache of idle keep-alive connections."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .transport import Connection, ConnectionKey

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Keeps idle connections per (scheme, host, port) for reuse.

    This is the only mutable state shared between worker threads of a
    client; every access to the idle lists happens under one lock.
    Connections are handed out LIFO so the most recently used (and most
    likely still open) one is tried first.

    Example:
        pool = ConnectionPool(max_idle_per_host=4)
        conn = pool.get(("http", "localhost", 8080), lambda: connect("localhost", 8080, False))
        ...  # full exchange, then
        pool.release(conn)
    """

    def __init__(self, max_idle_per_host: int = 8, idle_timeout: float = 30.0) -> None:
        """
        Initialize the pool.

        Args:
            max_idle_per_host: Idle connections kept per key (0 disables reuse)
            idle_timeout: Seconds after which an idle connection is dropped
        """
        self.max_idle_per_host = max_idle_per_host
        self.idle_timeout = idle_timeout

        self._idle: dict[ConnectionKey, list[Connection]] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._opened = 0
        self._reused = 0

    def get(self, key: ConnectionKey, factory: Callable[[], Connection], reuse: bool = True) -> Connection:
        """Return a live idle connection for ``key``, or a new one from ``factory``."""
        conn = self.acquire(key) if reuse else None
        if conn is not None:
            return conn
        conn = factory()
        with self._lock:
            self._opened += 1
        return conn

    def acquire(self, key: ConnectionKey) -> Connection | None:
        """Pop a reusable idle connection for ``key``, dropping stale ones."""
        stale: list[Connection] = []
        found: Connection | None = None
        now = time.monotonic()

        with self._lock:
            idle = self._idle.get(key, [])
            while idle:
                conn = idle.pop()
                if now - conn.idle_since > self.idle_timeout or not conn.is_reusable():
                    stale.append(conn)
                    continue
                found = conn
                self._reused += 1
                break

        for conn in stale:
            conn.close()
        if stale:
            logger.debug(f"Dropped {len(stale)} stale connection(s) to {key[1]}:{key[2]}")
        if found is not None:
            logger.debug(f"Reusing connection to {key[1]}:{key[2]}")
        return found

    def release(self, conn: Connection) -> None:
        """Return a connection that finished an exchange cleanly."""
        if conn.is_closed:
            return
        with self._lock:
            if not self._closed and self.max_idle_per_host > 0:
                idle = self._idle.setdefault(conn.key, [])
                if len(idle) < self.max_idle_per_host:
                    idle.append(conn)
                    return
        conn.close()

    def close(self) -> None:
        """Close every idle connection; later releases close immediately."""
        with self._lock:
            self._closed = True
            connections = [conn for idle in self._idle.values() for conn in idle]
            self._idle.clear()
        for conn in connections:
            conn.close()

    def stats(self) -> dict:
        """Get pool statistics."""
        with self._lock:
            return {
                "idle": sum(len(idle) for idle in self._idle.values()),
                "hosts": len(self._idle),
                "opened": self._opened,
                "reused": self._reused,
            }
