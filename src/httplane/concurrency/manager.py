"""Worker pools for asynchronous request dispatch."""

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class ConcurrencyManager:
    """
    Owns a lazily created ThreadPoolExecutor.

    Each asynchronous request runs its whole state machine (connect,
    redirects, authentication retry, body handling) on one worker thread;
    all waits are blocking I/O on that thread.

    Example:
        with ConcurrencyManager(max_workers=2) as manager:
            client = HttpClient(ClientConfig(executor=manager.executor))
            futures = [client.send_async(r, BodyHandlers.of_file(p)) for r, p in jobs]
    """

    def __init__(self, max_workers: Optional[int] = None) -> None:
        """
        Initialize the concurrency manager.

        Args:
            max_workers: Number of worker threads. Defaults to the
                        number of available CPUs.
        """
        self.max_workers = max_workers or os.cpu_count() or 4
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def executor(self) -> ThreadPoolExecutor:
        """Get or create the thread pool executor."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="httplane-worker",
                )
            return self._executor

    @property
    def started(self) -> bool:
        return self._executor is not None

    def submit(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
        """Schedule ``func`` on a worker thread."""
        return self.executor.submit(func, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the thread pool executor.

        Args:
            wait: If True, wait for pending tasks to complete.
                  If False, queued tasks that have not started are cancelled.
        """
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "ConcurrencyManager":
        """Enter sync context."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit sync context and shutdown executor."""
        self.shutdown(wait=True)


# Process-wide pool used by clients that were given no executor.
_default_lock = threading.Lock()
_default_manager: Optional[ConcurrencyManager] = None


def get_default_manager() -> ConcurrencyManager:
    """Return the shared default manager, creating it on first use."""
    global _default_manager
    with _default_lock:
        if _default_manager is None:
            _default_manager = ConcurrencyManager()
        return _default_manager


def set_default_manager(manager: Optional[ConcurrencyManager]) -> Optional[ConcurrencyManager]:
    """
    Replace the shared default manager.

    Tests use this to substitute a deterministic pool. The previous
    manager is returned and is not shut down.
    """
    global _default_manager
    with _default_lock:
        previous, _default_manager = _default_manager, manager
    return previous


def shutdown_default_manager(wait: bool = True) -> None:
    """Shut the shared default pool down; the next use creates a fresh one."""
    previous = set_default_manager(None)
    if previous is not None:
        previous.shutdown(wait=wait)
