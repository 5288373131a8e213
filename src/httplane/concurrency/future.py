"""Future-like handle returned by HttpClient.send_async()."""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from collections.abc import Generator
from typing import Any, Callable, Generic, Optional, TypeVar

from ..errors import Cancelled

T = TypeVar("T")
U = TypeVar("U")


class ResponseFuture(Generic[T]):
    """
    Handle on a request running on a worker pool.

    Wraps a concurrent.futures.Future and adds composition (then_apply),
    cancellation that reaches into a running exchange, and ``await``
    support for asyncio callers.

    The handle settles on its own: once cancel() succeeds, waiters get
    Cancelled immediately even if the worker is still unwinding (a blocked
    connect, for instance). Whatever the worker produces afterwards is
    dropped.

    Example:
        future = client.send_async(request, BodyHandlers.of_file(path))
        path_future = future.then_apply(lambda response: response.body)
        print(path_future.result(timeout=30))

        # or, inside a coroutine
        response = await client.send_async(request)
    """

    def __init__(self, future: concurrent.futures.Future, abort: Optional[Callable[[], bool]] = None) -> None:
        """
        Args:
            future: The underlying future
            abort: Called by cancel() once the work is running (or to
                   propagate cancellation upstream); returns True if the
                   work was interrupted
        """
        self._source = future
        self._abort = abort
        self._future: concurrent.futures.Future = concurrent.futures.Future()
        self._settle_lock = threading.Lock()
        future.add_done_callback(self._relay)

    def result(self, timeout: Optional[float] = None) -> T:
        """
        Wait for and return the result.

        Raises:
            Cancelled: The request was cancelled
            concurrent.futures.TimeoutError: ``timeout`` expired first
            HttpLaneError: The request failed
        """
        try:
            return self._future.result(timeout)
        except concurrent.futures.CancelledError as exc:
            raise Cancelled("Request was cancelled") from exc

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        try:
            return self._future.exception(timeout)
        except concurrent.futures.CancelledError:
            return Cancelled("Request was cancelled")

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        if self._future.cancelled():
            return True
        return self._future.done() and isinstance(self._future.exception(), Cancelled)

    def cancel(self) -> bool:
        """
        Cancel the request.

        A queued request never starts; a running one has its connection
        aborted and fails with Cancelled. Returns False if the request had
        already completed.
        """
        if self._future.done():
            return False
        if self._source.cancel():
            self._settle(cancel=True)
            if self._abort is not None:
                self._abort()
            return True
        if self._abort is None or not self._abort():
            return False
        return self._settle(error=Cancelled("Request was cancelled"))

    def _relay(self, source: concurrent.futures.Future) -> None:
        if source.cancelled():
            self._settle(cancel=True)
            return
        error = source.exception()
        if error is not None:
            self._settle(error=error)
        else:
            self._settle(result=source.result())

    def _settle(self, result: Any = None, error: Optional[BaseException] = None, cancel: bool = False) -> bool:
        """Complete the handle once; later outcomes are ignored."""
        with self._settle_lock:
            if self._future.done():
                return False
            if cancel:
                self._future.cancel()
            elif error is not None:
                self._future.set_exception(error)
            else:
                self._future.set_result(result)
            return True

    def add_done_callback(self, fn: Callable[[ResponseFuture[T]], Any]) -> None:
        """Call ``fn(self)`` once the future completes (immediately if done)."""
        self._future.add_done_callback(lambda _: fn(self))

    def then_apply(self, fn: Callable[[T], U]) -> ResponseFuture[U]:
        """
        Return a future completing with ``fn(result)``.

        ``fn`` runs on the thread that completes this future. Failures and
        cancellation propagate to the returned future; cancelling the
        returned future cancels this one.
        """
        chained: concurrent.futures.Future = concurrent.futures.Future()

        def _complete(source: concurrent.futures.Future) -> None:
            if not chained.set_running_or_notify_cancel():
                return
            if source.cancelled():
                chained.set_exception(Cancelled("Request was cancelled"))
                return
            error = source.exception()
            if error is not None:
                chained.set_exception(error)
                return
            try:
                chained.set_result(fn(source.result()))
            except Exception as exc:
                chained.set_exception(exc)

        self._future.add_done_callback(_complete)
        return ResponseFuture(chained, abort=self.cancel)

    def __await__(self) -> Generator[Any, None, T]:
        return self._wait().__await__()

    async def _wait(self) -> T:
        try:
            return await asyncio.wrap_future(self._future)
        except asyncio.CancelledError as exc:
            if self._future.cancelled():
                raise Cancelled("Request was cancelled") from exc
            raise

    def __repr__(self) -> str:
        if not self._future.done():
            state = "pending"
        elif self.cancelled():
            state = "cancelled"
        elif self._future.exception() is not None:
            state = "failed"
        else:
            state = "done"
        return f"<ResponseFuture {state}>"
