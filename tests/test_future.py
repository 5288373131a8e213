"""Tests for ResponseFuture."""

import concurrent.futures
import threading
from unittest.mock import MagicMock

import pytest
from httplane import Cancelled, ConnectError, ResponseFuture


@pytest.fixture
def executor():
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)


class TestResult:
    """Tests for waiting on results and errors."""

    def test_result(self, executor):
        """Test result returns the value produced on the worker."""
        future = ResponseFuture(executor.submit(lambda: 42))
        assert future.result(timeout=5) == 42
        assert future.done()
        assert not future.cancelled()

    def test_exception_propagates(self, executor):
        """Test a worker failure is raised from result."""

        def fail():
            raise ConnectError("refused", uri="http://localhost:1/")

        future = ResponseFuture(executor.submit(fail))
        with pytest.raises(ConnectError):
            future.result(timeout=5)
        assert isinstance(future.exception(timeout=5), ConnectError)

    def test_result_timeout(self, executor):
        """Test a bounded wait on unfinished work times out."""
        gate = threading.Event()
        future = ResponseFuture(executor.submit(gate.wait, 5))
        with pytest.raises(concurrent.futures.TimeoutError):
            future.result(timeout=0.05)
        gate.set()

    def test_add_done_callback(self, executor):
        """Test callbacks receive the ResponseFuture itself."""
        seen = []
        done = threading.Event()
        future = ResponseFuture(executor.submit(lambda: "ok"))

        def callback(f):
            seen.append(f)
            done.set()

        future.add_done_callback(callback)
        assert done.wait(5)
        assert seen == [future]

    def test_repr_states(self, executor):
        """Test repr reflects the future state."""
        future = ResponseFuture(executor.submit(lambda: 1))
        future.result(timeout=5)
        assert repr(future) == "<ResponseFuture done>"


class TestCancel:
    """Tests for cancellation."""

    def test_cancel_queued(self, executor):
        """Test a queued task never runs once cancelled."""
        gate = threading.Event()
        ran = threading.Event()
        executor.submit(gate.wait, 5)
        abort = MagicMock(return_value=True)
        future = ResponseFuture(executor.submit(ran.set), abort=abort)

        assert future.cancel() is True
        gate.set()
        assert future.cancelled()
        with pytest.raises(Cancelled):
            future.result(timeout=5)
        assert isinstance(future.exception(), Cancelled)
        assert not ran.is_set()
        abort.assert_called_once()

    def test_cancel_running_uses_abort(self, executor):
        """Test cancelling running work delegates to the abort hook."""
        started = threading.Event()
        stop = threading.Event()

        def work():
            started.set()
            stop.wait(5)
            raise Cancelled("aborted")

        def abort():
            stop.set()
            return True

        future = ResponseFuture(executor.submit(work), abort=abort)
        assert started.wait(5)
        assert future.cancel() is True
        with pytest.raises(Cancelled):
            future.result(timeout=5)
        assert future.cancelled()

    def test_cancel_settles_before_worker_returns(self, executor):
        """Test waiters see Cancelled at once while the worker is still busy."""
        started = threading.Event()
        release = threading.Event()

        def work():
            started.set()
            release.wait(5)
            return "late result"

        future = ResponseFuture(executor.submit(work), abort=lambda: True)
        assert started.wait(5)
        assert future.cancel() is True
        assert future.done()
        with pytest.raises(Cancelled):
            future.result(timeout=0.5)
        release.set()
        executor.shutdown(wait=True)
        assert isinstance(future.exception(), Cancelled)

    def test_cancel_refused_by_abort(self, executor):
        """Test cancel returns False when the running work can no longer be stopped."""
        started = threading.Event()
        release = threading.Event()

        def work():
            started.set()
            release.wait(5)
            return 7

        future = ResponseFuture(executor.submit(work), abort=lambda: False)
        assert started.wait(5)
        assert future.cancel() is False
        release.set()
        assert future.result(timeout=5) == 7

    def test_cancel_finished_is_noop(self, executor):
        """Test cancelling a completed future returns False."""
        abort = MagicMock()
        future = ResponseFuture(executor.submit(lambda: 1), abort=abort)
        future.result(timeout=5)
        assert future.cancel() is False
        assert future.result() == 1
        abort.assert_not_called()

    def test_cancel_running_without_abort(self, executor):
        """Test running work without an abort hook cannot be cancelled."""
        started = threading.Event()
        gate = threading.Event()

        def work():
            started.set()
            gate.wait(5)

        future = ResponseFuture(executor.submit(work))
        assert started.wait(5)
        assert future.cancel() is False
        gate.set()


class TestThenApply:
    """Tests for composition."""

    def test_maps_result(self, executor):
        """Test then_apply transforms the result."""
        future = ResponseFuture(executor.submit(lambda: 20))
        assert future.then_apply(lambda v: v + 1).then_apply(str).result(timeout=5) == "21"

    def test_applies_to_completed_future(self, executor):
        """Test then_apply on an already completed future."""
        future = ResponseFuture(executor.submit(lambda: "x"))
        future.result(timeout=5)
        assert future.then_apply(str.upper).result(timeout=5) == "X"

    def test_failure_propagates(self, executor):
        """Test an upstream error fails the derived future."""

        def fail():
            raise ConnectError("refused")

        derived = ResponseFuture(executor.submit(fail)).then_apply(lambda v: v)
        with pytest.raises(ConnectError):
            derived.result(timeout=5)

    def test_function_error(self, executor):
        """Test an exception in the mapping function fails the derived future."""
        derived = ResponseFuture(executor.submit(lambda: 0)).then_apply(lambda v: 1 / v)
        with pytest.raises(ZeroDivisionError):
            derived.result(timeout=5)

    def test_upstream_cancel_propagates(self, executor):
        """Test cancelling the source cancels the derived future."""
        gate = threading.Event()
        executor.submit(gate.wait, 5)
        source = ResponseFuture(executor.submit(lambda: 1))
        derived = source.then_apply(lambda v: v)
        assert source.cancel()
        gate.set()
        with pytest.raises(Cancelled):
            derived.result(timeout=5)

    def test_derived_cancel_reaches_source(self, executor):
        """Test cancelling the derived future cancels the source."""
        gate = threading.Event()
        executor.submit(gate.wait, 5)
        source = ResponseFuture(executor.submit(lambda: 1))
        derived = source.then_apply(lambda v: v)
        assert derived.cancel()
        gate.set()
        assert source.cancelled()
        with pytest.raises(Cancelled):
            derived.result(timeout=5)


class TestAwait:
    """Tests for asyncio integration."""

    @pytest.mark.asyncio
    async def test_await_result(self, executor):
        """Test awaiting a future yields its result."""
        assert await ResponseFuture(executor.submit(lambda: "done")) == "done"

    @pytest.mark.asyncio
    async def test_await_error(self, executor):
        """Test awaiting a failed future raises its error."""

        def fail():
            raise ConnectError("refused")

        with pytest.raises(ConnectError):
            await ResponseFuture(executor.submit(fail))
