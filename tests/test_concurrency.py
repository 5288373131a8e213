"""Tests for ConcurrencyManager and the shared default pool."""

import threading

import pytest
from httplane import (
    ConcurrencyManager,
    get_default_manager,
    set_default_manager,
    shutdown_default_manager,
)


@pytest.fixture
def isolated_default():
    """Swap the process-wide default manager out for the duration of a test."""
    previous = set_default_manager(None)
    yield
    shutdown_default_manager(wait=True)
    set_default_manager(previous)


class TestConcurrencyManager:
    """Tests for the lazily created worker pool."""

    def test_executor_is_lazy(self):
        """Test no threads exist until the executor is requested."""
        manager = ConcurrencyManager(max_workers=2)
        assert not manager.started
        manager.executor
        assert manager.started
        manager.shutdown()
        assert not manager.started

    def test_default_worker_count(self):
        """Test the worker count defaults to a positive number."""
        assert ConcurrencyManager().max_workers >= 1

    def test_submit_runs_on_named_worker(self):
        """Test tasks run on httplane worker threads."""
        with ConcurrencyManager(max_workers=1) as manager:
            name = manager.submit(lambda: threading.current_thread().name).result(timeout=5)
        assert name.startswith("httplane-worker")

    def test_shutdown_without_wait_cancels_queued(self):
        """Test shutdown(wait=False) cancels work that has not started."""
        manager = ConcurrencyManager(max_workers=1)
        gate = threading.Event()
        blocker = manager.submit(gate.wait, 5)
        queued = manager.submit(lambda: "never")
        manager.shutdown(wait=False)
        gate.set()
        assert blocker.result(timeout=5) is True
        assert queued.cancelled()

    def test_executor_recreated_after_shutdown(self):
        """Test the manager can be reused after shutdown."""
        manager = ConcurrencyManager(max_workers=1)
        first = manager.executor
        manager.shutdown()
        second = manager.executor
        assert first is not second
        assert manager.submit(lambda: 3).result(timeout=5) == 3
        manager.shutdown()


class TestDefaultManager:
    """Tests for the process-wide default pool."""

    def test_get_is_singleton(self, isolated_default):
        """Test repeated calls return the same manager."""
        assert get_default_manager() is get_default_manager()

    def test_set_returns_previous(self, isolated_default):
        """Test set_default_manager swaps and returns the old manager."""
        custom = ConcurrencyManager(max_workers=1)
        assert set_default_manager(custom) is None
        assert get_default_manager() is custom
        assert set_default_manager(None) is custom
        custom.shutdown()

    def test_shutdown_creates_fresh_manager(self, isolated_default):
        """Test a shut down default is replaced on next use."""
        first = get_default_manager()
        first.executor
        shutdown_default_manager()
        assert not first.started
        assert get_default_manager() is not first
