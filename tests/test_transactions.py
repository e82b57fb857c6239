"""Tests for lock registries and transaction handles."""

import threading
import time

import pytest

from mqpkg.errors import TransactionLockedError
from mqpkg.pkgdb.transactions import FileLockRegistry, MemoryLockRegistry, TransactionManager


@pytest.fixture(params=["memory", "file"])
def registry(request, tmp_path):
    if request.param == "memory":
        return MemoryLockRegistry()
    return FileLockRegistry(tmp_path / "locks")


class TestLockRegistries:
    """Both registries exclude concurrent holders of one identity."""

    def test_exclusive(self, registry):
        lock = registry.acquire("db-1")
        assert registry.is_locked("db-1")
        with pytest.raises(TransactionLockedError) as excinfo:
            registry.acquire("db-1", blocking=False)
        assert excinfo.value.identity == "db-1"
        lock.release()
        assert not registry.is_locked("db-1")

    def test_identities_independent(self, registry):
        lock = registry.acquire("db-1")
        other = registry.acquire("db-2", blocking=False)
        other.release()
        lock.release()

    def test_release_is_idempotent(self, registry):
        lock = registry.acquire("db-1")
        lock.release()
        lock.release()
        registry.acquire("db-1", blocking=False).release()

    def test_timeout(self, registry):
        lock = registry.acquire("db-1")
        started = time.monotonic()
        with pytest.raises(TransactionLockedError):
            registry.acquire("db-1", timeout=0.2)
        assert time.monotonic() - started >= 0.15
        lock.release()

    def test_blocking_waits_for_release(self, registry):
        lock = registry.acquire("db-1")
        timer = threading.Timer(0.2, lock.release)
        timer.start()
        try:
            registry.acquire("db-1", timeout=5).release()
        finally:
            timer.cancel()

    def test_unknown_identity_is_unlocked(self, registry):
        assert not registry.is_locked("never-used")


class TestTransactionHandles:
    """Transaction handles release exactly once and never coexist."""

    def test_two_handles_never_both_active(self, registry):
        first_manager = TransactionManager("db", registry)
        second_manager = TransactionManager("db", registry)
        txn = first_manager.begin()
        with pytest.raises(TransactionLockedError):
            second_manager.begin(blocking=False)
        assert txn.active
        txn.release()
        assert not txn.active
        second = second_manager.begin(blocking=False)
        assert second.active
        second.release()

    def test_context_manager_releases_on_error(self, registry):
        manager = TransactionManager("db", registry)
        with pytest.raises(ValueError):
            with manager.begin():
                raise ValueError("boom")
        assert not manager.is_active()

    def test_dropping_handle_releases(self, registry):
        manager = TransactionManager("db", registry)
        manager.begin()
        assert not manager.is_active()
        manager.begin(blocking=False).release()
