"""
Unit tests for the advisory lock protocol.

Tests verify:
- Composite keys per (operation class, resource key)
- acquire() is unconditional, try_acquire() is atomic
- release() is safe on locks that were never taken
- guard() releases on success and on exception
- Waiting times out with LockTimeout, non-waiting guards raise InProgress
"""

from unittest.mock import Mock

import pytest

from src.adapters.store.memory import InMemoryKeyValueStore
from src.domain.exceptions import InProgress, LockTimeout
from src.domain.locks import RELEASE_TTL_MS, AdvisoryLocks, OperationClass, lock_key


class TestLockKey:
    """Tests for composite lock keys."""

    def test_key_joins_class_and_resource(self) -> None:
        assert lock_key(OperationClass.REGISTER, "0912345678") == "register_inprogess_0912345678"

    def test_classes_are_independent_domains(self, locks: AdvisoryLocks) -> None:
        """Holding one class does not make another class busy on the same key."""
        locks.acquire(OperationClass.DISABLE, 7)
        assert locks.is_busy(OperationClass.DISABLE, 7)
        assert not locks.is_busy(OperationClass.BLOCK, 7)
        assert not locks.is_busy(OperationClass.DISABLE, 8)


class TestAcquireRelease:
    """Tests for acquire, try_acquire and release."""

    def test_acquire_stores_resource_key_as_value(
        self, locks: AdvisoryLocks, store: InMemoryKeyValueStore
    ) -> None:
        locks.acquire(OperationClass.UPDATE, 42)
        assert store.get("update_inprogess_42") == "42"

    def test_acquire_does_not_reject_a_second_caller(self, locks: AdvisoryLocks) -> None:
        """Plain acquire is not atomic: both callers 'succeed'."""
        locks.acquire(OperationClass.REGISTER, "u")
        locks.acquire(OperationClass.REGISTER, "u")
        assert locks.is_busy(OperationClass.REGISTER, "u")

    def test_try_acquire_rejects_second_caller(self, locks: AdvisoryLocks) -> None:
        assert locks.try_acquire(OperationClass.REGISTER, "u") is True
        assert locks.try_acquire(OperationClass.REGISTER, "u") is False

    def test_release_never_acquired_is_safe(self, locks: AdvisoryLocks) -> None:
        locks.release(OperationClass.LOGIN, "nobody")
        assert not locks.is_busy(OperationClass.LOGIN, "nobody")

    def test_release_writes_empty_marker_with_short_ttl(self) -> None:
        store = Mock()
        locks = AdvisoryLocks(store=store)
        locks.release(OperationClass.BLOCK, 3)
        store.set.assert_called_once_with("block_inprogess_3", "", RELEASE_TTL_MS)

    def test_released_lock_is_not_busy(self, locks: AdvisoryLocks) -> None:
        locks.acquire(OperationClass.BLOCK, 3)
        locks.release(OperationClass.BLOCK, 3)
        assert not locks.is_busy(OperationClass.BLOCK, 3)

    def test_entry_expires_after_ttl(self, clock) -> None:
        """A crashed holder only blocks the resource until the TTL elapses."""
        store = InMemoryKeyValueStore(clock=clock)
        locks = AdvisoryLocks(store=store, ttl_ms=1000)
        locks.acquire(OperationClass.DISABLE, 1)
        clock.advance(0.999)
        assert locks.is_busy(OperationClass.DISABLE, 1)
        clock.advance(0.002)
        assert not locks.is_busy(OperationClass.DISABLE, 1)


class TestWaitUntilFree:
    """Tests for bounded polling."""

    def test_returns_immediately_when_free(self, locks: AdvisoryLocks) -> None:
        sleep = Mock()
        locks.sleep = sleep
        locks.wait_until_free(1, OperationClass.DISABLE, OperationClass.BLOCK)
        sleep.assert_not_called()

    def test_times_out_when_any_class_stays_busy(self, clock) -> None:
        store = InMemoryKeyValueStore(clock=clock)
        locks = AdvisoryLocks(
            store=store,
            poll_interval_ms=10,
            poll_max_interval_ms=40,
            max_wait_ms=100,
            sleep=clock.advance,
            clock=clock,
        )
        locks.acquire(OperationClass.BLOCK, 9)
        with pytest.raises(LockTimeout):
            locks.wait_until_free(9, OperationClass.DISABLE, OperationClass.BLOCK)

    def test_backoff_doubles_up_to_ceiling(self, clock) -> None:
        store = InMemoryKeyValueStore(clock=clock)
        delays: list[float] = []

        def sleep(seconds: float) -> None:
            delays.append(seconds)
            clock.advance(seconds)

        locks = AdvisoryLocks(
            store=store,
            poll_interval_ms=10,
            poll_max_interval_ms=40,
            max_wait_ms=150,
            sleep=sleep,
            clock=clock,
        )
        locks.acquire(OperationClass.DISABLE, 1)
        with pytest.raises(LockTimeout):
            locks.wait_until_free(1, OperationClass.DISABLE)
        assert delays[:4] == pytest.approx([0.01, 0.02, 0.04, 0.04])

    def test_proceeds_once_holder_releases(self, locks: AdvisoryLocks) -> None:
        locks.acquire(OperationClass.DISABLE, 5)
        calls = []

        def sleep(seconds: float) -> None:
            calls.append(seconds)
            locks.release(OperationClass.DISABLE, 5)

        locks.sleep = sleep
        locks.wait_until_free(5, OperationClass.DISABLE)
        assert len(calls) == 1


class TestGuard:
    """Tests for the guard() context manager."""

    def test_holds_lock_inside_block(self, locks: AdvisoryLocks) -> None:
        with locks.guard(OperationClass.UPDATE, 1):
            assert locks.is_busy(OperationClass.UPDATE, 1)
        assert not locks.is_busy(OperationClass.UPDATE, 1)

    def test_releases_on_exception(self, locks: AdvisoryLocks) -> None:
        with pytest.raises(RuntimeError):
            with locks.guard(OperationClass.UPDATE, 1):
                raise RuntimeError("boom")
        assert not locks.is_busy(OperationClass.UPDATE, 1)

    def test_no_wait_raises_in_progress_when_held(self, locks: AdvisoryLocks) -> None:
        locks.acquire(OperationClass.REGISTER, "0912345678")
        with pytest.raises(InProgress) as exc_info:
            with locks.guard(OperationClass.REGISTER, "0912345678", wait=False):
                pass
        assert exc_info.value.code == "INPROGESS"

    def test_in_progress_does_not_release_holder(self, locks: AdvisoryLocks) -> None:
        """A rejected caller must not clear someone else's lock."""
        locks.acquire(OperationClass.REGISTER, "u")
        with pytest.raises(InProgress):
            with locks.guard(OperationClass.REGISTER, "u", wait=False):
                pass
        assert locks.is_busy(OperationClass.REGISTER, "u")

    def test_waits_for_extra_classes(self, locks: AdvisoryLocks) -> None:
        locks.acquire(OperationClass.DISABLE, 4)
        body = Mock()
        with pytest.raises(LockTimeout):
            with locks.guard(OperationClass.UPDATE, 4, wait_for=(OperationClass.DISABLE,)):
                body()
        body.assert_not_called()

    def test_reacquire_after_release(self, locks: AdvisoryLocks) -> None:
        """A just-released entry does not block the next guard for long."""
        with locks.guard(OperationClass.LOGIN, "u"):
            pass
        with locks.guard(OperationClass.LOGIN, "u"):
            assert locks.is_busy(OperationClass.LOGIN, "u")

    def test_custom_ttl(self, clock) -> None:
        store = InMemoryKeyValueStore(clock=clock)
        locks = AdvisoryLocks(store=store, ttl_ms=30000, clock=clock)
        with locks.guard(OperationClass.BLOCK, 2, ttl_ms=500):
            clock.advance(0.6)
            assert not locks.is_busy(OperationClass.BLOCK, 2)
