import threading

import pytest

from fieldtrain.core.exceptions import BusyError, ValidationError
from fieldtrain.services.concurrency_manager import ConcurrencyManager, LockType


@pytest.fixture
def manager():
    return ConcurrencyManager(default_timeout=0.5)


def test_lock_is_released_after_block(manager):
    with manager.lock("group:1", holder_id="a"):
        assert manager.is_locked("group:1")
    assert not manager.is_locked("group:1")


def test_same_holder_reenters(manager):
    with manager.lock("group:1", holder_id="a"):
        with manager.lock("group:1", holder_id="a"):
            assert len(manager.get_lock_info("group:1")) == 2
    assert manager.get_statistics()['held_locks'] == 0


def test_read_locks_are_shared(manager):
    first = manager.acquire_lock("r", holder_id="a", lock_type=LockType.READ)
    second = manager.acquire_lock("r", holder_id="b", lock_type=LockType.READ)
    with pytest.raises(BusyError):
        manager.acquire_lock("r", holder_id="c", timeout=0.05)
    manager.release_lock(first)
    manager.release_lock(second)


def test_timeout_raises_busy(manager):
    manager.acquire_lock("group:1", holder_id="a")
    with pytest.raises(BusyError) as exc_info:
        manager.acquire_lock("group:1", holder_id="b", timeout=0.05)
    assert exc_info.value.details['resource_id'] == "group:1"
    assert manager.get_statistics()['timeouts'] == 1


def test_waiter_acquires_after_release(manager):
    lock_id = manager.acquire_lock("group:1", holder_id="a")
    acquired = []

    def waiter():
        with manager.lock("group:1", holder_id="b", timeout=2.0):
            acquired.append(True)

    thread = threading.Thread(target=waiter)
    thread.start()
    manager.release_lock(lock_id)
    thread.join(timeout=3)
    assert acquired == [True]


def test_lock_many_releases_on_failure(manager):
    blocker = manager.acquire_lock("b", holder_id="other")
    with pytest.raises(BusyError):
        with manager.lock_many(["c", "a", "b"], holder_id="me", timeout=0.05):
            pass
    assert not manager.is_locked("a")
    assert manager.get_holder_locks("me") == []
    manager.release_lock(blocker)


def test_lock_many_deduplicates(manager):
    with manager.lock_many(["x", "x", "y"], holder_id="me") as lock_ids:
        assert len(lock_ids) == 2


def test_release_unknown_lock(manager):
    assert manager.release_lock("nope") is False


def test_non_positive_timeout_rejected():
    with pytest.raises(ValidationError):
        ConcurrencyManager(default_timeout=0)
