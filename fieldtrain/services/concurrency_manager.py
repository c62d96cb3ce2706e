"""
Concurrency management and thread safety components.

Locks are named after the resource they protect (``group:<id>``,
``enrollment:<student>:<course>``, ``evaluation:<assignment>``). A waiter
gives up after its timeout with ``BusyError`` instead of blocking forever.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..core.exceptions import BusyError, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0


class LockType(Enum):
    """Types of locks available."""
    READ = "read"
    EXCLUSIVE = "exclusive"


@dataclass
class LockInfo:
    """Information about a held lock."""
    lock_id: str
    resource_id: str
    lock_type: LockType
    holder_id: str
    acquired_at: float


def group_lock_key(group_id: str) -> str:
    return f"group:{group_id}"


def enrollment_lock_key(student_id: str, course_id: str) -> str:
    return f"enrollment:{student_id}:{course_id}"


def course_lock_key(course_id: str) -> str:
    return f"course:{course_id}"


def evaluation_lock_key(assignment_id: str) -> str:
    return f"evaluation:{assignment_id}"


def current_holder() -> str:
    """Default holder id: one per thread, so nested calls on a thread re-enter."""
    return f"thread-{threading.get_ident()}"


class ConcurrencyManager:
    """Pessimistic per-resource locking with bounded waits."""

    def __init__(self, default_timeout: float = DEFAULT_LOCK_TIMEOUT):
        if default_timeout <= 0:
            raise ValidationError("Lock timeout must be positive", details={'timeout': default_timeout})
        self._default_timeout = default_timeout
        self._locks: Dict[str, List[str]] = {}
        self._lock_holders: Dict[str, LockInfo] = {}
        self._condition = threading.Condition(threading.RLock())
        self._stats = {'acquired': 0, 'released': 0, 'timeouts': 0}

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def acquire_lock(self, resource_id: str, holder_id: Optional[str] = None,
                     lock_type: LockType = LockType.EXCLUSIVE,
                     timeout: Optional[float] = None) -> str:
        """Acquire a lock on a resource, waiting at most ``timeout`` seconds."""
        holder_id = holder_id or current_holder()
        timeout = self._default_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        with self._condition:
            while not self._can_acquire_lock(resource_id, lock_type, holder_id):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._stats['timeouts'] += 1
                    logger.warning("Timed out after %.2fs waiting for %s lock on %s",
                                   timeout, lock_type.value, resource_id)
                    raise BusyError(
                        f"Resource {resource_id} is busy, retry later",
                        details={'resource_id': resource_id, 'timeout': timeout}
                    )
                self._condition.wait(remaining)

            lock_id = str(uuid.uuid4())
            self._locks.setdefault(resource_id, []).append(lock_id)
            self._lock_holders[lock_id] = LockInfo(
                lock_id=lock_id,
                resource_id=resource_id,
                lock_type=lock_type,
                holder_id=holder_id,
                acquired_at=time.time(),
            )
            self._stats['acquired'] += 1
            return lock_id

    def release_lock(self, lock_id: str) -> bool:
        """Release a lock and wake up waiters."""
        with self._condition:
            lock_info = self._lock_holders.pop(lock_id, None)
            if lock_info is None:
                return False

            resource_locks = self._locks.get(lock_info.resource_id, [])
            if lock_id in resource_locks:
                resource_locks.remove(lock_id)
            if not resource_locks:
                self._locks.pop(lock_info.resource_id, None)

            self._stats['released'] += 1
            self._condition.notify_all()
            return True

    def _can_acquire_lock(self, resource_id: str, lock_type: LockType, holder_id: str) -> bool:
        """Check if a lock can be acquired."""
        existing = [self._lock_holders[lock_id] for lock_id in self._locks.get(resource_id, [])]
        others = [info for info in existing if info.holder_id != holder_id]

        # Same holder re-enters freely
        if not others:
            return True
        if lock_type == LockType.READ:
            return all(info.lock_type == LockType.READ for info in others)
        return False

    @contextmanager
    def lock(self, resource_id: str, holder_id: Optional[str] = None,
             lock_type: LockType = LockType.EXCLUSIVE, timeout: Optional[float] = None):
        """Context manager for acquiring and releasing a lock."""
        lock_id = self.acquire_lock(resource_id, holder_id, lock_type, timeout)
        try:
            yield lock_id
        finally:
            self.release_lock(lock_id)

    @contextmanager
    def lock_many(self, resource_ids: Iterable[str], holder_id: Optional[str] = None,
                  timeout: Optional[float] = None):
        """Acquire exclusive locks on several resources in sorted order.

        A fixed global order means two callers can never wait on each other
        in a cycle. If any acquisition times out, the locks taken so far are
        released before ``BusyError`` propagates.
        """
        holder_id = holder_id or current_holder()
        timeout = self._default_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        acquired: List[str] = []
        try:
            for resource_id in sorted(set(resource_ids)):
                remaining = max(deadline - time.monotonic(), 0.0)
                acquired.append(self.acquire_lock(resource_id, holder_id, LockType.EXCLUSIVE, remaining))
            yield list(acquired)
        finally:
            for lock_id in reversed(acquired):
                self.release_lock(lock_id)

    def is_locked(self, resource_id: str) -> bool:
        with self._condition:
            return bool(self._locks.get(resource_id))

    def get_lock_info(self, resource_id: str) -> List[LockInfo]:
        """Get information about all locks on a resource."""
        with self._condition:
            return [self._lock_holders[lock_id] for lock_id in self._locks.get(resource_id, [])]

    def get_holder_locks(self, holder_id: str) -> List[LockInfo]:
        """Get all locks held by a specific holder."""
        with self._condition:
            return [info for info in self._lock_holders.values() if info.holder_id == holder_id]

    def get_statistics(self) -> Dict[str, Any]:
        with self._condition:
            stats = dict(self._stats)
            stats['held_locks'] = len(self._lock_holders)
            stats['locked_resources'] = len(self._locks)
            return stats
