"""
Advisory lock protocol - Cooperative mutual exclusion over a key-value store.

Each lock domain is an (operation class, resource key) pair, stored under
"{operation_class}_{resource_key}" with the resource key as its value. The
entry is a liveness marker, not an owner token: well-behaved callers check
it before mutating, nothing stops a caller that does not.

Operations:
- is_busy():       present and non-empty
- acquire():       unconditional set (no atomic rejection)
- try_acquire():   atomic conditional set (SET NX PX)
- release():       overwrite with "" and a 1 ms TTL
- wait_until_free(): bounded polling with exponential backoff
- guard():         wait, try_acquire, run body, release in finally

Every entry carries a TTL so a crashed holder only wedges the resource
until expiry. Final uniqueness still comes from database constraints;
the lock narrows the window for duplicate concurrent mutations.
"""

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import InProgress, LockTimeout
from .ports import KeyValueStore

logger = logging.getLogger(__name__)

# Release writes an empty value with this TTL instead of deleting
RELEASE_TTL_MS = 1


class OperationClass(str, Enum):
    """Partitions of the lock key space by kind of mutation."""

    REGISTER = "register_inprogess"
    UPDATE = "update_inprogess"
    CHANGE_PASSWORD = "change_password_inprogess"
    DISABLE = "disable_inprogess"
    BLOCK = "block_inprogess"
    LOGIN = "login_inprogess"
    BIOMETRIC = "biometric_inprogess"


def lock_key(operation_class: OperationClass, resource_key: object) -> str:
    """Composite store key for a lock domain."""
    return f"{operation_class.value}_{resource_key}"


@dataclass
class AdvisoryLocks:
    """
    Advisory locks keyed by (operation class, resource key).

    Attributes:
        store: Key-value store holding the lock entries
        ttl_ms: Default entry TTL; bounds how long a crashed holder blocks others
        poll_interval_ms: First wait between polls, doubled on every miss
        poll_max_interval_ms: Ceiling for the backoff
        max_wait_ms: Total wait before LockTimeout
    """

    store: KeyValueStore
    ttl_ms: int = 30000
    poll_interval_ms: int = 10
    poll_max_interval_ms: int = 200
    max_wait_ms: int = 5000
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def is_busy(self, operation_class: OperationClass, resource_key: object) -> bool:
        value = self.store.get(lock_key(operation_class, resource_key))
        return value is not None and value != ""

    def acquire(
        self, operation_class: OperationClass, resource_key: object, ttl_ms: int | None = None
    ) -> None:
        """
        Mark the lock held without checking it first.

        Not atomic with is_busy(): two callers can both observe "free" and
        both acquire. Guarded sections use try_acquire() instead.
        """
        self.store.set(
            lock_key(operation_class, resource_key),
            str(resource_key),
            ttl_ms if ttl_ms is not None else self.ttl_ms,
        )

    def try_acquire(
        self, operation_class: OperationClass, resource_key: object, ttl_ms: int | None = None
    ) -> bool:
        """Atomically take the lock. Returns False if it is already present."""
        return self.store.set_if_absent(
            lock_key(operation_class, resource_key),
            str(resource_key),
            ttl_ms if ttl_ms is not None else self.ttl_ms,
        )

    def release(self, operation_class: OperationClass, resource_key: object) -> None:
        """Expire the lock near-immediately. Safe on a lock that was never acquired."""
        self.store.set(lock_key(operation_class, resource_key), "", RELEASE_TTL_MS)

    def wait_until_free(self, resource_key: object, *operation_classes: OperationClass) -> None:
        """
        Poll until none of the given classes is busy for resource_key.

        Raises:
            LockTimeout: still busy after max_wait_ms
        """
        deadline = self.clock() + self.max_wait_ms / 1000
        delay_ms = self.poll_interval_ms
        while True:
            busy = [c for c in operation_classes if self.is_busy(c, resource_key)]
            if not busy:
                return
            if self.clock() >= deadline:
                logger.warning(
                    "Lock wait timed out: key=%s classes=%s",
                    resource_key,
                    ",".join(c.value for c in busy),
                )
                raise LockTimeout(detail=f"{busy[0].value}_{resource_key}")
            logger.warning(
                "Waiting for in-progress operation: key=%s classes=%s",
                resource_key,
                ",".join(c.value for c in busy),
            )
            self.sleep(delay_ms / 1000)
            delay_ms = min(delay_ms * 2, self.poll_max_interval_ms)

    @contextmanager
    def guard(
        self,
        operation_class: OperationClass,
        resource_key: object,
        *,
        wait_for: Iterable[OperationClass] = (),
        wait: bool = True,
        ttl_ms: int | None = None,
    ) -> Iterator[None]:
        """
        Run a block while holding (operation_class, resource_key).

        Waits until operation_class and every wait_for class are free,
        takes the lock atomically, and releases it in a finally block
        whether the body returns or raises.

        Args:
            operation_class: Lock domain to hold
            resource_key: Resource identity (user id, username, ...)
            wait_for: Extra classes that must be free before proceeding
            wait: If False, a busy lock raises InProgress immediately
            ttl_ms: Entry TTL override

        Raises:
            InProgress: wait is False and the lock is held
            LockTimeout: lock stayed busy past max_wait_ms
        """
        classes = (operation_class, *wait_for)
        deadline = self.clock() + self.max_wait_ms / 1000
        while True:
            if wait:
                self.wait_until_free(resource_key, *classes)
            elif any(self.is_busy(c, resource_key) for c in classes):
                raise InProgress(detail=lock_key(operation_class, resource_key))
            if self.try_acquire(operation_class, resource_key, ttl_ms):
                break
            # Lost the race, or a released entry has not expired yet
            if not wait and self.is_busy(operation_class, resource_key):
                raise InProgress(detail=lock_key(operation_class, resource_key))
            if self.clock() >= deadline:
                raise LockTimeout(detail=lock_key(operation_class, resource_key))
            self.sleep(self.poll_interval_ms / 1000)

        logger.debug("Acquired %s", lock_key(operation_class, resource_key))
        try:
            yield
        finally:
            self.release(operation_class, resource_key)
            logger.debug("Released %s", lock_key(operation_class, resource_key))
