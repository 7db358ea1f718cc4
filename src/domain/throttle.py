"""
Login throttle - Per-identifier failure counter with a lockout window.

States:
- Clear:        fail_count == 0
- Accumulating: 0 < fail_count < threshold
- Locked:       fail_count >= threshold and now < last_request + window

Transitions:
- Locked and inside the window: reject with LoginTemporarilyLocked
- Locked and the window elapsed: counting restarts, so a failed attempt
  leaves fail_count == 1 and a successful one leaves 0
- Failed attempt (unknown identifier or wrong credential): fail_count + 1
- Successful attempt: fail_count = 0

Every attempt moves last_request to now, including rejected ones, so
continued attempts keep sliding the window forward.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .exceptions import LoginTemporarilyLocked
from .ports import KeyValueStore

logger = logging.getLogger(__name__)

LOGIN_VALIDATE = "login_validate"


@dataclass
class LoginValidation:
    """Throttle record for one identifier."""

    username: str
    fail_count: int = 0
    last_request: datetime | None = None
    window_restarted: bool = field(default=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "failCount": self.fail_count,
            "lastRequest": self.last_request,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LoginValidation":
        return cls(
            username=data["username"],
            fail_count=int(data.get("failCount", 0)),
            last_request=data.get("lastRequest"),
        )


@dataclass
class LoginThrottle:
    """
    Login throttle backed by the key-value store.

    Attributes:
        store: Key-value store for LoginValidation records
        threshold: Failures that trigger lockout
        window_ms: Lockout window measured from the last attempt
        record_ttl_ms: Store expiry for the record
    """

    store: KeyValueStore
    threshold: int = 5
    window_ms: int = 1800000
    record_ttl_ms: int = 86400000

    def check(self, username: str, now: datetime | None = None) -> LoginValidation:
        """
        Load the record for username and enforce the lockout.

        A missing record is an expected state and yields a fresh Clear record.

        Raises:
            LoginTemporarilyLocked: locked and still inside the window
        """
        now = now or _utcnow()
        data = self.store.get(self._key(username))
        if not data:
            return LoginValidation(username=username)

        record = LoginValidation.from_dict(data)
        if record.fail_count >= self.threshold:
            unlock_at = (record.last_request or now) + timedelta(milliseconds=self.window_ms)
            if now < unlock_at:
                record.last_request = now
                self._save(record)
                logger.warning(
                    "Login temporarily locked: username=%s fail_count=%d",
                    username,
                    record.fail_count,
                )
                raise LoginTemporarilyLocked()
            record.window_restarted = True
        return record

    def record_attempt(
        self, record: LoginValidation, succeeded: bool | None, now: datetime | None = None
    ) -> LoginValidation:
        """
        Apply the outcome of a credential check and persist the record.

        Args:
            record: Record returned by check()
            succeeded: True for a confirmed match on an active account, False
                for an unknown identifier or wrong credential, None when the
                attempt neither failed nor succeeded (count unchanged)
            now: Attempt time
        """
        if succeeded:
            record.fail_count = 0
        elif succeeded is None:
            if record.window_restarted:
                record.fail_count = 0
        elif record.window_restarted:
            record.fail_count = 1
        else:
            record.fail_count += 1
        record.window_restarted = False
        record.last_request = now or _utcnow()
        self._save(record)
        return record

    def clear(self, username: str) -> None:
        """Drop the record (near-immediate expiry)."""
        self.store.set(self._key(username), "", 1)

    def _save(self, record: LoginValidation) -> None:
        logger.info(
            "Login validation updated: username=%s fail_count=%d",
            record.username,
            record.fail_count,
        )
        self.store.set(self._key(record.username), record.to_dict(), self.record_ttl_ms)

    @staticmethod
    def _key(username: str) -> str:
        return f"{LOGIN_VALIDATE}_{username}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
