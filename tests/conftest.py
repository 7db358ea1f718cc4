"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory key-value store and advisory locks
- In-memory fakes for the user, friend and biometric repositories
- A recording notification publisher
- AES hash cipher and validator
"""

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

import pytest

from src.adapters.crypto.aes import AesCbcCipher
from src.adapters.store.memory import InMemoryKeyValueStore
from src.domain.exceptions import AlreadyExists, UserAlreadyExists
from src.domain.hashes import HashValidator
from src.domain.locks import AdvisoryLocks
from src.domain.passwords import hash_password
from src.domain.ports import (
    Biometric,
    BiometricStatus,
    Friend,
    FriendStatus,
    FriendView,
    User,
    UserStatus,
)

TEST_AES_KEY = "IaPON8rXjCQ5TIUVYBtcw8WKGCfcQEtc"
TEST_AES_IV = "jI4j7fqHWOa1b2c3"
TEST_FINGERPRINT = "wfyxb3sR1O"
# Valid under the password policy
STRONG_PASSWORD = "Secret#123"


class FakeUserRepository:
    """Thread-safe in-memory UserRepository."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def find_by_id(self, user_id: int, status: UserStatus | None = None) -> User | None:
        with self._lock:
            user = self.users.get(user_id)
        if user is None or (status is not None and user.status != status):
            return None
        return user

    def find_by_username(self, username: str) -> User | None:
        with self._lock:
            return next((u for u in self.users.values() if u.username == username), None)

    def insert(self, user: User) -> User:
        with self._lock:
            if any(u.username == user.username for u in self.users.values()):
                raise UserAlreadyExists()
            user.id = self._next_id
            self._next_id += 1
            self.users[user.id] = user
            return user

    def update(self, user_id: int, **fields: Any) -> None:
        with self._lock:
            user = self.users[user_id]
            for name, value in fields.items():
                setattr(user, name, value)

    def find_many(self, user_ids: list[int]) -> list[User]:
        with self._lock:
            return [self.users[i] for i in sorted(set(user_ids)) if i in self.users]

    def search_by_name(self, text: str, exclude_id: int, offset: int, limit: int) -> list[User]:
        with self._lock:
            matched = [
                u
                for u in sorted(self.users.values(), key=lambda u: u.id)
                if u.id != exclude_id
                and u.status == UserStatus.ACTIVE
                and text.lower() in u.name.lower()
            ]
        return matched[offset : offset + limit]

    def find_contacts(
        self,
        exclude_id: int,
        text: str | None,
        phones: list[str] | None,
        offset: int,
        limit: int,
    ) -> list[User]:
        def matches(user: User) -> bool:
            if user.id == exclude_id or user.status != UserStatus.ACTIVE:
                return False
            if text is not None:
                fields = (user.name, user.email or "", user.phone_number or "")
                if not any(text.lower() in f.lower() for f in fields):
                    return False
            return phones is None or user.phone_number in phones

        with self._lock:
            matched = [u for u in sorted(self.users.values(), key=lambda u: u.id) if matches(u)]
        return matched[offset : offset + limit]

    def list_inactive_before(self, cutoff: datetime) -> list[int]:
        with self._lock:
            return sorted(
                u.id
                for u in self.users.values()
                if u.status == UserStatus.INACTIVE
                and u.deleted_at is not None
                and u.deleted_at < cutoff
            )

    def delete_many(self, user_ids: list[int]) -> None:
        with self._lock:
            for user_id in user_ids:
                self.users.pop(user_id, None)

    def add(
        self,
        username: str,
        name: str = "Test User",
        password: str = STRONG_PASSWORD,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        """Seed an account with a real bcrypt hash (cost 4 for speed)."""
        return self.insert(
            User(
                id=0,
                username=username,
                password_hash=hash_password(password, cost=4),
                name=name,
                status=status,
                phone_number=username,
                verified=True,
            )
        )


class FakeFriendRepository:
    """
    Thread-safe in-memory FriendRepository.

    Enforces one edge per unordered pair, like the uq_friends_pair index.
    """

    def __init__(self, users: FakeUserRepository) -> None:
        self.edges: dict[int, Friend] = {}
        self._users = users
        self._next_id = 1
        self._lock = threading.Lock()

    def find_by_id(self, friend_id: int) -> Friend | None:
        with self._lock:
            return self.edges.get(friend_id)

    def find_by_pair(self, user_a: int, user_b: int) -> list[Friend]:
        with self._lock:
            return [
                e for e in self.edges.values() if {e.source_id, e.target_id} == {user_a, user_b}
            ]

    def insert(self, source_id: int, target_id: int, status: FriendStatus) -> Friend:
        with self._lock:
            pair = {source_id, target_id}
            if any({e.source_id, e.target_id} == pair for e in self.edges.values()):
                raise AlreadyExists()
            edge = Friend(id=self._next_id, source_id=source_id, target_id=target_id, status=status)
            self._next_id += 1
            self.edges[edge.id] = edge
            return edge

    def update_pair_status(self, user_a: int, user_b: int, status: FriendStatus) -> int:
        with self._lock:
            matched = [
                e for e in self.edges.values() if {e.source_id, e.target_id} == {user_a, user_b}
            ]
            for edge in matched:
                edge.source_id, edge.target_id, edge.status = user_a, user_b, status
            return len(matched)

    def update_status(self, friend_id: int, status: FriendStatus) -> None:
        with self._lock:
            self.edges[friend_id].status = status

    def delete(self, friend_id: int) -> None:
        with self._lock:
            self.edges.pop(friend_id, None)

    def delete_all_for(self, user_id: int) -> None:
        with self._lock:
            for friend_id in [
                e.id for e in self.edges.values() if user_id in (e.source_id, e.target_id)
            ]:
                del self.edges[friend_id]

    def list_for(
        self, user_id: int, status: FriendStatus, offset: int, limit: int
    ) -> list[FriendView]:
        with self._lock:
            edges = sorted(
                (
                    e
                    for e in self.edges.values()
                    if e.status == status and user_id in (e.source_id, e.target_id)
                ),
                key=lambda e: e.id,
            )
        return [
            self._view(e, e.target_id if e.source_id == user_id else e.source_id)
            for e in edges[offset : offset + limit]
        ]

    def list_blocked_by(self, user_id: int, offset: int, limit: int) -> list[FriendView]:
        with self._lock:
            edges = sorted(
                (
                    e
                    for e in self.edges.values()
                    if e.status == FriendStatus.BLOCKED and e.source_id == user_id
                ),
                key=lambda e: e.id,
            )
        return [self._view(e, e.target_id) for e in edges[offset : offset + limit]]

    def _view(self, edge: Friend, other_id: int) -> FriendView:
        other = self._users.users[other_id]
        return FriendView(
            friend_id=edge.id,
            status=edge.status,
            user_id=other.id,
            name=other.name,
            user_status=other.status,
            avatar=other.avatar,
            phone_number=other.phone_number,
            birth_day=other.birth_day,
        )


class FakeBiometricRepository:
    """
    Thread-safe in-memory BiometricRepository.

    Enforces one ACTIVE registration per user, like uq_biometrics_active_user.
    """

    def __init__(self) -> None:
        self.rows: dict[int, Biometric] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def find_active(self, username: str, device_id: str | None = None) -> Biometric | None:
        with self._lock:
            matched = [
                b
                for b in self.rows.values()
                if b.username == username
                and b.status == BiometricStatus.ACTIVE
                and (device_id is None or b.device_id == device_id)
            ]
        return max(matched, key=lambda b: b.id, default=None)

    def list_active(self, user_id: int) -> list[Biometric]:
        with self._lock:
            return sorted(
                (
                    b
                    for b in self.rows.values()
                    if b.user_id == user_id and b.status == BiometricStatus.ACTIVE
                ),
                key=lambda b: b.id,
            )

    def insert(self, biometric: Biometric) -> Biometric:
        with self._lock:
            if any(
                b.user_id == biometric.user_id and b.status == BiometricStatus.ACTIVE
                for b in self.rows.values()
            ):
                raise AlreadyExists()
            biometric.id = self._next_id
            self._next_id += 1
            self.rows[biometric.id] = biometric
            return biometric

    def deactivate(self, biometric_id: int, reason: str) -> None:
        with self._lock:
            row = self.rows[biometric_id]
            row.status = BiometricStatus.INACTIVE
            row.delete_reason = reason


class RecordingPublisher:
    """NotificationPublisher that keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, dict[str, Any]]] = []

    def publish(self, recipient_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((recipient_id, event_type, payload))

    def types_for(self, recipient_id: int) -> list[str]:
        return [t for r, t, _ in self.events if r == recipient_id]


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """In-memory key-value store on the real monotonic clock."""
    return InMemoryKeyValueStore()


@pytest.fixture
def locks(store: InMemoryKeyValueStore) -> AdvisoryLocks:
    """Advisory locks with a short maximum wait so timeouts are quick."""
    return AdvisoryLocks(
        store=store, ttl_ms=30000, poll_interval_ms=1, poll_max_interval_ms=5, max_wait_ms=200
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_repo() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def friend_repo(user_repo: FakeUserRepository) -> FakeFriendRepository:
    return FakeFriendRepository(user_repo)


@pytest.fixture
def biometric_repo() -> FakeBiometricRepository:
    return FakeBiometricRepository()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def cipher() -> AesCbcCipher:
    return AesCbcCipher(TEST_AES_KEY, TEST_AES_IV)


@pytest.fixture
def now_ms() -> int:
    return 1_700_000_000_000


@pytest.fixture
def hash_validator(cipher: AesCbcCipher, now_ms: int) -> HashValidator:
    """Validator whose clock is pinned to now_ms."""
    return HashValidator(cipher=cipher, fingerprint=TEST_FINGERPRINT, clock_ms=lambda: now_ms)


@pytest.fixture
def issue_hash(hash_validator: HashValidator, now_ms: int) -> Callable[..., str]:
    """Issue a hash old enough to pass the minimum age."""

    def _issue(operation: str, age_ms: int = 60_000) -> str:
        return hash_validator.issue(operation, issued_at_ms=now_ms - age_ms)

    return _issue
