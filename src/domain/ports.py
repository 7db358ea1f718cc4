"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the records that cross them. Adapters
implement these protocols.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class UserStatus(str, Enum):
    """Account status. Only ACTIVE accounts can log in or be befriended."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class BiometricStatus(str, Enum):
    """Registration state. A user has at most one ACTIVE registration."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class FriendStatus(str, Enum):
    """
    Relationship State Machine states for an unordered pair of users.

    Transitions:
    - (absent) -> PENDING   request_friend
    - PENDING -> FRIENDED   accept_friend (target only)
    - (any) -> BLOCKED      block_friend (upsert)
    - PENDING/FRIENDED -> (absent)   reject_friend (either side)
    - BLOCKED -> (absent)   unblock_friend (blocker only)
    """

    PENDING = "PENDING"
    FRIENDED = "FRIENDED"
    BLOCKED = "BLOCKED"


@dataclass
class User:
    """Account record."""

    id: int
    username: str
    password_hash: str
    name: str
    status: UserStatus = UserStatus.ACTIVE
    phone_number: str | None = None
    email: str | None = None
    avatar: str | None = None
    birth_day: datetime | None = None
    verified: bool = False
    deleted_at: datetime | None = None


@dataclass
class Friend:
    """Relationship edge, stored directed, meaning an unordered pair."""

    id: int
    source_id: int
    target_id: int
    status: FriendStatus
    created_at: datetime | None = None


@dataclass
class FriendView:
    """A relationship seen from one side, joined with the other user."""

    friend_id: int
    status: FriendStatus
    user_id: int
    name: str
    user_status: UserStatus
    avatar: str | None = None
    phone_number: str | None = None
    birth_day: datetime | None = None


@dataclass
class Biometric:
    """Device key registered for signature login."""

    id: int
    user_id: int
    username: str
    device_id: str
    public_key: str
    secret_key: str
    status: BiometricStatus = BiometricStatus.ACTIVE
    delete_reason: str | None = None
    created_at: datetime | None = None


@dataclass
class UserSuggestion:
    """A user matched by contact details, with the caller's edge to them if any."""

    user: User
    friend_id: int | None = None
    friend_status: FriendStatus | None = None


@dataclass
class OtpClaims:
    """Verified OTP key claims."""

    id: str
    username: str | None
    tx_type: str
    id_type: str
    extra: dict[str, Any] = field(default_factory=dict)


class KeyValueStore(Protocol):
    """Port interface for the flat key-value store (values go through the codec)."""

    def get(self, key: str) -> Any | None:
        """
        Fetch and decode a value.

        Returns:
            Decoded value, or None if the key is absent or expired

        Raises:
            CodecError: stored payload is corrupt
            TransientInfraError: store unreachable
        """
        ...

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Encode and store a value, optionally expiring after ttl_ms."""
        ...

    def set_if_absent(self, key: str, value: Any, ttl_ms: int | None = None) -> bool:
        """
        Atomically store a value only if the key does not exist.

        Returns:
            True if written, False if the key was already present
        """
        ...

    def delete(self, key: str) -> None:
        """Remove a key. Deleting an absent key is not an error."""
        ...


class UserRepository(Protocol):
    """Port interface for account persistence."""

    def find_by_id(self, user_id: int, status: UserStatus | None = None) -> User | None:
        ...

    def find_by_username(self, username: str) -> User | None:
        ...

    def insert(self, user: User) -> User:
        """
        Insert a new account.

        Raises:
            UserAlreadyExists: username, phone or email taken
        """
        ...

    def update(self, user_id: int, **fields: Any) -> None:
        ...

    def find_many(self, user_ids: list[int]) -> list[User]:
        """Accounts whose id is in user_ids, any status, ordered by id."""
        ...

    def search_by_name(
        self, text: str, exclude_id: int, offset: int, limit: int
    ) -> list[User]:
        """ACTIVE accounts whose name contains text (case-insensitive), except exclude_id."""
        ...

    def find_contacts(
        self,
        exclude_id: int,
        text: str | None,
        phones: list[str] | None,
        offset: int,
        limit: int,
    ) -> list[User]:
        """
        ACTIVE accounts other than exclude_id, ordered by id.

        text matches name, email or phone number as a substring; phones
        restricts to the given phone numbers. Either filter may be None.
        """
        ...

    def list_inactive_before(self, cutoff: datetime) -> list[int]:
        """Ids of INACTIVE accounts disabled before cutoff."""
        ...

    def delete_many(self, user_ids: list[int]) -> None:
        ...


class FriendRepository(Protocol):
    """Port interface for relationship persistence."""

    def find_by_id(self, friend_id: int) -> Friend | None:
        ...

    def find_by_pair(self, user_a: int, user_b: int) -> list[Friend]:
        """Return edges for the unordered pair, checking both orderings."""
        ...

    def insert(self, source_id: int, target_id: int, status: FriendStatus) -> Friend:
        """
        Insert an edge.

        Raises:
            AlreadyExists: an edge already exists for the pair
        """
        ...

    def update_pair_status(self, user_a: int, user_b: int, status: FriendStatus) -> int:
        """
        Set status on the pair's edge and orient it user_a -> user_b.

        Returns:
            Rows updated (0 when the pair has no edge)
        """
        ...

    def update_status(self, friend_id: int, status: FriendStatus) -> None:
        ...

    def delete(self, friend_id: int) -> None:
        ...

    def delete_all_for(self, user_id: int) -> None:
        ...

    def list_for(
        self, user_id: int, status: FriendStatus, offset: int, limit: int
    ) -> list[FriendView]:
        """Edges with status where user_id is on either side, joined with the other user."""
        ...

    def list_blocked_by(self, user_id: int, offset: int, limit: int) -> list[FriendView]:
        """BLOCKED edges whose source_id is user_id."""
        ...


class BiometricRepository(Protocol):
    """Port interface for biometric registrations."""

    def find_active(self, username: str, device_id: str | None = None) -> Biometric | None:
        """ACTIVE registration for username, optionally on device_id."""
        ...

    def list_active(self, user_id: int) -> list[Biometric]:
        ...

    def insert(self, biometric: Biometric) -> Biometric:
        """
        Raises:
            AlreadyExists: user already has an ACTIVE registration
        """
        ...

    def deactivate(self, biometric_id: int, reason: str) -> None:
        ...


class NotificationPublisher(Protocol):
    """Port interface for fire-and-forget event delivery."""

    def publish(self, recipient_id: int, event_type: str, payload: dict[str, Any]) -> None:
        """
        Dispatch an event to a recipient. Delivery is not awaited or guaranteed.

        Args:
            recipient_id: User the event is addressed to
            event_type: Stable type tag, e.g. FRIEND_REQUEST
            payload: Event body
        """
        ...


class PayloadCipher(Protocol):
    """Port interface for symmetric encryption of replay hashes."""

    def encrypt(self, plaintext: str) -> str:
        ...

    def decrypt(self, token: str) -> str:
        """
        Raises:
            ValueError: token cannot be decrypted
        """
        ...


class PasswordDecryptor(Protocol):
    """Port interface for decrypting client-encrypted passwords."""

    def decrypt(self, ciphertext: str) -> str:
        ...


class SignatureVerifier(Protocol):
    """Port interface for device signature checks."""

    def verify(self, public_key: str, message: str, signature: str) -> bool:
        """
        Check a base64 signature over message.

        Returns:
            False for a bad signature or an unusable key; never raises
        """
        ...


class OtpKeyVerifier(Protocol):
    """Port interface for OTP key verification."""

    def verify(self, otp_key: str) -> OtpClaims:
        """
        Raises:
            InvalidOtpKey: signature, claims or stored OTP record invalid
            OtpKeyExpired: token expired
        """
        ...

    def consume(self, claims: OtpClaims) -> None:
        """Invalidate the stored OTP record after a successful mutation."""
        ...
