"""
Shared fixtures for adversarial tests.

Provides services wired to the in-memory store and repositories, with
lock waits long enough for a burst of concurrent attackers to drain.
"""

import pytest

from src.adapters.crypto.rsa import PlaintextPasswordDecryptor
from src.domain.authentication import AuthenticationService
from src.domain.hashes import HashValidator
from src.domain.locks import AdvisoryLocks
from src.domain.ports import OtpClaims
from src.domain.relationships import FriendService
from src.domain.throttle import LoginThrottle

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture
def locks(store) -> AdvisoryLocks:
    """Advisory locks that wait up to 10s, so serialized attempts never time out."""
    return AdvisoryLocks(
        store=store, ttl_ms=30000, poll_interval_ms=1, poll_max_interval_ms=5, max_wait_ms=10000
    )


@pytest.fixture
def throttle(store) -> LoginThrottle:
    return LoginThrottle(store=store, threshold=5)


class StaticOtpKeys:
    """OtpKeyVerifier that accepts any key for a fixed username."""

    def __init__(self, username: str) -> None:
        self.username = username

    def verify(self, otp_key: str) -> OtpClaims:
        return OtpClaims(id=otp_key, username=self.username, tx_type="REGISTER", id_type="PHONE")

    def consume(self, claims: OtpClaims) -> None:
        pass


@pytest.fixture
def auth_service(
    user_repo, locks: AdvisoryLocks, throttle: LoginThrottle, hash_validator: HashValidator
) -> AuthenticationService:
    return AuthenticationService(
        users=user_repo,
        locks=locks,
        throttle=throttle,
        hashes=hash_validator,
        otp_keys=StaticOtpKeys("0912345678"),
        passwords=PlaintextPasswordDecryptor(),
        bcrypt_cost=4,
    )


@pytest.fixture
def friend_service(user_repo, friend_repo, locks: AdvisoryLocks, publisher) -> FriendService:
    return FriendService(users=user_repo, friends=friend_repo, locks=locks, publisher=publisher)
