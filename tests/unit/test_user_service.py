"""
Unit tests for UserService domain logic.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from src.adapters.crypto.rsa import PlaintextPasswordDecryptor
from src.domain.exceptions import (
    InvalidHash,
    InvalidOtpKey,
    LockTimeout,
    UserNotFound,
    ValidationError,
)
from src.domain.hashes import HashOperation, HashValidator
from src.domain.locks import AdvisoryLocks, OperationClass
from src.domain.ports import FriendStatus, OtpClaims, UserStatus
from src.domain.relationships import FriendService
from src.domain.users import AccountPurger, UserService


@pytest.fixture
def otp_keys() -> Mock:
    verifier = Mock()
    verifier.verify.return_value = OtpClaims(
        id="otp-9", username=None, tx_type="DELETE_USER", id_type="PHONE"
    )
    return verifier


@pytest.fixture
def service(
    user_repo,
    friend_repo,
    locks: AdvisoryLocks,
    publisher,
    hash_validator: HashValidator,
    otp_keys: Mock,
) -> UserService:
    friends = FriendService(users=user_repo, friends=friend_repo, locks=locks, publisher=publisher)
    return UserService(
        users=user_repo,
        friends=friends,
        locks=locks,
        hashes=hash_validator,
        otp_keys=otp_keys,
        passwords=PlaintextPasswordDecryptor(),
        publisher=publisher,
    )


class TestUserInfo:
    """Tests for get_user_info() and put_user_info()."""

    def test_get_existing(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678", name="Alice")
        assert service.get_user_info(user.id).name == "Alice"

    def test_get_missing(self, service: UserService) -> None:
        with pytest.raises(UserNotFound):
            service.get_user_info(42)

    def test_put_updates_profile(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678")
        birthday = datetime(1990, 4, 2, tzinfo=timezone.utc)

        service.put_user_info(user.id, "Alice Nguyen", birth_day=birthday, avatar="a.png")

        stored = user_repo.find_by_id(user.id)
        assert stored.name == "Alice Nguyen"
        assert stored.birth_day == birthday
        assert stored.avatar == "a.png"

    def test_put_requires_name(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678")
        with pytest.raises(ValidationError):
            service.put_user_info(user.id, None)

    def test_put_rejects_bad_name(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678")
        with pytest.raises(ValidationError) as exc_info:
            service.put_user_info(user.id, "R2D2")
        assert exc_info.value.code == "NAME_NOT_MATCHED_POLICY"

    def test_put_waits_for_disable(
        self, service: UserService, user_repo, locks: AdvisoryLocks
    ) -> None:
        user = user_repo.add("0912345678")
        locks.acquire(OperationClass.DISABLE, user.id)
        with pytest.raises(LockTimeout):
            service.put_user_info(user.id, "Alice")
        assert not locks.is_busy(OperationClass.UPDATE, user.id)


class TestConfirmUser:
    def test_correct_password(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678")
        assert service.confirm_user(user.id, "Secret#123") is True

    def test_wrong_password(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678")
        assert service.confirm_user(user.id, "Wrong#123") is False

    def test_inactive_user(self, service: UserService, user_repo) -> None:
        user = user_repo.add("0912345678", status=UserStatus.INACTIVE)
        with pytest.raises(UserNotFound):
            service.confirm_user(user.id, "Secret#123")

    def test_waits_for_password_change(
        self, service: UserService, user_repo, locks: AdvisoryLocks
    ) -> None:
        user = user_repo.add("0912345678")
        locks.acquire(OperationClass.CHANGE_PASSWORD, user.id)
        with pytest.raises(LockTimeout):
            service.confirm_user(user.id, "Secret#123")


class TestDisableUser:
    """Tests for disable_user()."""

    def test_disables_scrambles_and_unfriends(
        self,
        service: UserService,
        issue_hash: Callable[..., str],
        user_repo,
        friend_repo,
        publisher,
        otp_keys: Mock,
    ) -> None:
        alice = user_repo.add("0900000001", name="Alice")
        bob = user_repo.add("0900000002", name="Bob")
        friend_repo.insert(alice.id, bob.id, FriendStatus.FRIENDED)

        service.disable_user(alice.id, "otp", issue_hash(HashOperation.DELETE_USER))

        stored = user_repo.find_by_id(alice.id)
        assert stored.status == UserStatus.INACTIVE
        assert stored.phone_number != "0900000001"
        assert stored.email is not None
        assert friend_repo.edges == {}
        assert publisher.types_for(alice.id) == ["ACCOUNT_DELETED"]
        otp_keys.consume.assert_called_once()

    def test_already_inactive(
        self, service: UserService, issue_hash: Callable[..., str], user_repo
    ) -> None:
        user = user_repo.add("0912345678", status=UserStatus.INACTIVE)
        with pytest.raises(UserNotFound):
            service.disable_user(user.id, "otp", issue_hash(HashOperation.DELETE_USER))

    def test_otp_for_other_username(
        self, service: UserService, issue_hash: Callable[..., str], user_repo, otp_keys: Mock
    ) -> None:
        user = user_repo.add("0912345678")
        otp_keys.verify.return_value = OtpClaims(
            id="otp-10", username="0999999999", tx_type="DELETE_USER", id_type="PHONE"
        )
        with pytest.raises(InvalidOtpKey):
            service.disable_user(user.id, "otp", issue_hash(HashOperation.DELETE_USER))
        assert user_repo.find_by_id(user.id).status == UserStatus.ACTIVE
        otp_keys.consume.assert_not_called()

    def test_wrong_hash_operation(
        self, service: UserService, issue_hash: Callable[..., str], user_repo, otp_keys: Mock
    ) -> None:
        user = user_repo.add("0912345678")
        with pytest.raises(InvalidHash):
            service.disable_user(user.id, "otp", issue_hash(HashOperation.PASSWORD))
        otp_keys.verify.assert_not_called()

    def test_releases_disable_lock(
        self,
        service: UserService,
        issue_hash: Callable[..., str],
        user_repo,
        locks: AdvisoryLocks,
    ) -> None:
        user = user_repo.add("0912345678")
        service.disable_user(user.id, "otp", issue_hash(HashOperation.DELETE_USER))
        assert not locks.is_busy(OperationClass.DISABLE, user.id)


class TestSearchAndBatch:
    """Tests for search_users() and get_user_infos()."""

    def test_search_by_name_excludes_caller_and_inactive(
        self, service: UserService, user_repo
    ) -> None:
        caller = user_repo.add("0900000001", name="Anna")
        anne = user_repo.add("0900000002", name="Anne Marie")
        user_repo.add("0900000003", name="Annika", status=UserStatus.INACTIVE)
        user_repo.add("0900000004", name="Bob")

        found = service.search_users(caller.id, "ann")

        assert [u.id for u in found] == [anne.id]

    def test_search_requires_text(self, service: UserService) -> None:
        with pytest.raises(ValidationError):
            service.search_users(1, "")

    def test_search_pages(self, service: UserService, user_repo) -> None:
        users = [user_repo.add(f"09100000{i:02d}", name="Sam") for i in range(3)]

        page2 = service.search_users(0, "Sam", page_number=2, page_size=2)

        assert [u.id for u in page2] == [users[2].id]

    def test_infos_skip_unknown_ids(self, service: UserService, user_repo) -> None:
        alice = user_repo.add("0900000001", name="Alice")
        bob = user_repo.add("0900000002", name="Bob", status=UserStatus.INACTIVE)

        found = service.get_user_infos([bob.id, 999, alice.id, bob.id])

        assert [u.id for u in found] == [alice.id, bob.id]

    @pytest.mark.parametrize("user_ids", [[], None, list(range(101))])
    def test_infos_reject_empty_or_oversized(
        self, service: UserService, user_ids: list[int] | None
    ) -> None:
        with pytest.raises(ValidationError):
            service.get_user_infos(user_ids)


class TestAccountPurger:
    """Tests for AccountPurger.purge_inactive()."""

    NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

    @pytest.fixture
    def purger(self, user_repo, friend_repo, publisher) -> AccountPurger:
        return AccountPurger(users=user_repo, friends=friend_repo, publisher=publisher)

    def disable(self, user_repo, user_id: int, days_ago: int) -> None:
        user_repo.update(
            user_id,
            status=UserStatus.INACTIVE,
            deleted_at=self.NOW - timedelta(days=days_ago),
        )

    def test_purges_only_past_retention(
        self, purger: AccountPurger, user_repo, friend_repo, publisher
    ) -> None:
        old = user_repo.add("0900000001")
        recent = user_repo.add("0900000002")
        active = user_repo.add("0900000003")
        self.disable(user_repo, old.id, days_ago=10)
        self.disable(user_repo, recent.id, days_ago=2)
        friend_repo.insert(active.id, old.id, FriendStatus.PENDING)

        purged = purger.purge_inactive(timedelta(days=7), now=self.NOW)

        assert purged == [old.id]
        assert user_repo.find_by_id(old.id) is None
        assert user_repo.find_by_id(recent.id) is not None
        assert friend_repo.edges == {}
        assert publisher.types_for(old.id) == ["ACCOUNT_PURGED"]

    def test_nothing_to_purge(self, purger: AccountPurger, user_repo, publisher) -> None:
        user_repo.add("0900000001")
        assert purger.purge_inactive(timedelta(days=7), now=self.NOW) == []
        assert publisher.events == []

    def test_disable_records_when(
        self,
        service: UserService,
        purger: AccountPurger,
        issue_hash: Callable[..., str],
        user_repo,
    ) -> None:
        user = user_repo.add("0912345678")
        service.disable_user(user.id, "otp", issue_hash(HashOperation.DELETE_USER))

        assert user_repo.find_by_id(user.id).deleted_at is not None
        assert purger.purge_inactive(timedelta(days=7)) == []
        assert purger.purge_inactive(timedelta(days=-1)) == [user.id]
