"""
User domain service - Profiles, search, account disabling and purging.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .authentication import check_otp_owner
from .exceptions import UserNotFound, ValidationError
from .hashes import HashOperation, HashValidator
from .locks import AdvisoryLocks, OperationClass
from .passwords import check_name, check_password, require
from .ports import (
    FriendRepository,
    NotificationPublisher,
    OtpKeyVerifier,
    PasswordDecryptor,
    User,
    UserRepository,
    UserStatus,
)
from .relationships import MAX_PAGE_SIZE, FriendService, page_bounds

logger = logging.getLogger(__name__)


@dataclass
class UserService:
    """Domain service for account profile and lifecycle."""

    users: UserRepository
    friends: FriendService
    locks: AdvisoryLocks
    hashes: HashValidator
    otp_keys: OtpKeyVerifier
    passwords: PasswordDecryptor
    publisher: NotificationPublisher

    def get_user_info(self, user_id: int) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def get_user_infos(self, user_ids: list[int]) -> list[User]:
        """
        Profiles for a batch of ids. Unknown ids are skipped.

        Raises:
            ValidationError: user_ids empty or longer than MAX_PAGE_SIZE
        """
        require(user_ids=user_ids)
        if len(user_ids) > MAX_PAGE_SIZE:
            raise ValidationError(detail=f"at most {MAX_PAGE_SIZE} user ids per request")
        return self.users.find_many(sorted(set(user_ids)))

    def search_users(
        self,
        actor_id: int,
        search: str,
        page_number: int | None = None,
        page_size: int | None = None,
    ) -> list[User]:
        """Active users other than actor whose name contains search."""
        require(search=search)
        offset, limit = page_bounds(page_number, page_size)
        return self.users.search_by_name(search, actor_id, offset, limit)

    def put_user_info(
        self,
        user_id: int,
        name: str,
        birth_day: datetime | None = None,
        avatar: str | None = None,
    ) -> None:
        """
        Update profile fields under the UPDATE lock.

        Raises:
            ValidationError: name missing or violates the name policy
            UserNotFound: account missing
        """
        require(name=name)
        check_name(name)
        with self.locks.guard(OperationClass.UPDATE, user_id, wait_for=(OperationClass.DISABLE,)):
            if self.users.find_by_id(user_id) is None:
                raise UserNotFound()
            self.users.update(user_id, name=name, birth_day=birth_day, avatar=avatar)
        logger.info("User info updated: id=%d", user_id)

    def confirm_user(self, user_id: int, password: str) -> bool:
        """
        Check the caller's password without changing anything.

        Waits for in-flight password changes and disabling to finish first.

        Raises:
            UserNotFound: account missing or inactive
        """
        require(password=password)
        plain = self.passwords.decrypt(password)
        self.locks.wait_until_free(
            user_id, OperationClass.CHANGE_PASSWORD, OperationClass.DISABLE
        )
        user = self.users.find_by_id(user_id, status=UserStatus.ACTIVE)
        if user is None:
            raise UserNotFound()
        return check_password(plain, user.password_hash)

    def disable_user(self, user_id: int, otp_key: str, hash: str) -> None:
        """
        Deactivate the caller's account.

        Scrambles email and phone so they can be registered again, removes
        every relationship edge and notifies the user.

        Raises:
            ValidationError: missing field
            AuthTokenError: hash rejected, or OTP key rejected or issued for
                another user
            UserNotFound: account missing or already inactive
        """
        require(otp_key=otp_key, hash=hash)
        self.hashes.validate(hash, HashOperation.DELETE_USER)
        claims = self.otp_keys.verify(otp_key)

        with self.locks.guard(OperationClass.DISABLE, user_id):
            user = self.users.find_by_id(user_id, status=UserStatus.ACTIVE)
            if user is None:
                raise UserNotFound()
            check_otp_owner(claims, user.username)
            notice = {"name": user.name, "email": user.email}
            self.users.update(
                user_id,
                status=UserStatus.INACTIVE,
                phone_number=str(uuid.uuid4()),
                email=str(uuid.uuid4()),
                deleted_at=datetime.now(timezone.utc),
            )
            self.friends.delete_all_for(user_id)
            self.otp_keys.consume(claims)

        logger.info("User disabled: id=%d", user_id)
        self.publisher.publish(user_id, "ACCOUNT_DELETED", notice)


@dataclass
class AccountPurger:
    """Deletes accounts disabled longer than the retention period."""

    users: UserRepository
    friends: FriendRepository
    publisher: NotificationPublisher

    def purge_inactive(self, retention: timedelta, now: datetime | None = None) -> list[int]:
        """
        Delete accounts disabled more than retention ago, with their edges.

        Each purged user gets an ACCOUNT_PURGED event so downstream services
        can drop their own data.

        Returns:
            Ids of the purged accounts
        """
        cutoff = (now or datetime.now(timezone.utc)) - retention
        user_ids = self.users.list_inactive_before(cutoff)
        if not user_ids:
            return []
        for user_id in user_ids:
            self.friends.delete_all_for(user_id)
        self.users.delete_many(user_ids)
        logger.info("Purged %d inactive account(s)", len(user_ids))
        for user_id in user_ids:
            self.publisher.publish(user_id, "ACCOUNT_PURGED", {"userId": user_id})
        return user_ids
