"""
Authentication domain service - Registration, login and password changes.

Every mutation follows the same sequence:

1. Required fields and input policies
2. Replay-protected hash for the operation
3. OTP key (single-use, consumed after the mutation)
4. Advisory lock for the resource, released in a finally block
5. Re-read state under the lock, mutate, persist

Login runs the throttle state machine under a per-username lock so
concurrent attempts cannot lose failure increments.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import (
    AccountError,
    IncorrectOldPassword,
    InvalidAccountStatus,
    InvalidClientCredential,
    InvalidOtpKey,
    UserAlreadyExists,
    UserNotFound,
    ValidationError,
)
from .hashes import HashOperation, HashValidator
from .locks import AdvisoryLocks, OperationClass
from .passwords import (
    check_name,
    check_password,
    check_password_policy,
    check_username,
    hash_password,
    require,
)
from .ports import (
    OtpClaims,
    OtpKeyVerifier,
    PasswordDecryptor,
    User,
    UserRepository,
    UserStatus,
)
from .throttle import LoginThrottle

logger = logging.getLogger(__name__)


def check_otp_owner(claims: OtpClaims, username: str) -> None:
    """
    Raises:
        InvalidOtpKey: key was issued for a different username
    """
    if claims.username is not None and claims.username != username:
        logger.warning("OTP key issued for another user: %s != %s", claims.username, username)
        raise InvalidOtpKey()


@dataclass(frozen=True)
class LoginResult:
    """Account summary returned on successful login."""

    id: int
    username: str
    status: UserStatus
    is_verified: bool
    name: str


@dataclass
class AuthenticationService:
    """
    Domain service for credentials.

    Orchestrates policy checks, replay hashes, OTP keys, advisory locks
    and the login throttle around the account repository.
    """

    users: UserRepository
    locks: AdvisoryLocks
    throttle: LoginThrottle
    hashes: HashValidator
    otp_keys: OtpKeyVerifier
    passwords: PasswordDecryptor
    bcrypt_cost: int = 10

    def register(
        self,
        username: str,
        password: str,
        otp_key: str,
        hash: str,
        name: str | None = None,
    ) -> str:
        """
        Create an ACTIVE account.

        A registration already in flight for the same username is rejected
        rather than waited on.

        Returns:
            The registered username

        Raises:
            ValidationError: missing field or policy violation
            AuthTokenError: hash or OTP key rejected
            InProgress: another registration for username is running
            UserAlreadyExists: username taken
        """
        require(username=username, password=password, otp_key=otp_key, hash=hash)
        plain = self.passwords.decrypt(password)
        check_username(username)
        check_password_policy(plain)
        check_name(name)
        self.hashes.validate(hash, HashOperation.REGISTER)
        claims = self._verify_otp(otp_key, username)

        with self.locks.guard(OperationClass.REGISTER, username, wait=False):
            if self.users.find_by_username(username) is not None:
                raise UserAlreadyExists()
            user = self.users.insert(
                User(
                    id=0,
                    username=username,
                    password_hash=hash_password(plain, self.bcrypt_cost),
                    name=name or username,
                    status=UserStatus.ACTIVE,
                    phone_number=username,
                    verified=True,
                )
            )
            self.otp_keys.consume(claims)

        logger.info("User registered: id=%d username=%s", user.id, username)
        return username

    def login(self, username: str, password: str, hash: str) -> LoginResult:
        """
        Check credentials under the login throttle.

        Raises:
            ValidationError: missing field
            LoginTemporarilyLocked: too many recent failures
            InvalidClientCredential: unknown username or wrong password
            InvalidAccountStatus: account not ACTIVE
            AuthTokenError: hash rejected
        """
        require(username=username, password=password, hash=hash)
        plain = self.passwords.decrypt(password)
        return self.authenticate(
            username,
            hash,
            lambda user: check_password(plain, user.password_hash if user else None),
        )

    def authenticate(
        self, username: str, hash: str, verify: Callable[[User | None], bool]
    ) -> LoginResult:
        """
        Run a credential check under the LOGIN lock and the throttle.

        verify receives the account (None when unknown) and must do the same
        work either way. A False result, or an AccountError raised by verify,
        counts as a failed attempt. The LOGIN hash is validated last, so a
        stale hash never counts against the user.

        Raises:
            LoginTemporarilyLocked: too many recent failures
            InvalidClientCredential: unknown username or verify returned False
            InvalidAccountStatus: account not ACTIVE
            AuthTokenError: hash rejected
        """
        with self.locks.guard(OperationClass.LOGIN, username):
            record = self.throttle.check(username)
            user = self.users.find_by_username(username)
            try:
                matched = verify(user)
            except AccountError:
                self.throttle.record_attempt(record, succeeded=False)
                raise

            if not matched or user is None:
                self.throttle.record_attempt(record, succeeded=False)
                raise InvalidClientCredential()
            if user.status != UserStatus.ACTIVE:
                self.throttle.record_attempt(record, succeeded=None)
                raise InvalidAccountStatus()
            self.throttle.record_attempt(record, succeeded=True)

        self.hashes.validate(hash, HashOperation.LOGIN)
        logger.info("User logged in: id=%d", user.id)
        return LoginResult(
            id=user.id,
            username=user.username,
            status=user.status,
            is_verified=user.verified,
            name=user.name,
        )

    def change_password(
        self,
        user_id: int,
        old_password: str,
        new_password: str,
        otp_key: str,
        hash: str,
    ) -> None:
        """
        Change the caller's password after checking the old one.

        Raises:
            ValidationError: missing field, unchanged password or policy violation
            AuthTokenError: hash rejected, or OTP key rejected or issued for
                another user
            UserNotFound: account missing
            IncorrectOldPassword: old password does not match
        """
        require(old_password=old_password, new_password=new_password, otp_key=otp_key, hash=hash)
        old_plain = self.passwords.decrypt(old_password)
        new_plain = self.passwords.decrypt(new_password)
        if new_plain == old_plain:
            raise ValidationError("PASSWORD_HAS_NOT_BEEN_CHANGED")
        check_password_policy(new_plain)
        self.hashes.validate(hash, HashOperation.PASSWORD)
        claims = self._verify_otp(otp_key)

        with self.locks.guard(
            OperationClass.CHANGE_PASSWORD, user_id, wait_for=(OperationClass.DISABLE,)
        ):
            user = self.users.find_by_id(user_id, status=UserStatus.ACTIVE)
            if user is None:
                raise UserNotFound()
            check_otp_owner(claims, user.username)
            if not check_password(old_plain, user.password_hash):
                raise IncorrectOldPassword()
            self.users.update(user_id, password_hash=hash_password(new_plain, self.bcrypt_cost))
            self.otp_keys.consume(claims)

        logger.info("Password changed: id=%d", user_id)

    def reset_password(self, username: str, new_password: str, otp_key: str, hash: str) -> None:
        """
        Replace a forgotten password. The OTP key proves ownership.

        Raises:
            ValidationError: missing field, policy violation, or new password
                equal to the current one
            AuthTokenError: hash or OTP key rejected
            UserNotFound: no account for username
        """
        require(username=username, new_password=new_password, otp_key=otp_key, hash=hash)
        new_plain = self.passwords.decrypt(new_password)
        check_password_policy(new_plain)
        self.hashes.validate(hash, HashOperation.PASSWORD)
        claims = self._verify_otp(otp_key, username)

        existing = self.users.find_by_username(username)
        if existing is None:
            raise UserNotFound()

        with self.locks.guard(
            OperationClass.CHANGE_PASSWORD, existing.id, wait_for=(OperationClass.DISABLE,)
        ):
            user = self.users.find_by_id(existing.id, status=UserStatus.ACTIVE)
            if user is None:
                raise UserNotFound()
            if check_password(new_plain, user.password_hash):
                raise ValidationError("PASSWORD_HAS_NOT_BEEN_CHANGED")
            self.users.update(user.id, password_hash=hash_password(new_plain, self.bcrypt_cost))
            self.otp_keys.consume(claims)

        self.throttle.clear(username)
        logger.info("Password reset: id=%d", existing.id)

    def check_exist(self, value: str) -> tuple[bool, bool]:
        """
        Returns:
            (exists, verified) for a username
        """
        require(value=value)
        user = self.users.find_by_username(value)
        if user is None:
            return False, False
        return True, user.verified

    def _verify_otp(self, otp_key: str, username: str | None = None) -> OtpClaims:
        claims = self.otp_keys.verify(otp_key)
        if username is not None:
            check_otp_owner(claims, username)
        return claims
