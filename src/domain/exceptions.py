"""
Domain exceptions - Semantic error types for account mutations.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Every error carries a stable ``code`` that the API layer returns verbatim.

Families:
- ValidationError: missing or malformed input
- ConflictError: AlreadyExists, WasBlocked, InProgress, LockTimeout
- PermissionDenied: actor not authorized for the transition
- NotFoundError: ObjectNotFound, UserNotFound
- AuthError: credential and account-state failures during login
- AuthTokenError: replay hash and OTP key failures
- TransientInfraError: store or database unreachable
"""


class AccountError(Exception):
    """Base class for account domain errors."""

    code = "GENERAL_ERROR"

    def __init__(self, code: str | None = None, detail: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.detail = detail
        super().__init__(detail or self.code)


class CodecError(AccountError):
    """Value cannot be encoded, or a stored value is empty, untagged or malformed."""

    code = "CODEC_ERROR"


class ValidationError(AccountError):
    """Missing or malformed input."""

    code = "INVALID_PARAMETER"


class ConflictError(AccountError):
    """Mutation conflicts with existing state or a concurrent mutation."""

    code = "CONFLICT"


class AlreadyExists(ConflictError):
    code = "ALREADY_EXISTS"


class UserAlreadyExists(ConflictError):
    code = "USER_ALREADY_EXISTS"


class WasBlocked(ConflictError):
    code = "WAS_BLOCKED"


class BiometricKeyExists(ConflictError):
    """Public key is already the caller's active registration."""

    code = "BIOMETRIC_PUBLIC_KEY_EXISTED"


class InProgress(ConflictError):
    """Another request holds the advisory lock for this resource."""

    code = "INPROGESS"


class LockTimeout(ConflictError):
    """Advisory lock stayed busy past the maximum wait."""

    code = "LOCK_TIMEOUT"


class PermissionDenied(AccountError):
    code = "USER_DONT_HAVE_PERMISSION"


class NotFoundError(AccountError):
    code = "NOT_FOUND"


class ObjectNotFound(NotFoundError):
    code = "OBJECT_NOT_FOUND"


class BiometricNotFound(NotFoundError):
    code = "BIOMETRIC_NOT_FOUND"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"


class AuthError(AccountError):
    code = "UNAUTHORIZED"


class InvalidClientCredential(AuthError):
    code = "INVALID_CLIENT_CREDENTIAL"


class InvalidAccountStatus(AuthError):
    code = "INVALID_ACCOUNT_STATUS"


class LoginTemporarilyLocked(AuthError):
    code = "LOGIN_TEMPORARILY_LOCKED"


class IncorrectOldPassword(AuthError):
    code = "INCORRECT_OLD_PASSWORD"


class BiometricVerifyFailed(AuthError):
    """Device signature does not verify against the registered key."""

    code = "BIOMETRIC_VERIFY_FAILED"


class AuthTokenError(AccountError):
    code = "INVALID_TOKEN"


class InvalidHash(AuthTokenError):
    code = "INVALID_HASH"


class HashTooFresh(AuthTokenError):
    """Hash was issued less than the minimum age ago."""

    code = "TO_FAST"


class HashExpired(AuthTokenError):
    code = "HASH_EXPIRED"


class InvalidOtpKey(AuthTokenError):
    code = "INVALID_OTP_KEY"


class OtpKeyExpired(AuthTokenError):
    code = "OTP_KEY_EXPIRED"


class TransientInfraError(AccountError):
    """Key-value store or database unreachable."""

    code = "INTERNAL_ERROR"
