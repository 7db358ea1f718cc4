"""
Domain layer - Pure business logic with zero framework imports.

This package contains the concurrency-guarded mutation engine: the typed
value codec, advisory locks, the login throttle, the relationship state
machine, the replay-protected hash validator and the services that compose
them, biometric signature login included. It defines its own port
interfaces for infrastructure abstraction.
"""

from .authentication import AuthenticationService, LoginResult
from .biometrics import BiometricService
from .exceptions import (
    AccountError,
    AlreadyExists,
    AuthError,
    AuthTokenError,
    CodecError,
    ConflictError,
    InProgress,
    InvalidHash,
    LockTimeout,
    NotFoundError,
    PermissionDenied,
    TransientInfraError,
    ValidationError,
    WasBlocked,
)
from .hashes import HashClaims, HashOperation, HashValidator
from .locks import AdvisoryLocks, OperationClass
from .ports import (
    Biometric,
    BiometricRepository,
    Friend,
    FriendRepository,
    FriendStatus,
    KeyValueStore,
    NotificationPublisher,
    User,
    UserRepository,
    UserStatus,
)
from .relationships import FriendCheck, FriendService
from .throttle import LoginThrottle, LoginValidation
from .users import UserService

__all__ = [
    "AccountError",
    "AdvisoryLocks",
    "AlreadyExists",
    "AuthError",
    "AuthTokenError",
    "AuthenticationService",
    "Biometric",
    "BiometricRepository",
    "BiometricService",
    "CodecError",
    "ConflictError",
    "Friend",
    "FriendCheck",
    "FriendRepository",
    "FriendService",
    "FriendStatus",
    "HashClaims",
    "HashOperation",
    "HashValidator",
    "InProgress",
    "InvalidHash",
    "KeyValueStore",
    "LockTimeout",
    "LoginResult",
    "LoginThrottle",
    "LoginValidation",
    "NotFoundError",
    "NotificationPublisher",
    "OperationClass",
    "PermissionDenied",
    "TransientInfraError",
    "User",
    "UserRepository",
    "UserService",
    "UserStatus",
    "ValidationError",
    "WasBlocked",
]
