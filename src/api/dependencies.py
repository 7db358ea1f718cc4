"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.

Long-lived resources (connection pool, key-value store, key material) are
created once in the application lifespan and stored on app.state; services
are cheap dataclasses assembled per request from those resources.
"""

from dataclasses import dataclass

from fastapi import Header, Request
from psycopg_pool import ConnectionPool

from src.adapters.crypto.signature import RsaSignatureVerifier
from src.adapters.messaging.console import ConsoleNotificationPublisher
from src.adapters.repository.postgres import (
    PostgresBiometricRepository,
    PostgresFriendRepository,
    PostgresUserRepository,
)
from src.config.settings import Settings, get_settings
from src.domain.authentication import AuthenticationService
from src.domain.biometrics import BiometricService
from src.domain.hashes import HashValidator
from src.domain.locks import AdvisoryLocks
from src.domain.ports import KeyValueStore
from src.domain.relationships import FriendService
from src.domain.throttle import LoginThrottle
from src.domain.users import UserService

# Module-level singletons - both adapters are stateless
_publisher = ConsoleNotificationPublisher()
_signatures = RsaSignatureVerifier()


@dataclass(frozen=True)
class Caller:
    """Authenticated caller, as asserted by the upstream gateway."""

    id: int
    username: str
    name: str


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_store(request: Request) -> KeyValueStore:
    """Get the key-value store created during lifespan startup."""
    return request.app.state.store


def get_publisher() -> ConsoleNotificationPublisher:
    """Get console notification publisher (singleton)."""
    return _publisher


def get_locks(request: Request) -> AdvisoryLocks:
    settings = get_settings()
    return AdvisoryLocks(
        store=get_store(request),
        ttl_ms=settings.lock_ttl_ms,
        poll_interval_ms=settings.lock_poll_interval_ms,
        poll_max_interval_ms=settings.lock_poll_max_interval_ms,
        max_wait_ms=settings.lock_max_wait_ms,
    )


def get_hash_validator(request: Request) -> HashValidator:
    settings = get_settings()
    return HashValidator(
        cipher=request.app.state.hash_cipher,
        fingerprint=settings.hash_key_fingerprint,
        min_age_ms=settings.hash_min_age_ms,
        max_age_ms=settings.hash_max_age_ms,
    )


def get_friend_service(request: Request) -> FriendService:
    """Create relationship service with injected dependencies."""
    pool = get_pool(request)
    return FriendService(
        users=PostgresUserRepository(pool),
        friends=PostgresFriendRepository(pool),
        locks=get_locks(request),
        publisher=get_publisher(),
    )


def get_authentication_service(request: Request) -> AuthenticationService:
    """
    Create authentication service with injected dependencies.

    Wires together the repository, store-backed locks and throttle, the
    hash validator and key material from app state.
    """
    settings: Settings = get_settings()
    store = get_store(request)
    return AuthenticationService(
        users=PostgresUserRepository(get_pool(request)),
        locks=get_locks(request),
        throttle=LoginThrottle(
            store=store,
            threshold=settings.login_lockout_threshold,
            window_ms=settings.login_lockout_window_ms,
            record_ttl_ms=settings.login_record_ttl_ms,
        ),
        hashes=get_hash_validator(request),
        otp_keys=request.app.state.otp_keys,
        passwords=request.app.state.passwords,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_user_service(request: Request) -> UserService:
    """Create user service with injected dependencies."""
    return UserService(
        users=PostgresUserRepository(get_pool(request)),
        friends=get_friend_service(request),
        locks=get_locks(request),
        hashes=get_hash_validator(request),
        otp_keys=request.app.state.otp_keys,
        passwords=request.app.state.passwords,
        publisher=get_publisher(),
    )


def get_biometric_service(request: Request) -> BiometricService:
    """
    Create biometric service with injected dependencies.

    Signature login reuses the authentication service's throttle.
    """
    return BiometricService(
        biometrics=PostgresBiometricRepository(get_pool(request)),
        signatures=_signatures,
        authentication=get_authentication_service(request),
        locks=get_locks(request),
        hashes=get_hash_validator(request),
    )


def get_caller(
    caller_id: int = Header(..., alias="X-User-Id"),
    caller_username: str = Header(..., alias="X-Username"),
    caller_name: str = Header("", alias="X-User-Name"),
) -> Caller:
    """
    Identity of the caller from gateway headers.

    Token verification happens upstream; the gateway forwards the verified
    user id and username. Missing headers yield 422.
    """
    return Caller(id=caller_id, username=caller_username, name=caller_name)

