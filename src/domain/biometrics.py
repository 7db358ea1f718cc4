"""
Biometric domain service - Device key registration and signature login.

A device registers an RSA public key for the caller. Signature login then
proves possession of the matching private key by signing the upper-cased
username. A user holds at most one ACTIVE registration: registering a new
key retires the previous one.

Login goes through AuthenticationService.authenticate, so a missing
registration or a bad signature counts against the same throttle as a
wrong password.
"""

import logging
from dataclasses import dataclass

from .authentication import AuthenticationService, LoginResult
from .exceptions import (
    AlreadyExists,
    BiometricKeyExists,
    BiometricNotFound,
    BiometricVerifyFailed,
    InProgress,
    ValidationError,
)
from .hashes import HashOperation, HashValidator
from .locks import AdvisoryLocks, OperationClass
from .passwords import require
from .ports import Biometric, BiometricRepository, SignatureVerifier, User

logger = logging.getLogger(__name__)

# Reasons recorded when a registration is retired
REASON_CHANGE_DEVICE = "BIOMETRIC_CHANGE_DEVICE"
REASON_CANCEL = "BIOMETRIC_CANCEL"


@dataclass
class BiometricService:
    """Domain service for biometric registrations."""

    biometrics: BiometricRepository
    signatures: SignatureVerifier
    authentication: AuthenticationService
    locks: AdvisoryLocks
    hashes: HashValidator

    def register(
        self,
        user_id: int,
        username: str,
        public_key: str,
        secret_key: str,
        device_id: str,
        hash: str,
    ) -> int:
        """
        Register a device key, retiring any previous registration.

        Returns:
            Id of the new registration

        Raises:
            ValidationError: missing field
            AuthTokenError: hash rejected
            BiometricKeyExists: public_key is already the active registration
            InProgress: a concurrent registration won the race
        """
        require(public_key=public_key, secret_key=secret_key, device_id=device_id, hash=hash)
        self.hashes.validate(hash, HashOperation.BIOMETRIC)

        with self.locks.guard(OperationClass.BIOMETRIC, user_id):
            active = self.biometrics.list_active(user_id)
            if any(b.public_key == public_key for b in active):
                raise BiometricKeyExists()
            for previous in active:
                self.biometrics.deactivate(previous.id, REASON_CHANGE_DEVICE)
                logger.info("Biometric retired: id=%d user=%d", previous.id, user_id)
            try:
                created = self.biometrics.insert(
                    Biometric(
                        id=0,
                        user_id=user_id,
                        username=username,
                        device_id=device_id,
                        public_key=public_key,
                        secret_key=secret_key,
                    )
                )
            except AlreadyExists as e:
                raise InProgress() from e

        logger.info("Biometric registered: id=%d user=%d", created.id, user_id)
        return created.id

    def query_status(
        self, user_id: int, public_key: str | None = None, device_id: str | None = None
    ) -> bool:
        """
        Whether the caller has an ACTIVE registration for public_key, or
        for device_id when no key is given.

        Raises:
            ValidationError: neither public_key nor device_id given
        """
        if not public_key and not device_id:
            raise ValidationError(detail="missing required field(s): public_key or device_id")
        active = self.biometrics.list_active(user_id)
        if public_key:
            return any(b.public_key == public_key for b in active)
        return any(b.device_id == device_id for b in active)

    def cancel(self, user_id: int, username: str, device_id: str, hash: str) -> None:
        """
        Retire the caller's registration on device_id.

        Raises:
            ValidationError: missing field
            AuthTokenError: hash rejected
            BiometricNotFound: no ACTIVE registration on that device
        """
        require(device_id=device_id, hash=hash)
        self.hashes.validate(hash, HashOperation.BIOMETRIC)

        with self.locks.guard(OperationClass.BIOMETRIC, user_id):
            biometric = self.biometrics.find_active(username, device_id)
            if biometric is None:
                raise BiometricNotFound()
            self.biometrics.deactivate(biometric.id, REASON_CANCEL)

        logger.info("Biometric cancelled: id=%d user=%d", biometric.id, user_id)

    def login(
        self, username: str, signature: str, hash: str, device_id: str | None = None
    ) -> LoginResult:
        """
        Log in with a device signature over the upper-cased username.

        Raises:
            ValidationError: missing field
            LoginTemporarilyLocked: too many recent failures
            BiometricNotFound: no ACTIVE registration (counts as a failure)
            BiometricVerifyFailed: signature rejected (counts as a failure)
            InvalidAccountStatus: account not ACTIVE
            AuthTokenError: hash rejected
        """
        require(signature=signature, username=username, hash=hash)

        def verify(user: User | None) -> bool:
            biometric = self.biometrics.find_active(username, device_id)
            if biometric is None:
                raise BiometricNotFound()
            if not self.signatures.verify(biometric.public_key, username.upper(), signature):
                raise BiometricVerifyFailed()
            return True

        return self.authentication.authenticate(username, hash, verify)
