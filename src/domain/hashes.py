"""
Replay-protected hash - Encrypted proof that a client waited before calling.

Sensitive operations (login, register, password change, account deletion)
carry a "hash": an encrypted query-string payload

    type=<OPERATION>&key=<secret fingerprint>&timeStamp=<epoch millis>

The hash is accepted only if it decrypts, names the expected operation,
carries the configured fingerprint, is not from the future, is at least
min_age_ms old and, when max_age_ms is set, no older than that.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import HashExpired, HashTooFresh, InvalidHash
from .ports import PayloadCipher

logger = logging.getLogger(__name__)


class HashOperation(str, Enum):
    """Operation classes a hash can be issued for."""

    LOGIN = "LOGIN"
    REGISTER = "REGISTER"
    PASSWORD = "PASSWORD"
    DELETE_USER = "DELETE_USER"
    BIOMETRIC = "BIOMETRIC"


@dataclass(frozen=True)
class HashClaims:
    """Decrypted, validated hash contents."""

    operation: str
    fingerprint: str
    issued_at_ms: int


def parse_payload(payload: str) -> dict[str, str]:
    """Split "a=1&b=2" into a dict. Values may contain '='."""
    fields: dict[str, str] = {}
    for part in payload.split("&"):
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"malformed hash field: {part!r}")
        fields[key] = value
    return fields


@dataclass
class HashValidator:
    """
    Validates replay-protected hashes.

    Attributes:
        cipher: Symmetric cipher the client encrypted with
        fingerprint: Expected "key" field
        min_age_ms: Hashes younger than this are rejected as too fast
        max_age_ms: Hashes older than this are rejected (None disables)
    """

    cipher: PayloadCipher
    fingerprint: str
    min_age_ms: int = 30000
    max_age_ms: int | None = 300000
    clock_ms: Callable[[], int] = field(default=lambda: int(time.time() * 1000), repr=False)

    def validate(self, token: str, expected: HashOperation | str) -> HashClaims:
        """
        Decrypt and check a hash for an operation.

        Raises:
            InvalidHash: undecryptable, malformed, wrong operation or
                fingerprint, or issued in the future
            HashTooFresh: younger than min_age_ms
            HashExpired: older than max_age_ms
        """
        expected = expected.value if isinstance(expected, HashOperation) else expected
        try:
            fields = parse_payload(self.cipher.decrypt(token))
            claims = HashClaims(
                operation=fields["type"],
                fingerprint=fields["key"],
                issued_at_ms=int(fields["timeStamp"]),
            )
        except (ValueError, KeyError) as e:
            logger.warning("Rejected undecryptable hash for %s: %s", expected, e)
            raise InvalidHash() from e

        now = self.clock_ms()
        if (
            claims.operation != expected
            or claims.fingerprint != self.fingerprint
            or now < claims.issued_at_ms
        ):
            logger.warning(
                "Rejected hash: expected=%s got=%s issued_at=%d now=%d",
                expected,
                claims.operation,
                claims.issued_at_ms,
                now,
            )
            raise InvalidHash()

        age = now - claims.issued_at_ms
        if age < self.min_age_ms:
            raise HashTooFresh()
        if self.max_age_ms is not None and age > self.max_age_ms:
            raise HashExpired()

        logger.info("Hash accepted: operation=%s age_ms=%d", claims.operation, age)
        return claims

    def issue(self, operation: HashOperation | str, issued_at_ms: int | None = None) -> str:
        """Build an encrypted hash (client side of the protocol)."""
        operation = operation.value if isinstance(operation, HashOperation) else operation
        issued_at_ms = self.clock_ms() if issued_at_ms is None else issued_at_ms
        return self.cipher.encrypt(
            f"type={operation}&key={self.fingerprint}&timeStamp={issued_at_ms}"
        )
