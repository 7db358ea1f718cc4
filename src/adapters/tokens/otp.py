"""
OTP key verifier - Implements OtpKeyVerifier protocol.

An OTP key is an RS256 JWT issued by the OTP service once the user has
confirmed a one-time password. It is accepted only while its OTP record
still exists in the key-value store ("otp_key_storage_{id}"), so each key
is single-use: consume() expires the record after the guarded mutation.
"""

import logging
from enum import Enum
from pathlib import Path

import jwt

from src.domain.exceptions import InvalidOtpKey, OtpKeyExpired
from src.domain.ports import KeyValueStore, OtpClaims

logger = logging.getLogger(__name__)

OTP_KEY_STORAGE = "otp_key_storage"


class OtpTxType(str, Enum):
    REGISTER = "REGISTER"
    LOGIN = "LOGIN"
    RESET_PASSWORD = "RESET_PASSWORD"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    DELETE_USER = "DELETE_USER"


class OtpIdType(str, Enum):
    PHONE = "PHONE"
    EMAIL = "EMAIL"


class JwtOtpKeyVerifier:
    """
    Implements OtpKeyVerifier protocol via PyJWT.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, public_key: str | bytes, store: KeyValueStore) -> None:
        """
        Args:
            public_key: PEM public key the OTP service signs with
            store: Key-value store holding OTP records
        """
        self._public_key = public_key
        self._store = store

    @classmethod
    def from_pem_file(cls, path: str | Path, store: KeyValueStore) -> "JwtOtpKeyVerifier":
        return cls(Path(path).read_bytes(), store)

    def verify(self, otp_key: str) -> OtpClaims:
        try:
            payload = jwt.decode(otp_key, self._public_key, algorithms=["RS256"])
        except jwt.ExpiredSignatureError as e:
            raise OtpKeyExpired() from e
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected OTP key: %s", e)
            raise InvalidOtpKey() from e

        otp_id = payload.get("id")
        tx_type = payload.get("txType")
        id_type = payload.get("idType")
        if (
            not otp_id
            or tx_type not in {t.value for t in OtpTxType}
            or id_type not in {t.value for t in OtpIdType}
        ):
            raise InvalidOtpKey()
        if not self._store.get(self._key(otp_id)):
            logger.warning("OTP record missing or consumed: id=%s", otp_id)
            raise InvalidOtpKey()

        return OtpClaims(
            id=str(otp_id),
            username=payload.get("username"),
            tx_type=tx_type,
            id_type=id_type,
            extra={
                k: v
                for k, v in payload.items()
                if k not in {"id", "username", "txType", "idType"}
            },
        )

    def consume(self, claims: OtpClaims) -> None:
        logger.info("Consuming OTP key: id=%s", claims.id)
        self._store.set(self._key(claims.id), "", 1)

    @staticmethod
    def _key(otp_id: str) -> str:
        return f"{OTP_KEY_STORAGE}_{otp_id}"
