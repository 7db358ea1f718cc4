"""
RSA password decryptor - Implements PasswordDecryptor protocol.

Clients encrypt passwords with the service's RSA public key (PKCS#1 v1.5).
Payloads too large for one RSA block are split into 100 character chunks
and sent as "mutipart.<b64>.<b64>...".
"""

import base64
import binascii
import logging
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from src.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

MULTIPART_PREFIX = "mutipart"
MULTIPART_CHUNK = 100


class RsaPasswordDecryptor:
    """
    Implements PasswordDecryptor protocol via cryptography's RSA.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._private_key = private_key

    @classmethod
    def from_pem_file(cls, path: str | Path) -> "RsaPasswordDecryptor":
        key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError(f"{path} is not an RSA private key")
        return cls(key)

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a single-block or multipart ciphertext.

        Raises:
            ValidationError: ciphertext cannot be decrypted
        """
        try:
            if ciphertext.startswith(MULTIPART_PREFIX):
                parts = ciphertext.split(".")[1:]
                return "".join(self._decrypt_block(p) for p in parts)
            return self._decrypt_block(ciphertext)
        except (ValueError, binascii.Error) as e:
            logger.warning("Password decryption failed: %s", e)
            raise ValidationError("INVALID_PASSWORD_ENCRYPTION") from e

    def _decrypt_block(self, block: str) -> str:
        raw = base64.b64decode(block, validate=True)
        return self._private_key.decrypt(raw, padding.PKCS1v15()).decode()


def rsa_encrypt(public_key: rsa.RSAPublicKey, data: str) -> str:
    """Client-side encryption, splitting into parts when data exceeds one block."""
    max_block = public_key.key_size // 8 - 11
    if len(data.encode()) <= max_block:
        return _encrypt_block(public_key, data)
    parts = [
        _encrypt_block(public_key, data[i : i + MULTIPART_CHUNK])
        for i in range(0, len(data), MULTIPART_CHUNK)
    ]
    return ".".join([MULTIPART_PREFIX, *parts])


def _encrypt_block(public_key: rsa.RSAPublicKey, data: str) -> str:
    return base64.b64encode(public_key.encrypt(data.encode(), padding.PKCS1v15())).decode()


class PlaintextPasswordDecryptor:
    """Pass-through used when password transport encryption is disabled."""

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext
