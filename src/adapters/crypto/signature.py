"""
RSA signature verifier - Implements SignatureVerifier protocol.

Devices register the base64 body of an RSA public key (SubjectPublicKeyInfo)
without PEM armour, and sign with RSASSA-PKCS1-v1_5 over SHA-256.
"""

import base64
import binascii
import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)

PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"


def to_pem(public_key: str) -> bytes:
    """Wrap a bare base64 key body in PEM armour. Armoured keys pass through."""
    if PEM_HEADER in public_key:
        return public_key.encode()
    return f"{PEM_HEADER}\n{public_key.strip()}\n{PEM_FOOTER}\n".encode()


class RsaSignatureVerifier:
    """
    Implements SignatureVerifier protocol via cryptography's RSA.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def verify(self, public_key: str, message: str, signature: str) -> bool:
        try:
            key = serialization.load_pem_public_key(to_pem(public_key))
            raw = base64.b64decode(signature, validate=True)
        except (ValueError, binascii.Error, UnsupportedAlgorithm) as e:
            logger.warning("Unusable biometric key or signature: %s", e)
            return False
        if not isinstance(key, rsa.RSAPublicKey):
            logger.warning("Biometric key is not RSA")
            return False
        try:
            key.verify(raw, message.encode(), padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            return False
        return True
