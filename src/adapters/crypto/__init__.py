"""Crypto adapters - Hash cipher, password transport decryption and device signatures."""

from .aes import AesCbcCipher
from .rsa import PlaintextPasswordDecryptor, RsaPasswordDecryptor
from .signature import RsaSignatureVerifier

__all__ = [
    "AesCbcCipher",
    "PlaintextPasswordDecryptor",
    "RsaPasswordDecryptor",
    "RsaSignatureVerifier",
]
