"""
AES cipher adapter - Implements PayloadCipher protocol.

AES-CBC with PKCS7 padding over UTF-8 key and IV strings, base64 on the
wire. Clients encrypt replay hashes with the same parameters.
"""

import base64
import binascii

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

BLOCK_SIZE_BITS = 128


class AesCbcCipher:
    """
    Implements PayloadCipher protocol via cryptography's AES-CBC.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, key: str, iv: str) -> None:
        """
        Args:
            key: 16, 24 or 32 character key (AES-128/192/256)
            iv: 16 character initialisation vector

        Raises:
            ValueError: key or IV has the wrong length
        """
        self._key = key.encode()
        self._iv = iv.encode()
        if len(self._key) not in (16, 24, 32):
            raise ValueError("AES key must be 16, 24 or 32 bytes")
        if len(self._iv) != 16:
            raise ValueError("AES IV must be 16 bytes")

    def encrypt(self, plaintext: str) -> str:
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode()) + padder.finalize()
        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode()

    def decrypt(self, token: str) -> str:
        """
        Raises:
            ValueError: not base64, wrong block size, bad padding, or not UTF-8
        """
        try:
            ciphertext = base64.b64decode(token, validate=True)
        except binascii.Error as e:
            raise ValueError("hash is not valid base64") from e
        if not ciphertext or len(ciphertext) % (BLOCK_SIZE_BITS // 8):
            raise ValueError("hash has invalid length")
        decryptor = self._cipher().decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        # unpadder raises ValueError on bad padding; decode raises UnicodeDecodeError (a ValueError)
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode()

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))
