"""AES encryption of file contents.

Ciphertext layout is ``IV (16 bytes) || AES-128-CBC(PKCS7(plaintext))``.
A fresh random IV is used for every call, so encrypting the same content
twice gives different output.
"""

import logging
import os
import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import CryptoError

logger = logging.getLogger(__name__)

KEY_LENGTH = 16
IV_LENGTH = 16
BLOCK_SIZE_BITS = 128


class AESCryptoService:
    """Symmetric content encryption with a 16 character key."""

    def validate_key(self, key: str) -> bool:
        """Check that a key is exactly 16 characters and 16 bytes in UTF-8."""
        valid = bool(key) and len(key) == KEY_LENGTH
        valid = valid and len(key.encode("utf-8")) == KEY_LENGTH
        if not valid:
            logger.warning(
                f"Invalid encryption key length: {len(key or '')} != {KEY_LENGTH}"
            )
        return valid

    def generate_key(self) -> str:
        """Generate a random key that passes :meth:`validate_key`."""
        # 12 random bytes give exactly 16 url-safe base64 characters
        return secrets.token_urlsafe(12)

    def _key_bytes(self, key: str, operation: str) -> bytes:
        if not self.validate_key(key):
            raise CryptoError(
                f"Invalid {operation} key, it must be {KEY_LENGTH} characters long",
                "invalid-key",
            )
        return key.encode("utf-8")

    def encrypt(self, content: bytes, key: str) -> bytes:
        """Encrypt content and prepend the random IV.

        Raises:
            CryptoError: If the key is invalid or encryption fails
        """
        key_bytes = self._key_bytes(key, "encryption")
        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
            padded = padder.update(content) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as e:
            raise CryptoError("Encryption failed", "encryption-failed", e) from e
        logger.debug(f"Encrypted {len(content)} bytes to {len(ciphertext) + IV_LENGTH}")
        return iv + ciphertext

    def decrypt(self, content: bytes, key: str) -> bytes:
        """Decrypt content produced by :meth:`encrypt`.

        Raises:
            CryptoError: If the key is invalid or the content is not valid
                ciphertext for this key
        """
        key_bytes = self._key_bytes(key, "decryption")
        if len(content) < IV_LENGTH * 2 or (len(content) - IV_LENGTH) % IV_LENGTH:
            raise CryptoError(
                "Content is not AES-CBC ciphertext", "decryption-failed"
            )
        iv, ciphertext = content[:IV_LENGTH], content[IV_LENGTH:]
        try:
            decryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except (ValueError, TypeError) as e:
            raise CryptoError("Decryption failed", "decryption-failed", e) from e
