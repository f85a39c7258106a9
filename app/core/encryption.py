"""Encryption utilities for guild payment secrets at rest.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC-SHA256).
The encryption key must be a 32-byte URL-safe base64-encoded string.

Generate a new key:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings

logger = logging.getLogger(__name__)


class SecretEncryption:
    """Handles encryption/decryption of per-guild Stripe secret keys.

    The encryption key is loaded from settings.token_encryption_key.
    If no key is configured, values pass through unchanged so local
    development works without a key.
    """

    def __init__(self, key: str | None = None) -> None:
        self._cipher: Fernet | None = None

        key = settings.token_encryption_key if key is None else key
        if key:
            try:
                self._cipher = Fernet(key.encode())
            except (ValueError, TypeError):
                logger.warning("token_encryption_key has invalid format, encryption disabled")
        elif not settings.debug:
            logger.warning(
                "SECURITY: token_encryption_key is not configured. "
                "Guild Stripe secret keys will be stored in plaintext."
            )

    @property
    def is_enabled(self) -> bool:
        """Check if encryption is properly configured."""
        return self._cipher is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string (returned unchanged when disabled)."""
        if not self._cipher:
            return plaintext

        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an encrypted string.

        Values stored before a key was configured are plaintext; those fail
        Fernet validation and are returned as-is.
        """
        if not self._cipher:
            return ciphertext

        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            return ciphertext


# Singleton instance for application-wide use
secret_encryption = SecretEncryption()
