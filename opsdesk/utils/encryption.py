"""
Credential secret encryption utilities.

Secrets in the credential vault are encrypted with Fernet (AES-128).
Requires ENCRYPTION_KEY environment variable (generate with: Fernet.generate_key()).
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from ..config import settings

logger = logging.getLogger(__name__)


class CredentialEncryption:
    """Handles encryption/decryption of credential secrets."""

    def __init__(self, key: Optional[str] = None):
        """Initialize with an explicit key, or the one from the environment."""
        self._cipher: Optional[Fernet] = None

        key = key or getattr(settings, 'encryption_key', None)

        if not key:
            logger.warning(
                "ENCRYPTION_KEY not configured - credential secrets will be stored in plaintext! "
                "Generate key with: Fernet.generate_key()"
            )
            return

        if isinstance(key, str):
            key = key.encode()

        # An invalid key is a configuration error and must not fall back to plaintext
        self._cipher = Fernet(key)
        logger.info("Credential encryption initialized successfully")

    @property
    def enabled(self) -> bool:
        return self._cipher is not None

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext secret.

        Returns:
            Encrypted secret (base64) or original plaintext if encryption disabled
        """
        if not self._cipher:
            logger.debug("Encryption not initialized, storing secret in plaintext")
            return plaintext

        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt an encrypted secret.

        Values that are not Fernet tokens were stored before encryption was
        enabled and are returned as-is.
        """
        if not self._cipher:
            return encrypted

        if not self.is_encrypted(encrypted):
            logger.debug("Secret is not a Fernet token, returning as-is")
            return encrypted

        try:
            return self._cipher.decrypt(encrypted.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt credential secret (key rotated?)")
            raise

    @staticmethod
    def is_encrypted(value: str) -> bool:
        """Fernet tokens start with "gAAAAA" after base64 encoding."""
        return value.startswith("gAAAAA") and len(value) > 50


# Global instance
_encryption_instance: Optional[CredentialEncryption] = None


def get_credential_encryption() -> CredentialEncryption:
    """Get singleton credential encryption instance."""
    global _encryption_instance
    if _encryption_instance is None:
        _encryption_instance = CredentialEncryption()
    return _encryption_instance
