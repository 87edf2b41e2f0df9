"""
Tests for credential secret encryption (encryption.py).
"""

import pytest
from cryptography.fernet import Fernet, InvalidToken

from opsdesk.utils.encryption import CredentialEncryption


class TestCredentialEncryption:
    """Test credential secret encryption/decryption."""

    def test_encrypt_decrypt_round_trip(self):
        encryption = CredentialEncryption(Fernet.generate_key())
        original = "s3cret-p@ss"

        encrypted = encryption.encrypt(original)

        assert encryption.enabled
        assert encrypted != original
        assert encryption.is_encrypted(encrypted)
        assert encryption.decrypt(encrypted) == original

    def test_accepts_string_key(self):
        key = Fernet.generate_key().decode()
        encryption = CredentialEncryption(key)

        assert encryption.decrypt(encryption.encrypt("abc")) == "abc"

    def test_invalid_key_raises(self):
        """A broken key must not silently fall back to plaintext."""
        with pytest.raises(ValueError):
            CredentialEncryption("not-a-fernet-key")

    def test_decrypt_plaintext_value(self):
        """Secrets stored before encryption was enabled come back unchanged."""
        encryption = CredentialEncryption(Fernet.generate_key())

        assert encryption.decrypt("old_plaintext_secret") == "old_plaintext_secret"

    def test_decrypt_with_wrong_key(self):
        encrypted = CredentialEncryption(Fernet.generate_key()).encrypt("secret")

        with pytest.raises(InvalidToken):
            CredentialEncryption(Fernet.generate_key()).decrypt(encrypted)

    def test_is_encrypted(self):
        assert not CredentialEncryption.is_encrypted("plaintext")
        assert not CredentialEncryption.is_encrypted("gAAAAAshort")
