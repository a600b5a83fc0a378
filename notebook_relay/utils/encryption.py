"""Credential encryption utilities using Fernet symmetric encryption."""

import hashlib
import os
import threading
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from loguru import logger

from notebook_relay.core.environment import Environment


def _normalize_key(key: Optional[str | bytes]) -> str:
    """
    Normalize encryption key to string format.

    Args:
        key: Encryption key as string or bytes

    Returns:
        Key as string
    """
    if isinstance(key, bytes):
        return key.decode()
    elif isinstance(key, str):
        return key
    else:
        raise ValueError("Encryption key must be string or bytes")


class CredentialEncryption:
    """Encrypts and decrypts account credentials with Fernet."""

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Initialize encryption with key.

        Args:
            encryption_key: Base64-encoded Fernet key. If None, reads ENCRYPTION_KEY.

        Raises:
            ValueError: If encryption key is not provided or invalid
        """
        key = encryption_key or os.getenv("ENCRYPTION_KEY")
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY must be set in environment variables. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )

        try:
            self._key = _normalize_key(key)
            self._key_hash = hashlib.sha256(self._key.encode()).hexdigest()[:16]

            # New key first, old key (if any) only for decryption during rotation
            fernet_keys = [Fernet(self._key.encode())]
            old_key = os.getenv("ENCRYPTION_KEY_OLD")
            if old_key:
                try:
                    fernet_keys.append(Fernet(old_key.encode()))
                    logger.info("Old encryption key loaded for key rotation support")
                except ValueError as e:
                    logger.warning(f"Failed to load old encryption key: {e}")

            self._primary = fernet_keys[0]
            self.cipher = MultiFernet(fernet_keys)

            if not Environment.is_production():
                logger.debug(f"Credential encryption initialized (key hash: {self._key_hash})")
            else:
                logger.info("Credential encryption initialized successfully")
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {e}") from e

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a credential value.

        Args:
            plaintext: Value to encrypt

        Returns:
            Fernet token as string
        """
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """
        Decrypt a credential value.

        Args:
            token: Fernet token produced by ``encrypt``

        Returns:
            Decrypted value

        Raises:
            ValueError: If the token cannot be decrypted with any configured key
        """
        try:
            return self.cipher.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt credential (invalid key or corrupted data)") from e

    def needs_migration(self, token: str) -> bool:
        """Check whether a token was written with the old key."""
        try:
            self._primary.decrypt(token.encode())
            return False
        except InvalidToken:
            return True

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the current key."""
        return self.cipher.rotate(token.encode()).decode()


_encryption_instance: Optional[CredentialEncryption] = None
_encryption_lock = threading.Lock()


def get_encryption() -> CredentialEncryption:
    """
    Get the global encryption instance, rebuilt when ENCRYPTION_KEY changes.

    Returns:
        CredentialEncryption instance
    """
    global _encryption_instance

    current_key = os.getenv("ENCRYPTION_KEY")
    if _encryption_instance is not None and (
        not current_key or _normalize_key(current_key) == _encryption_instance._key
    ):
        return _encryption_instance

    with _encryption_lock:
        if _encryption_instance is None or (
            current_key and _normalize_key(current_key) != _encryption_instance._key
        ):
            _encryption_instance = CredentialEncryption()
        return _encryption_instance


def reset_encryption() -> None:
    """Drop the cached instance (used by tests)."""
    global _encryption_instance
    with _encryption_lock:
        _encryption_instance = None
