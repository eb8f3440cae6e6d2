"""
Encryption manager for field-level encryption of stored message text.
"""

import base64
import logging
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

MASTER_KEY_ENV = "SUPPORT_CHAT_MASTER_KEY"


class EncryptionError(Exception):
    """Ciphertext could not be decrypted with the available keys."""

    pass


class EncryptionManager:
    """Manages field-level encryption for message content."""

    def __init__(self, master_key: str | None = None, key_id: str = "primary_v1"):
        self._encryption_keys: dict[str, Fernet] = {}
        self._master_key = master_key or os.environ.get(MASTER_KEY_ENV)

        if not self._master_key:
            # Ephemeral key: data written now is unreadable after a restart
            logger.warning(
                f"No {MASTER_KEY_ENV} configured, generating an ephemeral master key"
            )
            self._master_key = base64.urlsafe_b64encode(os.urandom(32)).decode()

        self._current_key_id = key_id
        self._encryption_keys[key_id] = Fernet(self._derive_key(key_id))

    def _derive_key(self, key_id: str) -> bytes:
        """Derive encryption key from master key and key ID."""
        # Use key_id as salt for key derivation
        salt = key_id.encode("utf-8").ljust(16, b"0")[:16]

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )

        return base64.urlsafe_b64encode(kdf.derive(self._master_key.encode()))

    @property
    def current_key_id(self) -> str:
        return self._current_key_id

    def encrypt(self, data: str) -> tuple[str, str]:
        """
        Encrypt data and return (encrypted_data, key_id).

        Returns:
            Tuple of (fernet_token, key_id_used)
        """
        fernet = self._encryption_keys[self._current_key_id]
        token = fernet.encrypt(data.encode("utf-8")).decode("utf-8")
        return token, self._current_key_id

    def decrypt(self, encrypted_data: str, key_id: str) -> str:
        """
        Decrypt data using the specified key ID.

        Raises:
            EncryptionError: If the token was not produced by this master key
        """
        if key_id not in self._encryption_keys:
            self._encryption_keys[key_id] = Fernet(self._derive_key(key_id))

        try:
            decrypted = self._encryption_keys[key_id].decrypt(
                encrypted_data.encode("utf-8")
            )
        except InvalidToken as e:
            raise EncryptionError(f"Cannot decrypt data with key {key_id}") from e

        return decrypted.decode("utf-8")

    def rotate_key(self, new_key_id: str) -> None:
        """
        Use a new derived key for future encryptions.

        Existing rows keep their key id and stay readable.
        """
        self._encryption_keys[new_key_id] = Fernet(self._derive_key(new_key_id))
        self._current_key_id = new_key_id
