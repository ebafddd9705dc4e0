"""Encryption at rest for the promotion code display copy (Fernet)."""

from cryptography.fernet import Fernet, InvalidToken
import base64
import hashlib
import logging

from app.config import settings
from app.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


class EncryptionService:
    """Encrypts and decrypts the one plaintext-recoverable secret field."""

    def __init__(self, key: str = None):
        self._configured_key = key
        self._fernet = None

    @property
    def fernet(self) -> Fernet:
        """Lazy load encryption key and create Fernet instance."""
        if self._fernet is None:
            self._fernet = Fernet(self._get_encryption_key())
        return self._fernet

    def _get_encryption_key(self) -> bytes:
        """Get the key from the constructor, environment, or derive one for development."""
        if self._configured_key:
            return self._configured_key.encode()

        # Priority 1: Direct environment variable
        if settings.PROMOTION_CODE_ENCRYPTION_KEY:
            logger.info("Using promotion code encryption key from environment variable")
            return settings.PROMOTION_CODE_ENCRYPTION_KEY.encode()

        # Priority 2: Development mode - derive from SECRET_KEY
        if settings.ENVIRONMENT in ("development", "test"):
            logger.warning("Using development encryption key - not for production!")
            key_material = hashlib.sha256(settings.SECRET_KEY.encode()).digest()
            return base64.urlsafe_b64encode(key_material)

        raise ValueError(
            "No promotion code encryption key configured. "
            "Set PROMOTION_CODE_ENCRYPTION_KEY."
        )

    def encrypt_string(self, plaintext: str) -> str:
        """Encrypt a string value."""
        encrypted_bytes = self.fernet.encrypt(plaintext.encode())
        return encrypted_bytes.decode()

    def decrypt_string(self, ciphertext: str) -> str:
        """Decrypt a string value.

        A token that does not decrypt under the current key is a data
        integrity problem, not a caller mistake.
        """
        try:
            return self.fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Promotion code display copy could not be decrypted")
            raise InvalidStateError("Encrypted promotion code is unreadable", detail="Invalid session state")
