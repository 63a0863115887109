"""
Token and signing-key encryption service using Fernet symmetric encryption.
"""

import base64
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings
from services.errors import ConfigurationError


class TokenDecryptionError(ConfigurationError):
    """Raised when a stored blob cannot be decrypted with the configured key."""


def _get_fernet() -> Fernet:
    """Get Fernet instance from encryption key."""
    key = settings.ENCRYPTION_KEY
    if not key:
        raise ConfigurationError("ENCRYPTION_KEY is not configured")

    # If key is not 32 bytes, derive a key using PBKDF2
    if len(key) != 32:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"social_importer_salt",
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(key.encode()))
    else:
        key = base64.urlsafe_b64encode(key.encode())

    return Fernet(key)


def encrypt_token(token: str) -> str:
    """
    Encrypt a token or signing key for storage.

    Args:
        token: Plain text secret

    Returns:
        Base64-encoded encrypted blob
    """
    fernet = _get_fernet()
    encrypted = fernet.encrypt(token.encode())
    return encrypted.decode()


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt an encrypted blob.

    Raises:
        TokenDecryptionError: blob is empty, malformed, or was encrypted with another key
    """
    if not encrypted_token:
        raise TokenDecryptionError("Encrypted value is empty")
    fernet = _get_fernet()
    try:
        decrypted = fernet.decrypt(encrypted_token.encode())
    except InvalidToken as exc:
        raise TokenDecryptionError("Invalid encrypted value or wrong encryption key") from exc
    try:
        return decrypted.decode()
    except UnicodeDecodeError as exc:
        raise TokenDecryptionError("Decrypted value is not valid UTF-8") from exc
