"""
Encryption utilities for stored carrier secrets.

Tenant auth tokens are stored encrypted with Fernet (AES-128-CBC with HMAC)
under the key in ``TWILIO_ENCRYPTION_KEY``. Plaintext secrets are never logged.

Generate a key with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken

from messaging_engine.core.config import get_settings
from messaging_engine.core.exceptions import EncryptionError

logger = structlog.get_logger(__name__)


def _get_fernet(key: Optional[str] = None) -> Fernet:
    """
    Build a Fernet instance from the configured key.

    Raises:
        EncryptionError: If no key is configured or the key is malformed
    """
    key = key if key is not None else get_settings().twilio_encryption_key
    if not key:
        raise EncryptionError("Encryption key not configured")

    try:
        return Fernet(key.encode() if isinstance(key, str) else key)
    except (ValueError, TypeError) as e:
        logger.error("Invalid encryption key format", error=str(e))
        raise EncryptionError(f"Invalid encryption key format: {e}")


def is_encryption_configured() -> bool:
    """Check if an encryption key is configured."""
    return bool(get_settings().twilio_encryption_key)


def encrypt_secret(plaintext: str, key: Optional[str] = None) -> str:
    """
    Encrypt a carrier secret for storage.

    Args:
        plaintext: Secret to encrypt
        key: Fernet key; the configured key when omitted

    Returns:
        Fernet token as text

    Raises:
        EncryptionError: If the key is missing or encryption fails
    """
    if not plaintext:
        raise EncryptionError("Nothing to encrypt")

    fernet = _get_fernet(key)
    return fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str, key: Optional[str] = None) -> str:
    """
    Decrypt a stored carrier secret.

    Args:
        ciphertext: Stored Fernet token
        key: Fernet key; the configured key when omitted

    Returns:
        Plaintext secret

    Raises:
        EncryptionError: If the key is missing, the token is invalid, or the key does not match
    """
    if not ciphertext:
        raise EncryptionError("No stored secret to decrypt")

    fernet = _get_fernet(key)

    try:
        return fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error("Secret decryption failed - invalid token or wrong key")
        raise EncryptionError("Invalid encryption token - data may be corrupted or key mismatch")
