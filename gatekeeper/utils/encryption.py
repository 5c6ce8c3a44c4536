"""
Field-level encryption for identity secrets.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC).
Key is derived from the webhook secret (or bot token) + a salt.
"""

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..core.config import get_settings

logger = logging.getLogger(__name__)

# Lazy-loaded key
_fernet_instance: Optional[Fernet] = None


def _is_production() -> bool:
    return get_settings().environment.lower() == "production"


def _get_fernet() -> Optional[Fernet]:
    """Get or create a Fernet instance from configured key material."""
    global _fernet_instance
    if _fernet_instance is not None:
        return _fernet_instance

    settings = get_settings()
    secret = settings.telegram_webhook_secret or settings.telegram_bot_token
    if not secret:
        msg = "No TELEGRAM_WEBHOOK_SECRET or TELEGRAM_BOT_TOKEN set, encryption unavailable"
        if _is_production():
            raise RuntimeError(msg)
        logger.warning(msg)
        return None

    if settings.encryption_salt:
        salt = settings.encryption_salt.encode()
    else:
        salt = b"gatekeeper_field_encryption_v1"
        if _is_production():
            logger.warning(
                "ENCRYPTION_SALT not set, using default salt. "
                "Set ENCRYPTION_SALT to a unique random value for production."
            )

    # Derive a 32-byte key from the secret using PBKDF2
    key_bytes = hashlib.pbkdf2_hmac("sha256", secret.encode(), salt, iterations=100_000)
    _fernet_instance = Fernet(base64.urlsafe_b64encode(key_bytes))
    return _fernet_instance


def reset_encryption_key() -> None:
    """Forget the cached key (after settings change, e.g. in tests)."""
    global _fernet_instance
    _fernet_instance = None


def encrypt_field(plaintext: Optional[str]) -> Optional[str]:
    """Encrypt a string field. Returns base64-encoded ciphertext."""
    if not plaintext:
        return plaintext

    fernet = _get_fernet()
    if fernet is None:
        return plaintext  # Development fallback: store unencrypted

    token = fernet.encrypt(plaintext.encode("utf-8"))
    return base64.urlsafe_b64encode(token).decode("ascii")


def decrypt_field(ciphertext: Optional[str]) -> Optional[str]:
    """Decrypt a value produced by encrypt_field()."""
    if not ciphertext:
        return ciphertext

    fernet = _get_fernet()
    if fernet is None or not is_encrypted(ciphertext):
        return ciphertext

    try:
        token = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
        return fernet.decrypt(token).decode("utf-8")
    except InvalidToken:
        logger.error("Stored secret could not be decrypted with the current key")
        return None


def is_encrypted(value: str) -> bool:
    """Check if a value appears to be encrypted (heuristic)."""
    if not value:
        return False
    try:
        decoded = base64.urlsafe_b64decode(value.encode("ascii"))
        # Fernet tokens start with version byte 0x80
        return len(decoded) > 0 and decoded[0] == 0x80
    except (ValueError, UnicodeEncodeError):
        return False
