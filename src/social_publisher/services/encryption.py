"""Encryption of OAuth tokens and client secrets at rest.

Fernet (AES-128-CBC + HMAC) with a single master key from configuration.
Ciphertexts are stored as text; plaintext only exists in process memory
at the point of use.
"""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from social_publisher.config import settings
from social_publisher.logging import get_logger

logger = get_logger(__name__)

_generated_dev_key: str | None = None


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""

    pass


def _get_master_key() -> bytes:
    """Return the configured master key.

    Outside production a random key is generated once per process when none
    is configured; anything encrypted with it is unreadable after restart.
    """
    global _generated_dev_key

    key = settings.encryption_master_key
    if not key:
        if settings.environment.lower() in ("production", "prod"):
            raise EncryptionError(
                "ENCRYPTION_MASTER_KEY is required in production. "
                "Generate one with: social-publisher keys generate"
            )
        if _generated_dev_key is None:
            _generated_dev_key = Fernet.generate_key().decode()
            logger.warning(
                "encryption_using_generated_key",
                hint="Set ENCRYPTION_MASTER_KEY so stored tokens survive restarts",
            )
        key = _generated_dev_key

    return key.encode()


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    """Get a cached Fernet instance with the master key."""
    try:
        return Fernet(_get_master_key())
    except EncryptionError:
        raise
    except (ValueError, TypeError) as e:
        raise EncryptionError(f"Invalid ENCRYPTION_MASTER_KEY: {e}") from e


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage.

    Raises:
        EncryptionError: If the token is empty or the key is unusable.
    """
    if not token:
        raise EncryptionError("Cannot encrypt empty token")
    return get_fernet().encrypt(token.encode("utf-8")).decode("ascii")


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token.

    Raises:
        EncryptionError: If the ciphertext is empty, corrupted, or was
            written with a different master key.
    """
    if not encrypted_token:
        raise EncryptionError("Cannot decrypt empty token")

    try:
        return get_fernet().decrypt(encrypted_token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise EncryptionError(
            "Failed to decrypt token: invalid key or corrupted data. "
            "This happens when ENCRYPTION_MASTER_KEY changed."
        ) from e
    except UnicodeError as e:
        raise EncryptionError(f"Failed to decrypt token: {e}") from e


def encrypt_optional(token: str | None) -> str | None:
    """Encrypt a token that may be absent (refresh tokens)."""
    return encrypt_token(token) if token else None


def decrypt_optional(encrypted_token: str | None) -> str | None:
    return decrypt_token(encrypted_token) if encrypted_token else None


def generate_master_key() -> str:
    """Generate a new Fernet-compatible master key."""
    return Fernet.generate_key().decode()
