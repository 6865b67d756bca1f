"""
Field-level encryption for contact PII.

Columns declared as EncryptedString are Fernet-encrypted on write and
decrypted on read: client primary contact email/phone and vendor contact
email. Values written before encryption was enabled are returned as-is.
"""

import base64
import hashlib
from functools import lru_cache

import structlog
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import String, TypeDecorator

from complianceos.config import settings

logger = structlog.get_logger(__name__)


def _as_fernet_key(secret: str) -> bytes:
    """Use the secret directly if it is a Fernet key, else derive one with SHA-256."""
    try:
        Fernet(secret.encode())
        return secret.encode()
    except ValueError:
        return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


@lru_cache(maxsize=1)
def get_cipher() -> Fernet:
    secret = settings.encryption_key
    if not secret:
        logger.warning("encryption_key_not_set", fallback="jwt_secret")
        secret = settings.jwt_secret
    return Fernet(_as_fernet_key(secret))


def encrypt(value: str) -> str:
    return get_cipher().encrypt(value.encode()).decode()


def decrypt(value: str) -> str:
    try:
        return get_cipher().decrypt(value.encode()).decode()
    except InvalidToken:
        logger.warning("decryption_failed", hint="key mismatch or plaintext value")
        return value


class EncryptedString(TypeDecorator):
    """String column stored as Fernet ciphertext. Empty strings stay empty."""

    impl = String
    cache_ok = True

    def __init__(self, length: int = 500, **kwargs):
        super().__init__(length=length, **kwargs)

    def process_bind_param(self, value, dialect):
        return encrypt(value) if value else value

    def process_result_value(self, value, dialect):
        return decrypt(value) if value else value
