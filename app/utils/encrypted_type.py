"""SQLAlchemy TypeDecorator for transparent Fernet encryption of OAuth tokens."""

import base64
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy import Text, TypeDecorator

log = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _fernet_for(secret_key: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"subscout-google-token-v1",
        iterations=100_000,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret_key.encode())))


def _get_fernet() -> Fernet:
    """Derive a Fernet key from the app secret key."""
    from ..config import settings

    return _fernet_for(settings.secret_key)


class EncryptedText(TypeDecorator):
    """Transparently encrypts/decrypts text values stored in the database."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return _get_fernet().encrypt(value.encode()).decode()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return _get_fernet().decrypt(value.encode()).decode()
        except InvalidToken:
            # Plaintext tokens written before encryption was enabled
            log.debug("Stored token is not encrypted, returning as-is")
            return value
