"""
Encryption of stored custom field values.

Values are Fernet tokens. Several keys can be configured: the first one
encrypts, every key can decrypt, so old values stay readable while keys are
rotated (see the ``rotate_custom_field_keys`` command).
"""

import base64
import hashlib
import logging
from typing import Iterable, List, Optional, Union

from cryptography.fernet import Fernet, MultiFernet
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .conf import get_setting

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes]

_encryptor: Optional["FieldEncryptor"] = None


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary secret string."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class FieldEncryptor:
    """Encrypts and decrypts field values with one or more Fernet keys."""

    def __init__(self, keys: Iterable[KeyMaterial]):
        fernets: List[Fernet] = []
        for key in keys:
            if isinstance(key, str):
                key = key.encode("utf-8")
            try:
                fernets.append(Fernet(key))
            except (ValueError, TypeError) as e:
                raise ImproperlyConfigured(f"Invalid custom field encryption key: {e}")

        if not fernets:
            raise ImproperlyConfigured("At least one custom field encryption key is required")

        self._fernet = MultiFernet(fernets)

    @classmethod
    def from_settings(cls) -> "FieldEncryptor":
        """Build from CUSTOM_FIELDS["ENCRYPTION_KEYS"], or derive from SECRET_KEY."""
        keys = list(get_setting("ENCRYPTION_KEYS"))
        if not keys:
            logger.debug("No custom field encryption keys configured, deriving one from SECRET_KEY")
            keys = [derive_key(settings.SECRET_KEY)]
        return cls(keys)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(str(plaintext).encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a stored token. Raises InvalidToken if it was tampered with."""
        return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the primary key."""
        return self._fernet.rotate(token.encode("ascii")).decode("ascii")


def get_encryptor() -> FieldEncryptor:
    """Return the process-wide encryptor built from settings."""
    global _encryptor
    if _encryptor is None:
        _encryptor = FieldEncryptor.from_settings()
    return _encryptor


def reset_encryptor() -> None:
    """Forget the cached encryptor, e.g. after settings change."""
    global _encryptor
    _encryptor = None
