"""Helpers for encrypting/decrypting credential material stored in the database."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config import settings
from utils.logger import get_logger

logger = get_logger("secrets")

_ENC_PREFIX = "enc:v1:"
_FERNET_CACHE: dict[str, Fernet] = {}


def _derive_fernet_key(raw_key: str) -> bytes:
    """Derive a Fernet-compatible key from arbitrary input."""
    # Fernet expects 32-byte URL-safe base64 data.
    digest = hashlib.sha256(raw_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_fernet(secret_key: Optional[str] = None) -> Optional[Fernet]:
    """Return a Fernet for the configured key, or None when no key is set."""
    key = secret_key if secret_key is not None else settings.APP_SECRETS_KEY
    if not key:
        return None
    fernet = _FERNET_CACHE.get(key)
    if fernet is None:
        fernet = Fernet(_derive_fernet_key(key))
        _FERNET_CACHE[key] = fernet
    return fernet


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value and value.startswith(_ENC_PREFIX))


def encrypt_secret(value: Optional[str], *, secret_key: Optional[str] = None) -> Optional[str]:
    """Encrypt a plaintext secret value. Returned unchanged when no key is configured."""
    if value is None or value == "":
        return None
    if is_encrypted(value):
        return value
    fernet = _get_fernet(secret_key)
    if fernet is None:
        return value
    token = fernet.encrypt(value.encode("utf-8")).decode("utf-8")
    return _ENC_PREFIX + token


def decrypt_secret(value: Optional[str], *, secret_key: Optional[str] = None) -> Optional[str]:
    """Decrypt a stored secret value. Plaintext values are returned unchanged."""
    if value is None or value == "":
        return None
    if not is_encrypted(value):
        return value
    fernet = _get_fernet(secret_key)
    if fernet is None:
        logger.warning("Encrypted secret cannot be decrypted without APP_SECRETS_KEY")
        return None
    token = value[len(_ENC_PREFIX) :]
    try:
        return fernet.decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.warning("Failed to decrypt stored secret: key mismatch or corrupted token")
        return None
