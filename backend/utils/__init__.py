from .logger import setup_logging, get_logger, fleet_logger
from .secrets import decrypt_secret, encrypt_secret, is_encrypted
from .utcnow import utcnow, unix_now, to_iso

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "fleet_logger",

    # Secrets
    "decrypt_secret",
    "encrypt_secret",
    "is_encrypted",

    # Clock
    "utcnow",
    "unix_now",
    "to_iso",
]
