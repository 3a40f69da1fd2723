"""At-rest encryption for secrets stored in ``config.json``.

Values are encrypted with Fernet from the ``cryptography`` library and stored
as ``ENC:<token>``. Anything without the prefix is treated as plaintext, so a
config written before a secret was added migrates on the next save.

The key lives next to the config (``<config dir>/.key``) but in its own file
with owner-only permissions.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from . import config

logger = logging.getLogger(__name__)

_ENC_PREFIX = "ENC:"

_fernet: Optional[Fernet] = None


def set_strict_permissions(filepath: Path) -> None:
    """chmod 600 *filepath*; failures are logged, never raised."""
    try:
        os.chmod(str(filepath), 0o600)
    except FileNotFoundError:
        logger.warning("Cannot set permissions: %s does not exist", filepath)
    except OSError as e:
        logger.warning("Failed to set permissions on %s: %s", filepath, e)


def _key_file() -> Path:
    return config.get_config_dir() / ".key"


def _get_or_create_key() -> bytes:
    key_file = _key_file()
    key_file.parent.mkdir(parents=True, exist_ok=True)

    if key_file.exists():
        key = key_file.read_bytes().strip()
        try:
            Fernet(key)
            return key
        except ValueError:
            logger.warning("Existing key file %s is invalid, generating a new one", key_file)

    key = Fernet.generate_key()
    key_file.write_bytes(key)
    set_strict_permissions(key_file)
    logger.info("Generated new encryption key at %s", key_file)
    return key


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        _fernet = Fernet(_get_or_create_key())
    return _fernet


def reset_key_cache() -> None:
    global _fernet
    _fernet = None


def is_encrypted(value: str) -> bool:
    return value.startswith(_ENC_PREFIX)


def encrypt_value(plaintext: str) -> str:
    if not plaintext or is_encrypted(plaintext):
        return plaintext
    token = _get_fernet().encrypt(plaintext.encode("utf-8"))
    return _ENC_PREFIX + token.decode("ascii")


def decrypt_value(ciphertext: str) -> str:
    """Decrypt an ``ENC:`` value.

    Plaintext passes through unchanged. A value that cannot be decrypted (key
    rotated, file corrupted) comes back as ``""`` with a warning, so the user
    can re-enter it in Settings.
    """
    if not ciphertext or not is_encrypted(ciphertext):
        return ciphertext
    token = ciphertext[len(_ENC_PREFIX):]
    try:
        return _get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.warning("Failed to decrypt a config value (key may have changed)")
        return ""
