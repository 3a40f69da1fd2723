import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def generate_id(prefix: str = "conv") -> str:
    """Return ``<prefix>-<epoch ms>-<6 random base36 chars>``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def generate_message_id() -> str:
    return generate_id("msg")
