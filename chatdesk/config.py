import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


DEFAULT_TITLE = "New Chat"


class ConversationConfig(BaseModel):
    default_title: str = DEFAULT_TITLE
    title_max_words: int = Field(default=6, ge=1)
    save_debounce_ms: int = Field(default=500, ge=0)   # quiet period before a save
    undo_window_ms: int = Field(default=5000, ge=0)    # soft-delete grace period
    restore_original_position: bool = True  # False = undo prepends


class StorageConfig(BaseModel):
    backend: Literal["file", "http"] = "file"
    base_url: str = ""          # e.g. http://127.0.0.1:9000/api (http backend only)
    api_token: str = ""         # Optional bearer token for the http backend
    timeout_seconds: float = 10.0


class AppConfig(BaseModel):
    conversations: ConversationConfig = ConversationConfig()
    storage: StorageConfig = StorageConfig()
    language: str = "en"


_config_dir = Path(os.environ.get("CHATDESK_CONFIG_DIR", Path.home() / ".chatdesk"))
_config_file = _config_dir / "config.json"

# Secrets encrypted at rest (dot-path: "section.field")
SENSITIVE_FIELDS: list[str] = [
    "storage.api_token",
]


def get_config_dir() -> Path:
    return _config_dir


def _ensure_config_dir() -> None:
    _config_dir.mkdir(parents=True, exist_ok=True)


def _encrypt_sensitive(data: dict) -> dict:
    from .crypto import encrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = encrypt_value(data[section][field])
    return data


def _decrypt_sensitive(data: dict) -> dict:
    from .crypto import decrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = decrypt_value(data[section][field])
    return data


def _needs_migration(data: dict) -> bool:
    """Return True if any sensitive field is still stored as plaintext."""
    from .crypto import is_encrypted

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        val = data.get(section, {}).get(field, "")
        if val and not is_encrypted(val):
            return True
    return False


def load_config() -> AppConfig:
    _ensure_config_dir()
    if not _config_file.exists():
        return AppConfig()
    try:
        data = json.loads(_config_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Failed to read %s, using defaults: %s", _config_file, e)
        return AppConfig()

    migrate = _needs_migration(data)
    config = AppConfig(**_decrypt_sensitive(data))

    if migrate:
        logger.info("Migrating config to encrypted storage")
        save_config(config)
    return config


def save_config(config: AppConfig) -> None:
    from .crypto import set_strict_permissions

    _ensure_config_dir()
    data = _encrypt_sensitive(config.model_dump())
    _config_file.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    set_strict_permissions(_config_file)


_current_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _current_config
    if _current_config is None:
        _current_config = load_config()
    return _current_config


def update_config(config: AppConfig) -> AppConfig:
    global _current_config
    save_config(config)
    _current_config = config
    return _current_config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads disk."""
    global _current_config
    _current_config = None
