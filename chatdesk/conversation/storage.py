import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..config import get_config_dir
from .gateway import GatewayError, PersistenceGateway
from .models import Conversation, now_iso

logger = logging.getLogger(__name__)


def default_conversations_file() -> Path:
    return get_config_dir() / "conversations.json"


class JsonFileGateway(PersistenceGateway):
    """Stores every conversation in a single ``{"conversations": [...]}`` file.

    Blocking file I/O runs in a worker thread; commands are serialized so a
    read-modify-write never interleaves with another.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_conversations_file()
        self._lock = asyncio.Lock()

    # ---- File helpers (run in a worker thread) ----

    def _read(self) -> list[Conversation]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [Conversation(**item) for item in data.get("conversations", [])]
        except OSError as e:
            raise GatewayError(f"Failed to read conversations: {e}") from e
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            raise GatewayError(f"Failed to parse conversations: {e}") from e

    def _write(self, conversations: list[Conversation]) -> None:
        tmp_path = self.path.with_suffix(".json.tmp")
        payload = {"conversations": [c.to_record() for c in conversations]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            tmp_path.replace(self.path)
        except OSError as e:
            raise GatewayError(f"Failed to write conversations: {e}") from e

    def _update(self, conversation_id: str, **changes) -> None:
        conversations = self._read()
        for i, conv in enumerate(conversations):
            if conv.id == conversation_id:
                conversations[i] = conv.model_copy(update={**changes, "updated_at": now_iso()})
                break
        else:
            logger.debug("No stored conversation %s to update", conversation_id)
            return
        self._write(conversations)

    def _upsert(self, conversation: Conversation) -> None:
        conversations = self._read()
        for i, conv in enumerate(conversations):
            if conv.id == conversation.id:
                conversations[i] = conversation
                break
        else:
            conversations.append(conversation)
        self._write(conversations)

    def _delete(self, conversation_id: str) -> None:
        conversations = self._read()
        remaining = [c for c in conversations if c.id != conversation_id]
        if len(remaining) < len(conversations):
            self._write(remaining)

    # ---- Gateway commands ----

    async def load_conversations(self) -> list[Conversation]:
        async with self._lock:
            conversations = await asyncio.to_thread(self._read)
        # Pinned first, then most recently updated
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        conversations.sort(key=lambda c: c.pinned, reverse=True)
        return conversations

    async def save_conversation(self, conversation: Conversation) -> None:
        async with self._lock:
            await asyncio.to_thread(self._upsert, conversation)

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, conversation_id, title=title)

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._delete, conversation_id)

    async def pin_conversation(self, conversation_id: str, pinned: bool) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, conversation_id, pinned=pinned)
