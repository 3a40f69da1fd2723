from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import DEFAULT_TITLE
from .ids import generate_message_id


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Record(BaseModel):
    # Persisted and wire form is camelCase; both spellings are accepted on input.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Message(_Record):
    id: str = Field(default_factory=generate_message_id)
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: str = Field(default_factory=now_iso)
    artifacts: Optional[list[Any]] = None
    search_results: Optional[list[Any]] = None


class Conversation(_Record):
    id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = []
    created_at: str = ""
    updated_at: str = ""
    pinned: bool = False
    space_id: Optional[str] = None
    space_name: Optional[str] = None
    system_prompt: Optional[str] = None


class ConversationSummary(_Record):
    """Lightweight metadata for the sidebar list."""

    id: str
    title: str
    pinned: bool = False
    message_count: int = 0
    preview: str = ""  # First ~80 chars of first user message
    space_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_conversation(cls, conv: Conversation) -> "ConversationSummary":
        preview = ""
        for m in conv.messages:
            if m.role == "user":
                preview = m.content[:80]
                break
        return cls(
            id=conv.id,
            title=conv.title,
            pinned=conv.pinned,
            message_count=len(conv.messages),
            preview=preview,
            space_id=conv.space_id,
            created_at=conv.created_at,
            updated_at=conv.updated_at,
        )
