from abc import ABC, abstractmethod

from .models import Conversation


class GatewayError(Exception):
    """A persistence command failed (I/O, transport, or malformed data)."""


class PersistenceGateway(ABC):
    """Durable storage for conversations.

    The lifecycle manager only ever calls these fire-and-forget; every failure
    must surface as :class:`GatewayError`.
    """

    @abstractmethod
    async def load_conversations(self) -> list[Conversation]:
        """Return every stored conversation, most relevant first."""
        ...

    @abstractmethod
    async def save_conversation(self, conversation: Conversation) -> None:
        """Upsert the full record keyed by ``conversation.id``."""
        ...

    @abstractmethod
    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        ...

    @abstractmethod
    async def pin_conversation(self, conversation_id: str, pinned: bool) -> None:
        ...

    async def aclose(self) -> None:
        """Release held resources (connections, handles)."""
        return None
