import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .background import BackgroundCalls
from .gateway import PersistenceGateway
from .models import Conversation

logger = logging.getLogger(__name__)


@dataclass
class PendingDelete:
    conversation: Conversation
    index: int  # position in the list when it was deleted
    handle: asyncio.TimerHandle


class SoftDeleteRegistry:
    """Per-conversation countdowns that issue the real backend delete.

    While armed, the registry owns the deleted record. The backend delete
    command is only ever sent from here, after the entry has been removed.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        background: BackgroundCalls,
        window_ms: int = 5000,
    ):
        self._gateway = gateway
        self._background = background
        self._window = window_ms / 1000
        self._pending: dict[str, PendingDelete] = {}

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._pending

    def get(self, conversation_id: str) -> Optional[PendingDelete]:
        return self._pending.get(conversation_id)

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def arm(
        self,
        conversation: Conversation,
        index: int,
        on_expire: Optional[Callable[[str], None]] = None,
    ) -> PendingDelete:
        self.cancel(conversation.id)
        handle = asyncio.get_running_loop().call_later(
            self._window, self._expire, conversation.id, on_expire
        )
        entry = PendingDelete(conversation=conversation, index=index, handle=handle)
        self._pending[conversation.id] = entry
        return entry

    def cancel(self, conversation_id: str) -> Optional[PendingDelete]:
        """Stop the countdown and hand the snapshot back; no-op if not pending."""
        entry = self._pending.pop(conversation_id, None)
        if entry is not None:
            entry.handle.cancel()
        return entry

    def _expire(self, conversation_id: str, on_expire: Optional[Callable[[str], None]]) -> None:
        if self._pending.pop(conversation_id, None) is None:
            return
        logger.info("Undo window elapsed, deleting conversation %s", conversation_id)
        if on_expire is not None:
            on_expire(conversation_id)
        self._background.spawn(
            self._gateway.delete_conversation(conversation_id),
            f"delete conversation {conversation_id}",
        )

    async def commit_all(self) -> int:
        """Delete every pending conversation now, ending their undo windows."""
        ids = list(self._pending)
        for conversation_id in ids:
            self.cancel(conversation_id)
            await self._background.run(
                self._gateway.delete_conversation(conversation_id),
                f"delete conversation {conversation_id}",
            )
        return len(ids)
