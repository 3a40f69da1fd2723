import asyncio
import logging
from typing import Optional

from .background import BackgroundCalls
from .gateway import PersistenceGateway
from .models import Conversation

logger = logging.getLogger(__name__)


class DebouncedSaveScheduler:
    """Coalesces bursts of saves into one write after a quiet period.

    One timer per scheduler, not per conversation: the most recent
    ``schedule()`` call wins and earlier snapshots are dropped.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        background: BackgroundCalls,
        delay_ms: int = 500,
    ):
        self._gateway = gateway
        self._background = background
        self._delay = delay_ms / 1000
        self._handle: Optional[asyncio.TimerHandle] = None
        self._snapshot: Optional[Conversation] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def pending_conversation_id(self) -> Optional[str]:
        return self._snapshot.id if self._snapshot is not None else None

    def schedule(self, conversation: Conversation) -> None:
        self.cancel()
        self._snapshot = conversation.model_copy(deep=True)
        self._handle = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def cancel(self) -> Optional[Conversation]:
        """Disarm the timer and return the snapshot it would have saved."""
        if self._handle is not None:
            self._handle.cancel()
        snapshot = self._snapshot
        self._handle = None
        self._snapshot = None
        return snapshot

    def discard(self, conversation_id: str) -> bool:
        """Drop the pending save if it belongs to *conversation_id*."""
        if self.pending_conversation_id != conversation_id:
            return False
        self.cancel()
        logger.debug("Dropped pending save for %s", conversation_id)
        return True

    def _fire(self) -> None:
        snapshot = self._snapshot
        self._handle = None
        self._snapshot = None
        if snapshot is None:
            return
        self._background.spawn(
            self._gateway.save_conversation(snapshot),
            f"save conversation {snapshot.id}",
        )

    async def flush(self) -> bool:
        """Write the pending snapshot now. Returns False if nothing was pending."""
        snapshot = self.cancel()
        if snapshot is None:
            return False
        await self._background.run(
            self._gateway.save_conversation(snapshot),
            f"save conversation {snapshot.id}",
        )
        return True
