"""User-facing notification channel.

Success/error toasts for conversation actions plus the transient "undo"
affordance offered after a soft delete. Everything published here is also
fanned out to SSE subscribers (see ``api/routes_notifications.py``).
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .events import Broadcaster

logger = logging.getLogger(__name__)

NotificationKind = Literal["success", "error", "info", "warning"]

MAX_NOTIFICATIONS = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Notification(BaseModel):
    id: str
    kind: NotificationKind
    title: str
    description: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)
    read: bool = False


class UndoAffordance(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: Optional[str] = None
    label: str = "Undo"
    duration_ms: int
    expires_at: str


class _PendingUndo:
    __slots__ = ("affordance", "action", "deadline")

    def __init__(self, affordance: UndoAffordance, action: Callable[[], bool], deadline: float):
        self.affordance = affordance
        self.action = action
        self.deadline = deadline


class NotificationCenter:
    def __init__(self, max_items: int = MAX_NOTIFICATIONS, clock: Callable[[], float] = time.monotonic):
        self._items: list[Notification] = []
        self._max_items = max_items
        self._undo: dict[str, _PendingUndo] = {}
        self._clock = clock
        self.events = Broadcaster(maxlen=max_items)

    # ── Notifications ──

    def notify(self, kind: NotificationKind, title: str, description: Optional[str] = None) -> Notification:
        notif = Notification(
            id=f"notif-{uuid.uuid4().hex[:12]}",
            kind=kind,
            title=title,
            description=description,
        )
        self._items = [notif, *self._items][: self._max_items]
        self.events.publish({"type": "notification", "notification": notif.model_dump()})
        return notif

    def success(self, title: str, description: Optional[str] = None) -> Notification:
        return self.notify("success", title, description)

    def error(self, title: str, description: Optional[str] = None) -> Notification:
        return self.notify("error", title, description)

    def info(self, title: str, description: Optional[str] = None) -> Notification:
        return self.notify("info", title, description)

    def warning(self, title: str, description: Optional[str] = None) -> Notification:
        return self.notify("warning", title, description)

    def list(self) -> list[Notification]:
        return list(self._items)

    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def mark_read(self, notif_id: str) -> bool:
        for i, n in enumerate(self._items):
            if n.id == notif_id:
                self._items[i] = n.model_copy(update={"read": True})
                return True
        return False

    def mark_all_read(self) -> None:
        self._items = [n.model_copy(update={"read": True}) for n in self._items]

    def remove(self, notif_id: str) -> bool:
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notif_id]
        return len(self._items) < before

    def clear(self) -> None:
        self._items = []

    # ── Undo affordances ──

    def offer_undo(
        self,
        title: str,
        action: Callable[[], bool],
        description: Optional[str] = None,
        duration_ms: int = 5000,
    ) -> UndoAffordance:
        """Show a transient undo action; *action* runs at most once, only before expiry."""
        self._prune_expired()
        affordance = UndoAffordance(
            id=f"undo-{uuid.uuid4().hex[:12]}",
            title=title,
            description=description,
            duration_ms=duration_ms,
            expires_at=datetime.fromtimestamp(
                time.time() + duration_ms / 1000, tz=timezone.utc
            ).isoformat(),
        )
        self._undo[affordance.id] = _PendingUndo(
            affordance, action, self._clock() + duration_ms / 1000
        )
        self.events.publish({"type": "undo", "undo": affordance.model_dump(by_alias=True)})
        return affordance

    def pending_undo(self) -> List[UndoAffordance]:
        self._prune_expired()
        return [p.affordance for p in self._undo.values()]

    def invoke_undo(self, affordance_id: str) -> bool:
        self._prune_expired()
        pending = self._undo.pop(affordance_id, None)
        if pending is None:
            logger.debug("Undo %s is unknown or expired", affordance_id)
            return False
        return bool(pending.action())

    def _prune_expired(self) -> None:
        now = self._clock()
        expired = [k for k, p in self._undo.items() if p.deadline <= now]
        for k in expired:
            del self._undo[k]
