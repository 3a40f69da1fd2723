"""Conversation lifecycle: the authoritative in-memory list and active pointer.

Every mutation happens synchronously on the event loop thread; persistence is
fire-and-forget through the debounced saver, the soft-delete registry, or a
direct background gateway call.
"""

import logging
from typing import Callable, Iterable, Optional

from ..config import ConversationConfig
from ..notifications import NotificationCenter, UndoAffordance
from .background import BackgroundCalls
from .debounce import DebouncedSaveScheduler
from .gateway import GatewayError, PersistenceGateway
from .heuristics import ConversationContext
from .ids import generate_id
from .models import Conversation, ConversationSummary, Message, now_iso
from .soft_delete import SoftDeleteRegistry
from .titles import auto_title

logger = logging.getLogger(__name__)

META_FIELDS = ("space_id", "space_name", "system_prompt")

MessagesUpdater = Callable[[list[Message]], Iterable[Message]]


class ConversationNotFoundError(KeyError):
    pass


class ConversationManager:
    def __init__(
        self,
        gateway: PersistenceGateway,
        notifications: Optional[NotificationCenter] = None,
        config: Optional[ConversationConfig] = None,
    ):
        self._gateway = gateway
        self.notifications = notifications or NotificationCenter()
        self.config = config or ConversationConfig()

        self._background = BackgroundCalls()
        self._saver = DebouncedSaveScheduler(
            gateway, self._background, delay_ms=self.config.save_debounce_ms
        )
        self._deletions = SoftDeleteRegistry(
            gateway, self._background, window_ms=self.config.undo_window_ms
        )

        self._conversations: list[Conversation] = []
        self._active_id: Optional[str] = None
        self._issued_ids: set[str] = set()
        self._contexts: dict[str, ConversationContext] = {}
        self._init_started = False
        self._initialized = False
        self._closed = False

    # ── State accessors ──

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_conversation(self) -> Optional[Conversation]:
        return self.get(self._active_id) if self._active_id else None

    @property
    def pending_deletes(self) -> list[str]:
        return self._deletions.pending_ids()

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    def get(self, conversation_id: str) -> Optional[Conversation]:
        idx = self._index_of(conversation_id)
        return self._conversations[idx] if idx is not None else None

    def summaries(self) -> list[ConversationSummary]:
        return [ConversationSummary.from_conversation(c) for c in self._conversations]

    def _index_of(self, conversation_id: str) -> Optional[int]:
        for i, conv in enumerate(self._conversations):
            if conv.id == conversation_id:
                return i
        return None

    def _require_index(self, conversation_id: str) -> int:
        idx = self._index_of(conversation_id)
        if idx is None:
            raise ConversationNotFoundError(conversation_id)
        return idx

    # ── Helpers ──

    def _fresh_id(self) -> str:
        while True:
            candidate = generate_id()
            if (
                candidate not in self._issued_ids
                and candidate not in self._deletions
                and self._index_of(candidate) is None
            ):
                self._issued_ids.add(candidate)
                return candidate

    def _new_conversation(self, **associations) -> Conversation:
        now = now_iso()
        return Conversation(
            id=self._fresh_id(),
            title=self.config.default_title,
            messages=[],
            created_at=now,
            updated_at=now,
            pinned=False,
            **associations,
        )

    def _persist(self, conversation: Conversation) -> None:
        self._background.spawn(
            self._gateway.save_conversation(conversation.model_copy(deep=True)),
            f"save conversation {conversation.id}",
        )

    def _refresh_pending_save(self, conversation: Conversation) -> None:
        # A snapshot taken before a rename/pin must not land after it.
        if self._saver.pending_conversation_id == conversation.id:
            self._saver.schedule(conversation)

    def _forget(self, conversation_id: str) -> None:
        self._saver.discard(conversation_id)
        self._contexts.pop(conversation_id, None)

    def _send_command(self, coro, description: str, failure_title: str) -> None:
        def report(exc: Exception) -> None:
            self.notifications.error(failure_title, str(exc))

        self._background.spawn(coro, description, on_error=report)

    def _activate_fresh(self) -> Conversation:
        fresh = self._new_conversation()
        self._conversations = [fresh]
        self._active_id = fresh.id
        return fresh

    # ── Lifecycle ──

    async def initialize(self) -> Optional[str]:
        """Load persisted conversations once and activate the first one."""
        if self._init_started:
            return self._active_id
        self._init_started = True

        try:
            loaded = await self._gateway.load_conversations()
        except Exception as e:
            logger.error(
                "Failed to load conversations: %s", e,
                exc_info=not isinstance(e, GatewayError),
            )
            if not self._conversations:
                self._persist(self._activate_fresh())
            self._initialized = True
            return self._active_id

        # Conversations created while the load was in flight stay in front.
        early = self._conversations
        known = {c.id for c in early}
        adopted = [
            c for c in loaded
            if c.id not in known and c.id not in self._deletions
        ]
        self._issued_ids.update(c.id for c in adopted)
        self._conversations = [*early, *adopted]

        if not self._conversations:
            self._persist(self._activate_fresh())
        elif self._active_id is None or self._index_of(self._active_id) is None:
            self._active_id = self._conversations[0].id

        self._initialized = True
        logger.info(
            "Loaded %d conversations, active=%s", len(adopted), self._active_id
        )
        return self._active_id

    async def flush(self) -> bool:
        return await self._saver.flush()

    async def aclose(self) -> None:
        """Flush the pending save, commit pending deletes, wait for in-flight calls."""
        if self._closed:
            return
        self._closed = True
        await self._saver.flush()
        committed = await self._deletions.commit_all()
        if committed:
            logger.info("Committed %d pending deletes on shutdown", committed)
        await self._background.drain()

    # ── Operations ──

    def create_conversation(
        self,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        fresh = self._new_conversation(
            space_id=space_id, space_name=space_name, system_prompt=system_prompt
        )
        self._conversations = [fresh, *self._conversations]
        self._active_id = fresh.id
        self._persist(fresh)
        return fresh.id

    def switch_conversation(self, conversation_id: str) -> None:
        self._require_index(conversation_id)
        self._active_id = conversation_id

    def update_active_messages(self, updater: MessagesUpdater) -> Optional[Conversation]:
        """Replace the active conversation's messages with ``updater(old)``.

        The only path that changes message content: stamps ``updated_at``,
        derives the title from the first user message while the title is
        still the default, and schedules a debounced save.
        """
        if self._active_id is None:
            logger.warning("No active conversation; message update dropped")
            return None
        idx = self._index_of(self._active_id)
        if idx is None:
            logger.warning("Active conversation %s is gone; message update dropped", self._active_id)
            return None

        conv = self._conversations[idx]
        new_messages = list(updater(list(conv.messages)))
        changes = {"messages": new_messages, "updated_at": now_iso()}

        if conv.title == self.config.default_title and new_messages:
            first_user = next((m for m in new_messages if m.role == "user"), None)
            if first_user is not None:
                changes["title"] = auto_title(
                    first_user.content,
                    max_words=self.config.title_max_words,
                    default=self.config.default_title,
                )

        updated = conv.model_copy(update=changes)
        self._conversations[idx] = updated
        self._saver.schedule(updated)
        return updated

    def append_message(self, message: Message) -> Optional[Conversation]:
        return self.update_active_messages(lambda prev: [*prev, message])

    def contextual_query(
        self,
        query: str,
        files: Optional[list[str]] = None,
        functions: Optional[list[str]] = None,
    ) -> Optional[str]:
        """Prefix ``query`` with what the active conversation has covered so far.

        The query itself is then folded into that conversation's context.
        Context is in-memory only and is dropped when a delete commits.
        """
        if self._active_id is None:
            return None
        context = self._contexts.setdefault(self._active_id, ConversationContext())
        prefixed = context.build_contextual_query(query)
        context.update_from_query(query, files=files, functions=functions)
        return prefixed

    def clear_context(self, conversation_id: str) -> None:
        self._require_index(conversation_id)
        self._contexts.pop(conversation_id, None)

    def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        idx = self._require_index(conversation_id)
        updated = self._conversations[idx].model_copy(
            update={"title": title, "updated_at": now_iso()}
        )
        self._conversations[idx] = updated
        self._refresh_pending_save(updated)
        self._send_command(
            self._gateway.rename_conversation(conversation_id, title),
            f"rename conversation {conversation_id}",
            "Failed to rename conversation",
        )
        self.notifications.success("Conversation renamed")
        return updated

    def pin_conversation(self, conversation_id: str) -> bool:
        idx = self._require_index(conversation_id)
        pinned = not self._conversations[idx].pinned
        updated = self._conversations[idx].model_copy(
            update={"pinned": pinned, "updated_at": now_iso()}
        )
        self._conversations[idx] = updated
        self._refresh_pending_save(updated)
        self._send_command(
            self._gateway.pin_conversation(conversation_id, pinned),
            f"pin conversation {conversation_id}",
            "Failed to update pin",
        )
        self.notifications.success("Conversation pinned" if pinned else "Conversation unpinned")
        return pinned

    def reorder_conversations(self, new_order: Iterable[Conversation]) -> list[Conversation]:
        """Replace the list wholesale and resave every entry."""
        kept: list[Conversation] = []
        seen: set[str] = set()
        for conv in new_order:
            if conv.id in self._deletions:
                logger.warning("Ignoring conversation %s pending deletion in reorder", conv.id)
                continue
            if conv.id in seen:
                continue
            seen.add(conv.id)
            kept.append(conv)

        self._issued_ids.update(seen)
        self._conversations = kept
        if not self._conversations:
            self._persist(self._activate_fresh())
            return self.conversations
        if self._active_id not in seen:
            self._active_id = self._conversations[0].id

        for conv in self._conversations:
            self._persist(conv)
        return self.conversations

    def reorder_by_ids(self, conversation_ids: list[str]) -> list[Conversation]:
        """Reorder by id. Conversations not named keep their relative order at the end."""
        by_id = {c.id: c for c in self._conversations}
        unknown = [cid for cid in conversation_ids if cid not in by_id]
        if unknown:
            raise ConversationNotFoundError(unknown[0])
        named = set(conversation_ids)
        ordered = [by_id[cid] for cid in conversation_ids]
        ordered += [c for c in self._conversations if c.id not in named]
        return self.reorder_conversations(ordered)

    def update_conversation_meta(self, conversation_id: str, **meta) -> Conversation:
        unknown = set(meta) - set(META_FIELDS)
        if unknown:
            raise ValueError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")
        idx = self._require_index(conversation_id)
        updated = self._conversations[idx].model_copy(
            update={**meta, "updated_at": now_iso()}
        )
        self._conversations[idx] = updated
        self._saver.schedule(updated)
        return updated

    # ── Soft delete ──

    def delete_conversation(self, conversation_id: str) -> Optional[UndoAffordance]:
        """Remove now, delete in the backend once the undo window elapses."""
        previous = self._deletions.cancel(conversation_id)
        idx = self._index_of(conversation_id)

        if idx is None:
            if previous is None:
                logger.warning("Cannot delete unknown conversation %s", conversation_id)
                return None
            # Already soft-deleted: restart its window with the original snapshot.
            conv, position = previous.conversation, previous.index
        else:
            conv, position = self._conversations[idx], idx
            del self._conversations[idx]
            if not self._conversations:
                self._persist(self._activate_fresh())
            elif conversation_id == self._active_id:
                self._active_id = self._conversations[0].id

        self._deletions.arm(conv, position, on_expire=self._forget)

        description = conv.title if conv.title != self.config.default_title else None
        return self.notifications.offer_undo(
            "Conversation deleted",
            action=lambda: self.undo_delete(conversation_id),
            description=description,
            duration_ms=self.config.undo_window_ms,
        )

    def undo_delete(self, conversation_id: str) -> bool:
        entry = self._deletions.cancel(conversation_id)
        if entry is None:
            return False

        position = 0
        if self.config.restore_original_position:
            position = min(entry.index, len(self._conversations))
        self._conversations.insert(position, entry.conversation)
        self._active_id = conversation_id
        self.notifications.success("Conversation restored")
        return True
