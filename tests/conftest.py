import asyncio

import pytest

from chatdesk import config as config_module
from chatdesk import crypto
from chatdesk.config import ConversationConfig
from chatdesk.conversation.gateway import GatewayError, PersistenceGateway
from chatdesk.conversation.manager import ConversationManager
from chatdesk.conversation.models import Conversation, Message
from chatdesk.notifications import NotificationCenter

DEBOUNCE_MS = 20
UNDO_MS = 100


class RecordingGateway(PersistenceGateway):
    """In-memory gateway that records every command it receives."""

    def __init__(self, stored=None, fail_load=False):
        self.stored = {c.id: c for c in (stored or [])}
        self.fail_load = fail_load
        self.failing: set[str] = set()  # command names that raise GatewayError
        self.calls: list[tuple] = []

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise GatewayError(f"{name} unavailable")

    async def load_conversations(self):
        self.calls.append(("load",))
        if self.fail_load:
            raise GatewayError("backend unreachable")
        return list(self.stored.values())

    async def save_conversation(self, conversation):
        self.calls.append(("save", conversation))
        self._check("save")
        self.stored[conversation.id] = conversation

    async def rename_conversation(self, conversation_id, title):
        self.calls.append(("rename", conversation_id, title))
        self._check("rename")

    async def delete_conversation(self, conversation_id):
        self.calls.append(("delete", conversation_id))
        self._check("delete")
        self.stored.pop(conversation_id, None)

    async def pin_conversation(self, conversation_id, pinned):
        self.calls.append(("pin", conversation_id, pinned))
        self._check("pin")

    def of(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]


async def settle(seconds: float = 0.0) -> None:
    """Let timers due within *seconds* fire and their tasks run."""
    await asyncio.sleep(seconds)
    for _ in range(5):
        await asyncio.sleep(0)


def make_conversation(conv_id: str, title: str = "New Chat", **kwargs) -> Conversation:
    return Conversation(
        id=conv_id,
        title=title,
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
        **kwargs,
    )


def user(content: str) -> Message:
    return Message(role="user", content=content)


def assistant(content: str) -> Message:
    return Message(role="assistant", content=content)


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    monkeypatch.setattr(config_module, "_config_dir", config_dir)
    monkeypatch.setattr(config_module, "_config_file", config_dir / "config.json")
    config_module.reset_config()
    crypto.reset_key_cache()
    yield config_dir
    config_module.reset_config()
    crypto.reset_key_cache()


@pytest.fixture
def conv_config():
    return ConversationConfig(save_debounce_ms=DEBOUNCE_MS, undo_window_ms=UNDO_MS)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def notifications():
    return NotificationCenter()


@pytest.fixture
async def manager(gateway, notifications, conv_config):
    mgr = ConversationManager(gateway, notifications=notifications, config=conv_config)
    await mgr.initialize()
    yield mgr
    await mgr.aclose()
