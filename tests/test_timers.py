from chatdesk.conversation.background import BackgroundCalls
from chatdesk.conversation.debounce import DebouncedSaveScheduler
from chatdesk.conversation.soft_delete import SoftDeleteRegistry

from conftest import RecordingGateway, make_conversation, settle


class TestDebouncedSaveScheduler:
    async def test_fires_once_with_latest_snapshot(self):
        gateway = RecordingGateway()
        scheduler = DebouncedSaveScheduler(gateway, BackgroundCalls(), delay_ms=20)

        scheduler.schedule(make_conversation("a", title="one"))
        scheduler.schedule(make_conversation("a", title="two"))
        scheduler.schedule(make_conversation("a", title="three"))
        assert scheduler.pending

        await settle(0.06)

        assert [c[1].title for c in gateway.of("save")] == ["three"]
        assert not scheduler.pending

    async def test_snapshot_is_isolated_from_later_mutation(self):
        gateway = RecordingGateway()
        scheduler = DebouncedSaveScheduler(gateway, BackgroundCalls(), delay_ms=10)
        conv = make_conversation("a", title="before")

        scheduler.schedule(conv)
        conv.title = "after"
        await settle(0.05)

        assert gateway.of("save")[0][1].title == "before"

    async def test_cancel_prevents_the_write(self):
        gateway = RecordingGateway()
        scheduler = DebouncedSaveScheduler(gateway, BackgroundCalls(), delay_ms=10)

        scheduler.schedule(make_conversation("a"))
        assert scheduler.cancel().id == "a"
        assert scheduler.cancel() is None
        await settle(0.05)

        assert gateway.of("save") == []

    async def test_discard_only_matching_conversation(self):
        gateway = RecordingGateway()
        scheduler = DebouncedSaveScheduler(gateway, BackgroundCalls(), delay_ms=10)

        scheduler.schedule(make_conversation("a"))
        assert scheduler.discard("b") is False
        assert scheduler.pending_conversation_id == "a"
        assert scheduler.discard("a") is True
        assert not scheduler.pending

    async def test_failure_does_not_break_later_saves(self):
        gateway = RecordingGateway()
        gateway.failing.add("save")
        scheduler = DebouncedSaveScheduler(gateway, BackgroundCalls(), delay_ms=10)

        scheduler.schedule(make_conversation("a"))
        await settle(0.05)
        gateway.failing.clear()
        scheduler.schedule(make_conversation("b"))
        await settle(0.05)

        assert [c[1].id for c in gateway.of("save")] == ["a", "b"]
        assert gateway.stored.keys() == {"b"}


class TestSoftDeleteRegistry:
    async def test_expiry_removes_entry_then_deletes(self):
        gateway = RecordingGateway()
        registry = SoftDeleteRegistry(gateway, BackgroundCalls(), window_ms=20)
        expired = []

        registry.arm(make_conversation("a"), 0, on_expire=expired.append)
        assert "a" in registry
        await settle(0.06)

        assert "a" not in registry
        assert expired == ["a"]
        assert gateway.of("delete") == [("delete", "a")]

    async def test_cancel_returns_snapshot_and_stops_delete(self):
        gateway = RecordingGateway()
        registry = SoftDeleteRegistry(gateway, BackgroundCalls(), window_ms=20)

        registry.arm(make_conversation("a", title="keep"), 3)
        entry = registry.cancel("a")
        await settle(0.06)

        assert entry.conversation.title == "keep"
        assert entry.index == 3
        assert gateway.of("delete") == []

    async def test_cancel_after_fire_is_a_no_op(self):
        gateway = RecordingGateway()
        registry = SoftDeleteRegistry(gateway, BackgroundCalls(), window_ms=10)

        entry = registry.arm(make_conversation("a"), 0)
        await settle(0.05)

        assert registry.cancel("a") is None
        entry.handle.cancel()
        assert gateway.of("delete") == [("delete", "a")]

    async def test_rearming_replaces_previous_timer(self):
        gateway = RecordingGateway()
        registry = SoftDeleteRegistry(gateway, BackgroundCalls(), window_ms=20)

        registry.arm(make_conversation("a"), 0)
        registry.arm(make_conversation("a"), 0)
        await settle(0.06)

        assert gateway.of("delete") == [("delete", "a")]

    async def test_commit_all_deletes_immediately(self):
        gateway = RecordingGateway()
        registry = SoftDeleteRegistry(gateway, BackgroundCalls(), window_ms=10_000)

        registry.arm(make_conversation("a"), 0)
        registry.arm(make_conversation("b"), 1)

        assert await registry.commit_all() == 2
        assert sorted(c[1] for c in gateway.of("delete")) == ["a", "b"]
        assert registry.pending_ids() == []
