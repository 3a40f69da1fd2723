import time

import pytest
from fastapi.testclient import TestClient

from chatdesk.config import AppConfig, ConversationConfig
from chatdesk.main import create_app

from conftest import RecordingGateway, make_conversation


@pytest.fixture
def backend():
    return RecordingGateway(stored=[make_conversation("a", title="Alpha"), make_conversation("b", title="Beta")])


@pytest.fixture
def client(backend):
    config = AppConfig(conversations=ConversationConfig(save_debounce_ms=20, undo_window_ms=150))
    with TestClient(create_app(gateway=backend, config=config)) as c:
        yield c


def test_health(client):
    assert client.get("/api/health").json()["initialized"] is True


def test_list_returns_summaries_and_active(client):
    data = client.get("/api/conversations").json()
    assert [c["id"] for c in data["conversations"]] == ["a", "b"]
    assert data["conversations"][0]["messageCount"] == 0
    assert data["activeConversationId"] == "a"


def test_create_and_activate(client):
    resp = client.post("/api/conversations", json={"spaceId": "s1", "spaceName": "Docs"})
    conv = resp.json()["conversation"]
    assert conv["title"] == "New Chat"
    assert conv["spaceId"] == "s1"
    assert client.get("/api/conversations/active").json()["conversation"]["id"] == conv["id"]

    assert client.post("/api/conversations/b/activate").json() == {"activeConversationId": "b"}
    assert client.post("/api/conversations/zzz/activate").status_code == 404


def test_create_without_body(client):
    assert client.post("/api/conversations").status_code == 200


def test_append_message_titles_and_debounces_save(client, backend):
    resp = client.post("/api/conversations", json={})
    conv_id = resp.json()["conversation"]["id"]

    resp = client.post(
        "/api/conversations/active/messages",
        json={"role": "user", "content": "draft the onboarding checklist for new hires please"},
    )
    body = resp.json()
    assert body["conversation"]["title"] == "draft the onboarding checklist for new..."
    assert body["message"]["id"].startswith("msg-")

    time.sleep(0.15)
    saved = [c[1] for c in backend.of("save") if c[1].id == conv_id]
    assert saved[-1].messages[0].content.startswith("draft the onboarding")


def test_append_rejects_unknown_role(client):
    resp = client.post("/api/conversations/active/messages", json={"role": "tool", "content": "x"})
    assert resp.status_code == 422


def test_rename_pin_and_meta(client, backend):
    assert client.put("/api/conversations/a", json={"title": "Renamed"}).json()["conversation"]["title"] == "Renamed"
    assert client.put("/api/conversations/zzz", json={"title": "x"}).status_code == 404
    assert client.put("/api/conversations/a", json={"title": ""}).status_code == 422

    assert client.post("/api/conversations/a/pin").json() == {"id": "a", "pinned": True}
    assert client.post("/api/conversations/a/pin").json() == {"id": "a", "pinned": False}

    meta = client.patch("/api/conversations/a/meta", json={"systemPrompt": "Cite sources"}).json()
    assert meta["conversation"]["systemPrompt"] == "Cite sources"

    time.sleep(0.05)
    assert backend.of("rename") == [("rename", "a", "Renamed")]
    assert [c[2] for c in backend.of("pin")] == [True, False]

    titles = [n["title"] for n in client.get("/api/notifications").json()["notifications"]]
    assert titles[:3] == ["Conversation unpinned", "Conversation pinned", "Conversation renamed"]


def test_contextual_query_endpoint(client):
    first = client.post("/api/conversations/active/context", json={"query": "review the billing export"})
    assert first.json() == {"query": "review the billing export"}

    follow_up = client.post(
        "/api/conversations/active/context",
        json={"query": "and the totals?", "files": ["billing/export.py"]},
    ).json()["query"]
    assert follow_up.startswith("Recent topics: review, billing, export.")
    assert 'Previous question: "review the billing export".' in follow_up

    assert client.delete("/api/conversations/a/context").json() == {"status": "ok"}
    assert client.delete("/api/conversations/zzz/context").status_code == 404


def test_reorder(client):
    data = client.put("/api/conversations/order", json={"ids": ["b", "a"]}).json()
    assert [c["id"] for c in data["conversations"]] == ["b", "a"]
    assert client.put("/api/conversations/order", json={"ids": ["nope"]}).status_code == 400


def test_delete_and_restore(client, backend):
    resp = client.delete("/api/conversations/a")
    body = resp.json()
    assert body["status"] == "pending"
    assert body["undo"]["description"] == "Alpha"
    assert body["activeConversationId"] == "b"
    assert client.get("/api/conversations/a").status_code == 404

    restored = client.post("/api/conversations/a/restore").json()
    assert restored["activeConversationId"] == "a"
    assert client.post("/api/conversations/a/restore").status_code == 404

    time.sleep(0.25)
    assert backend.of("delete") == []
    assert [c["id"] for c in client.get("/api/conversations").json()["conversations"]] == ["a", "b"]


def test_delete_then_undo_through_notification(client):
    undo_id = client.delete("/api/conversations/b").json()["undo"]["id"]
    pending = client.get("/api/notifications").json()["undo"]
    assert [u["id"] for u in pending] == [undo_id]

    assert client.post(f"/api/notifications/undo/{undo_id}").json() == {"status": "restored"}
    assert client.post(f"/api/notifications/undo/{undo_id}").status_code == 410


def test_delete_commits_after_window(client, backend):
    client.delete("/api/conversations/b")
    time.sleep(0.3)
    assert backend.of("delete") == [("delete", "b")]
    assert client.delete("/api/conversations/b").status_code == 404


def test_notification_read_state(client):
    client.put("/api/conversations/a", json={"title": "X"})
    notif = client.get("/api/notifications").json()["notifications"][0]

    assert client.post(f"/api/notifications/{notif['id']}/read").status_code == 200
    assert client.get("/api/notifications").json()["unreadCount"] == 0
    assert client.post("/api/notifications/missing/read").status_code == 404
    assert client.delete(f"/api/notifications/{notif['id']}").status_code == 200
    assert client.delete("/api/notifications").json() == {"status": "ok"}


def test_shutdown_commits_pending_delete(backend):
    config = AppConfig(conversations=ConversationConfig(undo_window_ms=60_000))
    with TestClient(create_app(gateway=backend, config=config)) as c:
        c.delete("/api/conversations/a")
        assert backend.of("delete") == []
    assert backend.of("delete") == [("delete", "a")]


def test_settings_hide_token(client):
    client.put("/api/settings", json={"storage": {"backend": "http", "base_url": "http://x", "api_token": "tok"}})
    data = client.get("/api/settings").json()
    assert data["storage"]["api_token"] == "********"
    assert data["storage"]["backend"] == "http"

    client.put("/api/settings", json=data)
    from chatdesk.config import get_config
    assert get_config().storage.api_token == "tok"


def test_logs_endpoint_buffers_records(client):
    import logging

    logging.getLogger("chatdesk.test").warning("hello from test")
    logs = client.get("/api/logs").json()["logs"]
    assert any(entry["message"].endswith("hello from test") for entry in logs)
    assert client.delete("/api/logs").json() == {"status": "ok"}
