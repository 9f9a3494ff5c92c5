"""
Tests for the chat history store, the chat service and session helpers.
"""

import pytest

from skanyxx.models.kagent import ChatMessage, Session
from skanyxx.services.chat_service import ChatService
from skanyxx.services.chat_store import ChatHistoryStore

from conftest import agent_status, sse_frame, streamed


def message(message_id, role="user", content="hello", session_id="s1"):
    return ChatMessage(id=message_id, role=role, content=content, sessionId=session_id)


@pytest.fixture
def store():
    store = ChatHistoryStore()
    store.set_session("k8s-agent", Session(id="s1"))
    return store


# ---------------------------------------------------------------------------
# ChatHistoryStore
# ---------------------------------------------------------------------------

def test_append_skips_duplicate_ids_and_keeps_order(store):
    store.append_messages("k8s-agent", [message("1"), message("2")])
    added = store.append_messages("k8s-agent", [message("2"), message("3"), message("1"), message("4")])

    assert added == 2
    assert [m.id for m in store.messages("k8s-agent")] == ["1", "2", "3", "4"]


def test_history_is_bounded_to_most_recent(store):
    store.append_messages("k8s-agent", [message(str(i)) for i in range(60)])

    ids = [m.id for m in store.messages("k8s-agent")]
    assert len(ids) == 50
    assert ids[0] == "10"
    assert ids[-1] == "59"


def test_append_without_session_fails():
    with pytest.raises(KeyError):
        ChatHistoryStore().append_messages("nobody", [message("1")])


def test_snapshot_is_a_deep_copy(store):
    store.append_messages("k8s-agent", [message("1", content="original")])

    snapshot = store.snapshot(["k8s-agent", "missing"])
    snapshot["k8s-agent"][0].content = "changed"

    assert list(snapshot) == ["k8s-agent"]
    assert store.messages("k8s-agent")[0].content == "original"


def test_rebinding_a_new_session_drops_old_messages(store):
    store.append_messages("k8s-agent", [message("1")])
    store.set_session("k8s-agent", Session(id="s1", name="renamed"))
    assert len(store.messages("k8s-agent")) == 1

    store.set_session("k8s-agent", Session(id="s2"))
    assert store.messages("k8s-agent") == []


def test_store_keys_ignore_namespace():
    store = ChatHistoryStore()
    store.set_session("k8s-agent", Session(id="s1", agent_ref="team-a/k8s-agent"))
    store.set_session("k8s-agent", Session(id="s2", agent_ref="team-b/k8s-agent"))
    assert len(store) == 1
    assert store.get("k8s-agent").session.id == "s2"


# ---------------------------------------------------------------------------
# Session creation fallbacks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_session_with_name(make_client, recorder):
    recorder.json("POST", "/api/sessions", {"data": {"id": "s9", "name": "Chat"}})
    client = make_client()

    result = await client.create_session_with_name("k8s-agent", "Chat")

    assert result.is_ok
    assert result.value.id == "s9"
    assert result.value.agent_ref == "kagent/k8s-agent"


@pytest.mark.asyncio
async def test_create_session_falls_back_to_existing(make_client, recorder):
    recorder.json("POST", "/api/sessions", {"error": "nope"}, status_code=500)
    recorder.json("GET", "/api/sessions", {"data": [{"id": "old", "agent_ref": "kagent/k8s-agent"}]})
    client = make_client()

    result = await client.create_session_with_name("k8s-agent", "Chat")

    assert result.is_fallback
    assert result.value.id == "old"
    assert "500" in result.error


@pytest.mark.asyncio
async def test_create_session_falls_back_to_local_session(make_client, recorder):
    client = make_client()

    result = await client.create_session_with_name("k8s-agent", "Chat")

    assert result.is_fallback
    assert result.value.synthetic is True
    assert result.value.id.startswith("local-session-")
    assert (await client.get_session(result.value.id)).synthetic is True


@pytest.mark.asyncio
async def test_get_session_shapes(make_client, recorder):
    recorder.json("GET", "/api/sessions/wrapped", {"data": {"session": {"id": "wrapped"}, "events": []}})
    recorder.json("GET", "/api/sessions/direct", {"data": {"id": "direct"}})
    client = make_client()

    assert (await client.get_session("wrapped")).id == "wrapped"
    assert (await client.get_session("direct")).id == "direct"
    assert await client.get_session("missing") is None


# ---------------------------------------------------------------------------
# ChatService
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_start_chat_creates_then_restores(make_client, recorder):
    recorder.json("POST", "/api/sessions", {"data": {"id": "s1"}})
    client = make_client()
    store = ChatHistoryStore()
    service = ChatService(client, store)

    first = await service.start_chat("k8s-agent")
    second = await service.start_chat("k8s-agent")

    assert first is second
    assert first.session.id == "s1"
    assert len([r for r in recorder.requests if r.method == "POST"]) == 1


@pytest.mark.asyncio
async def test_send_records_both_sides(make_client, recorder):
    recorder.json("POST", "/api/sessions", {"data": {"id": "s1", "agent_ref": "kagent/k8s-agent"}})
    recorder.json("GET", "/api/sessions/s1", {"data": {"id": "s1", "agent_ref": "kagent/k8s-agent"}})
    recorder.add(
        "POST", "/api/a2a/kagent/k8s-agent/",
        lambda request: streamed([sse_frame(agent_status("All pods are running")).encode()]),
    )
    client = make_client()
    store = ChatHistoryStore()
    service = ChatService(client, store)

    await service.start_chat("k8s-agent")
    result = await service.send("k8s-agent", "status?")

    assert result.is_ok
    messages = store.messages("k8s-agent")
    assert [(m.role, m.content) for m in messages] == [("user", "status?"), ("assistant", "All pods are running")]


@pytest.mark.asyncio
async def test_send_records_placeholder_reply(make_client, recorder):
    recorder.json("POST", "/api/sessions", {"data": {"id": "s1"}})
    client = make_client()
    store = ChatHistoryStore()
    service = ChatService(client, store)

    await service.start_chat("k8s-agent")
    result = await service.send("k8s-agent", "status?")

    assert result.is_fallback
    reply = store.messages("k8s-agent")[-1]
    assert reply.content.startswith("Placeholder response to")
    assert reply.placeholder is True
    assert store.messages("k8s-agent")[0].placeholder is False
