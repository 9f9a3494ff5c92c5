"""
Tests for chat push-stream reassembly and the A2A send path.
"""

import json

import httpx
import pytest

from skanyxx.client.streaming import (
    SSEFrameBuffer,
    StreamFrameAssembler,
    build_a2a_url,
    build_stream_request,
    parse_sse_frame,
    resolve_agent_target,
)
from skanyxx.errors import NotFoundError, ProtocolError
from skanyxx.models.kagent import Session

from conftest import agent_status, sse_frame, streamed


# ---------------------------------------------------------------------------
# Frame buffering
# ---------------------------------------------------------------------------

def test_frames_split_across_reads_are_reassembled():
    stream = (sse_frame(agent_status("first")) + sse_frame(agent_status("second"))).encode()

    whole = StreamFrameAssembler()
    whole.feed_bytes(stream)

    for cut in range(1, len(stream)):
        split = StreamFrameAssembler()
        split.feed_bytes(stream[:cut])
        split.feed_bytes(stream[cut:])
        assert split.final_message == whole.final_message == "second"


def test_multibyte_character_split_between_reads():
    buffer = SSEFrameBuffer()
    encoded = "data: héllo ✓\n\n".encode("utf-8")
    index = encoded.index("✓".encode("utf-8")) + 1

    assert buffer.feed_bytes(encoded[:index]) == []
    assert buffer.feed_bytes(encoded[index:]) == ["data: héllo ✓"]


def test_unterminated_frame_stays_pending():
    buffer = SSEFrameBuffer()
    assert buffer.feed("data: one\n\ndata: tw") == ["data: one"]
    assert buffer.pending == "data: tw"
    assert buffer.flush() == []


def test_parse_frame_reads_event_and_data_lines():
    event = parse_sse_frame('event: alert\ndata: {"id": "a1"}')
    assert event.event == "alert"
    assert event.data == ['{"id": "a1"}']
    assert parse_sse_frame("data: x").event == "message"


# ---------------------------------------------------------------------------
# Agent message capture
# ---------------------------------------------------------------------------

def test_user_echo_then_agent_reply():
    assembler = StreamFrameAssembler()
    assembler.feed(sse_frame(agent_status("hi", role="user")))
    assembler.feed(sse_frame(agent_status("OK")))

    response = assembler.finish("s1")
    assert response.message == "OK"
    assert response.sessionId == "s1"
    assert response.placeholder is False


def test_last_agent_frame_wins_and_empty_text_resets():
    assembler = StreamFrameAssembler()
    assembler.feed(sse_frame(agent_status("draft")))
    assembler.feed(sse_frame(agent_status("")))
    assert assembler.final_message == ""

    with pytest.raises(NotFoundError):
        assembler.finish("s1")


def test_unwrapped_payload_is_accepted():
    payload = {"status": {"message": {"role": "agent", "parts": [{"text": "bare"}]}}}
    assembler = StreamFrameAssembler()
    assembler.feed(sse_frame(payload))
    assert assembler.final_message == "bare"


def test_malformed_frames_are_skipped():
    assembler = StreamFrameAssembler()
    assembler.feed(sse_frame("{not json"))
    assembler.feed(sse_frame("[1, 2]"))
    assembler.feed(sse_frame(agent_status("still here")))

    assert assembler.decode_errors == 2
    assert assembler.finish("s1").message == "still here"


def test_non_string_agent_text_is_skipped():
    payload = agent_status("ignored")
    payload["result"]["status"]["message"]["parts"][0]["text"] = {"nested": 1}
    assembler = StreamFrameAssembler()
    assembler.feed(sse_frame(payload))

    assert assembler.decode_errors == 1
    with pytest.raises(NotFoundError):
        assembler.finish("s1")


def test_done_sentinel_stops_only_its_frame():
    assembler = StreamFrameAssembler()
    assembler.feed(f"data: [DONE]\ndata: {json.dumps(agent_status('ignored'))}\n\n")
    assert assembler.final_message is None

    assembler.feed(sse_frame(agent_status("after")))
    assert assembler.final_message == "after"


def test_empty_stream_has_no_agent_message():
    with pytest.raises(NotFoundError, match="no agent message found"):
        StreamFrameAssembler().finish("s1")


# ---------------------------------------------------------------------------
# Target resolution and request shape
# ---------------------------------------------------------------------------

def test_resolve_agent_target():
    assert resolve_agent_target(Session(id="s", agent_id="team__NS__k8s_agent")) == ("team", "k8s-agent")
    assert resolve_agent_target(Session(id="s", agent_id="helm_agent")) == ("kagent", "helm-agent")
    assert resolve_agent_target(Session(id="s", agent_ref="ops/obs_agent")) == ("ops", "obs-agent")
    assert resolve_agent_target(Session(id="s", agent_ref="k8s-agent")) == ("kagent", "k8s-agent")
    assert resolve_agent_target(Session(id="s")) == ("kagent", "k8s-agent")


def test_a2a_url_requires_absolute_base():
    assert build_a2a_url("http://h:8083/api", "kagent", "k8s-agent") == "http://h:8083/api/a2a/kagent/k8s-agent/"
    with pytest.raises(ProtocolError):
        build_a2a_url("/api", "kagent", "k8s-agent")


def test_stream_request_envelope():
    request = build_stream_request("s1", "hello")
    message = request["params"]["message"]

    assert request["jsonrpc"] == "2.0"
    assert request["method"] == "message/stream"
    assert request["id"].startswith("req-")
    assert message["messageId"].startswith("msg-")
    assert message["parts"] == [{"kind": "text", "text": "hello"}]
    assert message["contextId"] == "s1"


# ---------------------------------------------------------------------------
# End to end through the client
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_send_message_streams_reply(make_client, recorder):
    body = (sse_frame(agent_status("hi", role="user")) + sse_frame(agent_status("OK"))).encode()
    chunks = [body[i:i + 7] for i in range(0, len(body), 7)]

    recorder.json("GET", "/api/sessions/s1", {"data": {"session": {"id": "s1", "agent_id": "kagent__NS__k8s_agent"}}})
    recorder.add("POST", "/api/a2a/kagent/k8s-agent/", lambda request: streamed(chunks))
    client = make_client()

    result = await client.send_message("s1", "hi")

    assert result.is_ok
    assert result.value.message == "OK"
    request = recorder.last("POST", "/api/a2a/kagent/k8s-agent/")
    assert request.headers["Accept"] == "text/event-stream"
    assert json.loads(request.content)["params"]["message"]["contextId"] == "s1"


@pytest.mark.asyncio
async def test_send_message_failure_returns_placeholder(make_client, recorder):
    recorder.json("GET", "/api/sessions/s1", {"data": {"id": "s1", "agent_ref": "kagent/k8s-agent"}})
    recorder.add("POST", "/api/a2a/kagent/k8s-agent/", lambda request: httpx.Response(503, text="unavailable"))
    client = make_client()

    result = await client.send_message("s1", "hi")

    assert result.is_fallback
    assert result.value.placeholder is True
    assert "503" in result.value.message
    assert result.value.message.startswith('Placeholder response to: "hi"')
    assert result.error == result.value.error


@pytest.mark.asyncio
async def test_stream_message_raises_for_unknown_session(make_client, recorder):
    client = make_client()

    with pytest.raises(NotFoundError):
        await client.stream_message("missing", "hi")


@pytest.mark.asyncio
async def test_send_message_with_malformed_session_returns_placeholder(make_client, recorder):
    recorder.json("GET", "/api/sessions/s1", {"data": {"id": "s1", "user_id": None}})
    client = make_client()

    result = await client.send_message("s1", "hi")

    assert result.is_fallback
    assert result.value.placeholder is True
    assert "Malformed session s1" in result.error
    with pytest.raises(ProtocolError):
        await client.get_session("s1")


@pytest.mark.asyncio
async def test_send_message_with_non_string_agent_text_returns_placeholder(make_client, recorder):
    payload = agent_status("ignored")
    payload["result"]["status"]["message"]["parts"][0]["text"] = {"nested": 1}
    recorder.json("GET", "/api/sessions/s1", {"data": {"id": "s1", "agent_ref": "kagent/k8s-agent"}})
    recorder.add("POST", "/api/a2a/kagent/k8s-agent/", lambda request: streamed([sse_frame(payload).encode()]))
    client = make_client()

    result = await client.send_message("s1", "hi")

    assert result.is_fallback
    assert result.error == "no agent message found"


@pytest.mark.asyncio
async def test_chat_stream_has_no_read_timeout(make_client, recorder):
    recorder.json("GET", "/api/sessions/s1", {"data": {"id": "s1", "agent_ref": "kagent/k8s-agent"}})
    recorder.add("POST", "/api/a2a/kagent/k8s-agent/", lambda request: streamed([sse_frame(agent_status("OK")).encode()]))
    client = make_client()

    await client.send_message("s1", "hi")

    timeout = recorder.last("POST", "/api/a2a/kagent/k8s-agent/").extensions["timeout"]
    assert timeout["read"] is None
    assert timeout["connect"] == client.transport.client.timeout.connect
