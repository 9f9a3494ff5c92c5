"""
Reassembly of server-push streams.

Chat replies arrive as a JSON-RPC 2.0 ``message/stream`` push stream: a series
of frames separated by blank lines, each carrying ``data:`` payloads. Frames
can be split at any byte across network reads, so bytes are decoded
incrementally and only complete frames are consumed; the unconsumed tail stays
buffered until the next read.
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from ..errors import DecodeError, NotFoundError, ProtocolError
from ..models.kagent import DEFAULT_NAMESPACE, ChatResponse, Session, utc_now_iso
from ..observability.logging_config import truncate_large_result

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_FIELD = "data:"
EVENT_FIELD = "event:"
DONE_SENTINEL = "[DONE]"

AGENT_ID_DELIMITER = "__NS__"
AGENT_REF_DELIMITER = "/"
DEFAULT_AGENT_NAME = "k8s-agent"


@dataclass
class SSEEvent:
    event: str = "message"
    data: List[str] = field(default_factory=list)

    @property
    def payload(self) -> str:
        return "\n".join(self.data)


def parse_sse_frame(frame: str) -> SSEEvent:
    """Split one frame into its event name and data lines."""
    event = SSEEvent()
    for line in frame.split("\n"):
        line = line.rstrip("\r")
        if line.startswith(DATA_FIELD):
            value = line[len(DATA_FIELD):]
            event.data.append(value[1:] if value.startswith(" ") else value)
        elif line.startswith(EVENT_FIELD):
            event.event = line[len(EVENT_FIELD):].strip() or "message"
    return event


class SSEFrameBuffer:
    """Growing text buffer that yields complete frames as they become available."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed_bytes(self, chunk: bytes) -> List[str]:
        return self.feed(self._decoder.decode(chunk))

    def feed(self, text: str) -> List[str]:
        self._buffer += text
        frames = []
        while True:
            index = self._buffer.find(FRAME_DELIMITER)
            if index < 0:
                break
            frames.append(self._buffer[:index])
            self._buffer = self._buffer[index + len(FRAME_DELIMITER):]
        return frames

    def flush(self) -> List[str]:
        """Decode any trailing bytes. An unterminated final frame is not returned."""
        return self.feed(self._decoder.decode(b"", final=True))


class StreamFrameAssembler:
    """
    Consumes a chat push stream and tracks the latest agent reply.

    Every agent-role status update overwrites the current final message, so
    the last one in the stream wins. Malformed payloads are counted and
    skipped; they never abort the stream.
    """

    def __init__(self):
        self._frames = SSEFrameBuffer()
        self.final_message: Optional[str] = None
        self.frames_processed = 0
        self.decode_errors = 0

    def feed_bytes(self, chunk: bytes) -> None:
        for frame in self._frames.feed_bytes(chunk):
            self._process_frame(frame)

    def feed(self, text: str) -> None:
        for frame in self._frames.feed(text):
            self._process_frame(frame)

    def _process_frame(self, frame: str) -> None:
        if not frame.strip():
            return
        self.frames_processed += 1

        for payload in parse_sse_frame(frame).data:
            if payload == DONE_SENTINEL:
                break
            try:
                self._process_payload(payload)
            except DecodeError as e:
                self.decode_errors += 1
                logger.debug(f"Skipping malformed stream frame: {e}")

    def _process_payload(self, payload: str) -> None:
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON payload: {e}", payload=payload) from e

        if not isinstance(event, dict):
            raise DecodeError("Payload is not a JSON object", payload=payload)

        result = event.get("result") or event
        if not isinstance(result, dict):
            raise DecodeError("Result envelope is not a JSON object", payload=payload)

        status = result.get("status")
        if not isinstance(status, dict):
            return
        message = status.get("message")
        if not isinstance(message, dict) or message.get("role") != "agent":
            return

        parts = message.get("parts") or []
        first = parts[0] if parts and isinstance(parts[0], dict) else {}
        text = first.get("text")
        if text is not None and not isinstance(text, str):
            raise DecodeError("Agent text part is not a string", payload=payload)
        self.final_message = text or ""
        logger.debug(f"Captured agent message: {truncate_large_result(self.final_message)}")

    def finish(self, session_id: str) -> ChatResponse:
        """Close the stream and build the reply, or fail when no agent message arrived."""
        for frame in self._frames.flush():
            self._process_frame(frame)

        if self.final_message:
            return ChatResponse(message=self.final_message, sessionId=session_id, timestamp=utc_now_iso())

        raise NotFoundError("no agent message found")


def resolve_agent_target(session: Session) -> Tuple[str, str]:
    """Return (namespace, agent name) for the agent a session talks to."""
    namespace = DEFAULT_NAMESPACE

    if session.agent_id:
        parts = session.agent_id.split(AGENT_ID_DELIMITER)
        if len(parts) == 2:
            return parts[0], parts[1].replace("_", "-")
        return namespace, session.agent_id.replace("_", "-")

    if session.agent_ref:
        parts = session.agent_ref.split(AGENT_REF_DELIMITER)
        if len(parts) == 2 and parts[0] and parts[1]:
            return parts[0], parts[1].replace("_", "-")
        return namespace, session.agent_ref.replace("_", "-")

    return namespace, DEFAULT_AGENT_NAME


def build_a2a_url(api_base_url: str, namespace: str, agent_name: str) -> str:
    """Absolute A2A endpoint for one agent."""
    base = api_base_url.rstrip("/")
    if base.endswith("/api"):
        base = base[:-len("/api")]
    url = f"{base}/api/a2a/{namespace}/{agent_name}/"

    if not url.startswith("http"):
        raise ProtocolError(f"Invalid A2A URL: {url} - URL must be absolute")
    return url


def build_stream_request(session_id: str, text: str) -> Dict[str, Any]:
    """JSON-RPC 2.0 ``message/stream`` envelope for one user message."""
    return {
        "jsonrpc": "2.0",
        "method": "message/stream",
        "params": {
            "message": {
                "kind": "message",
                "messageId": f"msg-{uuid4().hex}",
                "role": "user",
                "parts": [{"kind": "text", "text": text}],
                "contextId": session_id,
            }
        },
        "id": f"req-{uuid4().hex}",
    }
