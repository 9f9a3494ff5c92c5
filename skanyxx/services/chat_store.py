"""
Per-agent chat history.

The store is keyed by agent name only, so two agents that share a name in
different namespaces share one entry.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..models.kagent import ChatMessage, Session, utc_now_iso

logger = logging.getLogger(__name__)

MAX_MESSAGES_PER_AGENT = 50


@dataclass
class ChatEntry:
    session: Session
    messages: List[ChatMessage] = field(default_factory=list)
    last_active: str = field(default_factory=utc_now_iso)


class ChatHistoryStore:
    """Owned store of one live session and its messages per agent name."""

    def __init__(self, max_messages: int = MAX_MESSAGES_PER_AGENT):
        self.max_messages = max_messages
        self._entries: Dict[str, ChatEntry] = {}

    def __contains__(self, agent_name: str) -> bool:
        return agent_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def agents(self) -> List[str]:
        return list(self._entries)

    def get(self, agent_name: str) -> Optional[ChatEntry]:
        return self._entries.get(agent_name)

    def set_session(self, agent_name: str, session: Session) -> ChatEntry:
        """Bind a session to an agent. Messages are kept when the session id is unchanged."""
        entry = self._entries.get(agent_name)
        if entry is not None and entry.session.id == session.id:
            entry.session = session
            entry.last_active = utc_now_iso()
            return entry

        if entry is not None:
            logger.info(f"Replacing session {entry.session.id} for agent {agent_name} with {session.id}")

        entry = ChatEntry(session=session)
        self._entries[agent_name] = entry
        return entry

    def append_messages(self, agent_name: str, messages: Iterable[ChatMessage]) -> int:
        """
        Append a batch, skipping messages whose id is already present.

        Arrival order is preserved, and the entry is trimmed afterwards.
        Returns the number of messages actually appended.
        """
        entry = self._entries.get(agent_name)
        if entry is None:
            raise KeyError(f"No chat session for agent {agent_name}")

        seen = {m.id for m in entry.messages}
        added = 0
        for message in messages:
            if message.id in seen:
                continue
            seen.add(message.id)
            entry.messages.append(message)
            added += 1

        entry.last_active = utc_now_iso()
        self.trim(agent_name)
        return added

    def messages(self, agent_name: str) -> List[ChatMessage]:
        entry = self._entries.get(agent_name)
        return list(entry.messages) if entry else []

    def trim(self, agent_name: str, limit: Optional[int] = None) -> None:
        """Keep only the most recent ``limit`` messages of one agent."""
        limit = self.max_messages if limit is None else limit
        entry = self._entries.get(agent_name)
        if entry is not None and len(entry.messages) > limit:
            dropped = len(entry.messages) - limit
            entry.messages = entry.messages[-limit:] if limit > 0 else []
            logger.debug(f"Trimmed {dropped} message(s) from {agent_name} history")

    def snapshot(self, agent_names: Iterable[str]) -> Dict[str, List[ChatMessage]]:
        """Deep copies of the message lists of the named agents that have an entry."""
        return {
            name: [m.model_copy(deep=True) for m in self._entries[name].messages]
            for name in agent_names
            if name in self._entries
        }

    def remove(self, agent_name: str) -> None:
        self._entries.pop(agent_name, None)

    def clear(self) -> None:
        self._entries.clear()
