"""Chat flow between callers, the history store and the KAgent client."""

import logging
from datetime import datetime
from typing import Optional, Union
from uuid import uuid4

from ..client.api import KagentClient
from ..errors import NotFoundError
from ..models.kagent import Agent, ChatMessage, ChatResponse
from ..models.results import Result
from ..observability.logging_config import truncate_large_result
from .chat_store import ChatEntry, ChatHistoryStore

logger = logging.getLogger(__name__)


def _message_id() -> str:
    return f"msg-{uuid4().hex}"


class ChatService:
    """Starts chats, sends messages and records both sides in the store."""

    def __init__(self, client: KagentClient, store: ChatHistoryStore):
        self.client = client
        self.store = store

    async def start_chat(self, agent: Union[Agent, str], initial_message: Optional[str] = None) -> ChatEntry:
        """Restore the cached session for an agent, or create and cache a new one."""
        agent_name = agent.name if isinstance(agent, Agent) else agent

        entry = self.store.get(agent_name)
        if entry is not None:
            logger.info(f"Restoring chat session {entry.session.id} for {agent_name} ({len(entry.messages)} messages)")
        else:
            session_name = f"Chat with {agent_name} - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
            logger.info(f"Creating new session: {session_name}")

            result = await self.client.create_session_with_name(agent_name, session_name)
            if result.is_error:
                raise NotFoundError(f"Failed to start chat with {agent_name}: {result.error}")
            if result.is_fallback:
                logger.warning(f"Chat with {agent_name} uses fallback session {result.value.id}: {result.error}")

            entry = self.store.set_session(agent_name, result.value)
            messages = await self.client.get_session_messages(result.value.id)
            if messages:
                self.store.append_messages(agent_name, messages)

        if initial_message:
            await self.send(agent_name, initial_message)

        return entry

    async def send(self, agent_name: str, text: str) -> Result[ChatResponse]:
        """
        Send one message to an agent's cached session.

        The user message is recorded before the call; the reply, placeholder
        replies included, is recorded after it.
        """
        entry = self.store.get(agent_name)
        if entry is None:
            raise NotFoundError(f"No chat session for agent {agent_name}")

        session_id = entry.session.id
        logger.info(f"Sending message to {agent_name}: {truncate_large_result(text, 50)}")

        user_message = ChatMessage(id=_message_id(), role="user", content=text, sessionId=session_id)
        self.store.append_messages(agent_name, [user_message])

        result = await self.client.send_message(session_id, text)
        response = result.value

        reply = ChatMessage(
            id=_message_id(),
            role="assistant",
            content=response.message or "No response received",
            timestamp=response.timestamp,
            sessionId=session_id,
            placeholder=response.placeholder,
        )
        self.store.append_messages(agent_name, [user_message, reply])

        if result.is_fallback:
            logger.warning(f"Placeholder reply recorded for {agent_name}: {result.error}")
        return result
