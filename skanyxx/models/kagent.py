"""
KAgent backend models: agents, sessions, chat messages and the
auxiliary resources exposed by the primary API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
import logging

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "kagent"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _condition_true(conditions: List[Dict[str, Any]], condition_type: str) -> bool:
    return any(
        c.get("type") == condition_type and c.get("status") == "True"
        for c in conditions
        if isinstance(c, dict)
    )


class Agent(BaseModel):
    """Immutable snapshot of an agent as reported by the backend."""
    id: str
    name: str
    namespace: str = DEFAULT_NAMESPACE
    type: str = "Declarative"
    ready: bool = False
    accepted: bool = True
    description: str = ""
    model_config = ConfigDict(frozen=True)

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Agent":
        """Normalize one entry of the /agents response.

        Entries come either as a bare agent resource or wrapped as
        ``{"agent": {...}, "deploymentReady": bool}``.
        """
        agent = item.get("agent") or item
        metadata = agent.get("metadata") or {}
        spec = agent.get("spec") or {}
        status = agent.get("status") or {}
        conditions = status.get("conditions") or []

        accepted = True
        if conditions and any(c.get("type") == "Accepted" for c in conditions if isinstance(c, dict)):
            accepted = _condition_true(conditions, "Accepted")

        return cls(
            id=agent.get("id") or metadata.get("name") or agent.get("name") or "unknown",
            name=metadata.get("name") or agent.get("name") or "Unknown",
            namespace=metadata.get("namespace") or agent.get("namespace") or DEFAULT_NAMESPACE,
            type=spec.get("type") or agent.get("type") or "Declarative",
            ready=item.get("deploymentReady") is True or _condition_true(conditions, "Ready"),
            accepted=accepted,
            description=spec.get("description") or agent.get("description") or "",
        )


class Session(BaseModel):
    """A chat session bound to one agent."""
    id: str
    user_id: str = ""
    agent_ref: Optional[str] = None
    agent_id: Optional[str] = None
    last_update_time: Optional[str] = None
    name: Optional[str] = None
    synthetic: bool = Field(False, description="True for sessions synthesized locally after a backend failure")
    model_config = ConfigDict(extra='allow')


class ChatMessage(BaseModel):
    """One message of a chat history. Append-only."""
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: str = Field(default_factory=utc_now_iso)
    sessionId: str
    placeholder: bool = Field(False, description="True for assistant replies synthesized after a failed send")


class ChatResponse(BaseModel):
    """Final reply to a sent message.

    ``placeholder`` is only set on replies synthesized after a failed send;
    ``error`` then carries the original error text.
    """
    message: str
    sessionId: str
    timestamp: str = Field(default_factory=utc_now_iso)
    placeholder: bool = False
    error: Optional[str] = None


class KagentEvent(BaseModel):
    id: str = ""
    data: Any = None
    timestamp: str = ""
    model_config = ConfigDict(extra='allow')


class TaskHistoryPart(BaseModel):
    kind: str = ""
    text: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra='allow')


class TaskHistoryItem(BaseModel):
    kind: str = ""
    parts: List[TaskHistoryPart] = Field(default_factory=list)
    model_config = ConfigDict(extra='allow')


class Task(BaseModel):
    id: str
    sessionId: str = ""
    status: Any = None
    metadata: Optional[Dict[str, Any]] = None
    history: List[TaskHistoryItem] = Field(default_factory=list)
    model_config = ConfigDict(extra='allow')

    def total_tokens(self) -> int:
        usage = (self.metadata or {}).get("kagent_usage_metadata") or {}
        return int(usage.get("totalTokenCount") or 0)

    def tools_used(self) -> List[str]:
        """Names of the function calls recorded in this task's history."""
        names = []
        for item in self.history:
            if item.kind != "message":
                continue
            for part in item.parts:
                if part.kind != "data":
                    continue
                if (part.metadata or {}).get("kagent_type") == "function_call":
                    name = (part.data or {}).get("name")
                    if name:
                        names.append(name)
        return names


class SessionAnalytics(BaseModel):
    sessionId: str
    totalMessages: int
    totalTokens: int
    duration: float
    toolsUsed: List[str]
    createdAt: str
    lastActivity: str


class DiscoveredTool(BaseModel):
    name: str
    description: str = ""


class ToolServer(BaseModel):
    ref: str
    groupKind: str = ""
    discoveredTools: List[DiscoveredTool] = Field(default_factory=list)
    model_config = ConfigDict(extra='allow')


class Memory(BaseModel):
    ref: str
    providerName: str = ""
    apiKeySecretRef: str = ""
    apiKeySecretKey: str = ""
    memoryParams: Dict[str, Any] = Field(default_factory=dict)
    model_config = ConfigDict(extra='allow')


class ModelConfig(BaseModel):
    ref: str
    providerName: str = ""
    model: str = ""
    apiKeySecretRef: str = ""
    apiKeySecretKey: str = ""
    modelParams: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra='allow', protected_namespaces=())


class Feedback(BaseModel):
    id: Optional[str] = None
    messageId: int
    feedbackText: str
    isPositive: bool
    issueType: Optional[str] = None
    userId: str
    createdAt: Optional[str] = None
    model_config = ConfigDict(extra='allow')
