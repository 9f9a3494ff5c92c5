"""Investigation records and plans."""

from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field

from .kagent import ChatMessage, utc_now_iso


class InvestigationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class InvestigationPlan(BaseModel):
    """Name, description and the ordered agent names an investigation steps through."""
    name: str
    description: str = ""
    agents: List[str] = Field(default_factory=list)


class SubstitutionNotice(BaseModel):
    """Emitted when a plan agent could not be matched and another agent was used instead."""
    step: int
    requested: str
    used: str
    timestamp: str = Field(default_factory=utc_now_iso)

    def __str__(self) -> str:
        return f"Agent {self.requested} not found, using first available agent: {self.used}"


class Investigation(BaseModel):
    id: str = Field(default_factory=lambda: f"inv-{uuid4().hex[:12]}")
    name: str
    description: str = ""
    agents: List[str]
    current_step: int = 0
    status: InvestigationStatus = InvestigationStatus.ACTIVE
    start_time: str = Field(default_factory=utc_now_iso)
    end_time: Optional[str] = None
    last_updated: Optional[str] = None
    agent_sessions: Dict[str, List[ChatMessage]] = Field(default_factory=dict)
    chat_messages: List[ChatMessage] = Field(default_factory=list)
    findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    notices: List[SubstitutionNotice] = Field(default_factory=list)
    resolved_agents: Dict[str, str] = Field(default_factory=dict, description="Plan agent name -> agent actually used")
    error: Optional[str] = None

    @property
    def current_agent(self) -> Optional[str]:
        if 0 <= self.current_step < len(self.agents):
            return self.agents[self.current_step]
        return None

    @property
    def is_active(self) -> bool:
        return self.status is InvestigationStatus.ACTIVE
