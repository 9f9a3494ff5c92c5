"""
khook models: hook definitions, alerts raised by hooks and alert summaries.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import logging

logger = logging.getLogger(__name__)

EVENT_TYPES = ("pod-restart", "pod-pending", "oom-kill", "probe-failed")
SEVERITIES = ("critical", "high", "medium", "low")


class Alert(BaseModel):
    """An alert pushed by khook. ``id`` is the upsert key."""
    id: str
    hookName: str = ""
    namespace: str = ""
    eventType: str = ""
    resourceName: str = ""
    severity: Literal["low", "medium", "high", "critical"] = "medium"
    status: Literal["firing", "resolved", "acknowledged"] = "firing"
    firstSeen: str = ""
    lastSeen: str = ""
    message: str = ""
    agentId: str = ""
    sessionId: Optional[str] = None
    taskId: Optional[str] = None
    remediationStatus: Optional[Literal["pending", "in_progress", "completed", "failed"]] = None
    model_config = ConfigDict(extra='ignore')

    @field_validator('severity', 'status', mode='before')
    @classmethod
    def normalize_case(cls, v):
        """Normalize severity and status to lowercase."""
        if v:
            return str(v).lower()
        return v


class AlertSeverityBreakdown(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class AlertEventTypeBreakdown(BaseModel):
    pod_restart: int = Field(0, alias="pod-restart")
    pod_pending: int = Field(0, alias="pod-pending")
    oom_kill: int = Field(0, alias="oom-kill")
    probe_failed: int = Field(0, alias="probe-failed")
    model_config = ConfigDict(populate_by_name=True)


class AlertSummary(BaseModel):
    total: int = 0
    firing: int = 0
    resolved: int = 0
    acknowledged: int = 0
    bySeverity: AlertSeverityBreakdown = Field(default_factory=AlertSeverityBreakdown)
    byEventType: AlertEventTypeBreakdown = Field(default_factory=AlertEventTypeBreakdown)

    @classmethod
    def from_alerts(cls, alerts: List[Alert]) -> "AlertSummary":
        """Count alerts by status, severity and event type."""
        summary = cls(total=len(alerts))
        for alert in alerts:
            setattr(summary, alert.status, getattr(summary, alert.status) + 1)
            setattr(summary.bySeverity, alert.severity, getattr(summary.bySeverity, alert.severity) + 1)
            if alert.eventType in EVENT_TYPES:
                field = alert.eventType.replace("-", "_")
                setattr(summary.byEventType, field, getattr(summary.byEventType, field) + 1)
        return summary


class AgentRef(BaseModel):
    name: str


class EventConfiguration(BaseModel):
    """Maps one Kubernetes event type to the agent that should handle it."""
    eventType: str
    agentRef: AgentRef
    prompt: str = Field("", description="Prompt template sent to the agent")

    @field_validator('eventType')
    @classmethod
    def check_event_type(cls, v):
        if v not in EVENT_TYPES:
            logger.warning(f"Unknown hook event type: {v}")
        return v


class ActiveEventStatus(BaseModel):
    eventType: str
    resourceName: str = ""
    firstSeen: str = ""
    lastSeen: str = ""
    status: str = "firing"


class HookStatus(BaseModel):
    activeEvents: List[ActiveEventStatus] = Field(default_factory=list)
    lastUpdated: Optional[str] = None


class HookMetadata(BaseModel):
    name: str
    namespace: str = "default"
    creationTimestamp: Optional[str] = None
    uid: Optional[str] = None
    model_config = ConfigDict(extra='allow')


class HookSpec(BaseModel):
    eventConfigurations: List[EventConfiguration] = Field(default_factory=list)


class Hook(BaseModel):
    """Declarative hook resource. Created and edited by users only."""
    apiVersion: str = "kagent.dev/v1alpha2"
    kind: str = "Hook"
    metadata: HookMetadata
    spec: HookSpec = Field(default_factory=HookSpec)
    status: Optional[HookStatus] = None
    model_config = ConfigDict(extra='allow')

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
