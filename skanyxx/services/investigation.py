"""
Investigation progression.

An investigation walks an ordered plan of agent names. Each step opens (or
resumes) a chat with the agent resolved for that step; the chat history of
the plan's agents is copied into the investigation on request and feeds the
findings report when it is completed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from ..errors import StateError
from ..models.investigation import (
    Investigation,
    InvestigationPlan,
    InvestigationStatus,
    SubstitutionNotice,
)
from ..models.kagent import Agent, ChatMessage, utc_now_iso
from ..storage.redis_helper import InvestigationRepository
from .chat_store import ChatHistoryStore
from .findings import extract_findings

logger = logging.getLogger(__name__)

ChatStarter = Callable[[Agent], Awaitable[Any]]


@dataclass
class AgentResolution:
    requested: str
    agent: Agent
    notice: Optional[SubstitutionNotice] = None

    @property
    def substituted(self) -> bool:
        return self.notice is not None


def find_agent(name: str, agents: List[Agent]) -> Optional[Agent]:
    """Exact name match first, then case-insensitive substring match."""
    for agent in agents:
        if agent.name == name:
            return agent
    lowered = name.lower()
    for agent in agents:
        if lowered in agent.name.lower():
            return agent
    return None


def resolve_agent(name: str, agents: List[Agent], step: int) -> AgentResolution:
    """Resolve a plan agent, falling back to the first available agent with a notice."""
    if not agents:
        raise StateError("No agents available. Please check your connection.")

    agent = find_agent(name, agents)
    if agent is not None:
        return AgentResolution(requested=name, agent=agent)

    notice = SubstitutionNotice(step=step, requested=name, used=agents[0].name)
    logger.warning(str(notice))
    return AgentResolution(requested=name, agent=agents[0], notice=notice)


class InvestigationManager:
    """
    Owns the single active investigation and the append-only history.

    Reads chat history from the shared store; never writes to it.
    """

    def __init__(
        self,
        store: ChatHistoryStore,
        start_chat: ChatStarter,
        repository: Optional[InvestigationRepository] = None
    ):
        self.store = store
        self.start_chat = start_chat
        self.repository = repository or InvestigationRepository()
        self.agents: List[Agent] = []
        self.last_failure: Optional[Investigation] = None

        self.active: Optional[Investigation] = self.repository.load_active()
        self._history: List[Investigation] = self.repository.load_history()

    @property
    def history(self) -> List[Investigation]:
        return list(self._history)

    def set_agents(self, agents: Iterable[Agent]) -> None:
        """Replace the known agent list wholesale."""
        self.agents = list(agents)

    def _persist(self) -> None:
        self.repository.save_active(self.active)
        self.repository.save_history(self._history)

    def _require_active(self) -> Investigation:
        if self.active is None or not self.active.is_active:
            raise StateError("No active investigation")
        return self.active

    def _fail(self, investigation: Investigation, error: str) -> StateError:
        investigation.status = InvestigationStatus.FAILED
        investigation.error = error
        investigation.end_time = utc_now_iso()
        self.last_failure = investigation
        logger.error(f"Investigation '{investigation.name}' failed to start: {error}")
        return StateError(error)

    async def start(self, plan: InvestigationPlan, agents: Optional[List[Agent]] = None) -> AgentResolution:
        """
        Start a new investigation and open a chat with its first agent.

        Any investigation still active is discarded, not moved to history.
        """
        if agents is not None:
            self.set_agents(agents)

        if self.active is not None:
            logger.warning(f"Discarding active investigation {self.active.id} ({self.active.name})")
            self.active = None
            self._persist()

        investigation = Investigation(name=plan.name, description=plan.description, agents=list(plan.agents))

        if not plan.agents:
            raise self._fail(investigation, f"Investigation {plan.name} has no agents in its plan")
        if not self.agents:
            raise self._fail(investigation, "No agents available. Please check your connection.")
        if not any(find_agent(name, self.agents) for name in plan.agents):
            raise self._fail(
                investigation,
                f"No required agents available for {plan.name}. Required: {', '.join(plan.agents)}",
            )

        self.active = investigation
        self.last_failure = None
        logger.info(f"Started investigation: {plan.name} ({investigation.id})")

        try:
            resolution = await self._open_step(investigation, 0)
        except Exception as e:
            self.active = None
            failure = self._fail(investigation, f"Failed to open chat for {plan.name}: {e}")
            self._persist()
            raise failure from e

        self._persist()
        return resolution

    async def _open_step(self, investigation: Investigation, step: int) -> AgentResolution:
        resolution = resolve_agent(investigation.agents[step], self.agents, step)
        await self.start_chat(resolution.agent)

        investigation.resolved_agents[resolution.requested] = resolution.agent.name
        if resolution.notice is not None:
            investigation.notices.append(resolution.notice)
        investigation.last_updated = utc_now_iso()
        logger.info(f"Investigation step {step + 1}/{len(investigation.agents)} with agent: {resolution.agent.name}")
        return resolution

    async def advance(self) -> AgentResolution:
        """Move to the next plan agent; rejected on the last step."""
        investigation = self._require_active()
        next_step = investigation.current_step + 1
        if next_step >= len(investigation.agents):
            raise StateError(
                f"Investigation {investigation.id} is already at its last step "
                f"({investigation.current_step + 1}/{len(investigation.agents)})"
            )

        resolution = await self._open_step(investigation, next_step)
        investigation.current_step = next_step
        self._persist()
        return resolution

    def add_chat_messages(self, messages: Iterable[ChatMessage]) -> int:
        """Append messages to the live feed, skipping ids already present."""
        investigation = self._require_active()
        seen = {m.id for m in investigation.chat_messages}
        added = 0
        for message in messages:
            if message.id not in seen:
                seen.add(message.id)
                investigation.chat_messages.append(message)
                added += 1
        if added:
            investigation.last_updated = utc_now_iso()
            self._persist()
        return added

    def integrate_chat_sessions(self) -> Investigation:
        """Copy the current chat history of every plan agent into the investigation."""
        investigation = self._require_active()

        keys = {name: investigation.resolved_agents.get(name, name) for name in investigation.agents}
        snapshot = self.store.snapshot(keys.values())
        for plan_name, store_key in keys.items():
            if store_key in snapshot:
                investigation.agent_sessions[plan_name] = snapshot[store_key]

        investigation.last_updated = utc_now_iso()
        logger.info(
            f"Integrated chat history for {len(investigation.agent_sessions)} agent(s) "
            f"into investigation {investigation.id}"
        )
        self._persist()
        return investigation

    def report_messages(self, investigation: Optional[Investigation] = None) -> List[ChatMessage]:
        """
        Integrated messages flattened in plan order.

        Without an integrated snapshot the live messages are used: the
        investigation's own feed when it has one, otherwise the store's
        current history of each resolved plan agent.
        """
        investigation = investigation or self.active
        if investigation is None:
            return []

        messages: List[ChatMessage] = []
        if investigation.agent_sessions:
            for name in investigation.agents:
                messages.extend(investigation.agent_sessions.get(name, []))
            return messages
        if investigation.chat_messages:
            return list(investigation.chat_messages)

        seen = set()
        for name in investigation.agents:
            store_key = investigation.resolved_agents.get(name, name)
            if store_key in seen:
                continue
            seen.add(store_key)
            messages.extend(self.store.messages(store_key))
        return messages

    def _close(self, status: InvestigationStatus) -> Investigation:
        investigation = self._require_active()
        investigation.status = status
        investigation.end_time = utc_now_iso()
        investigation.last_updated = investigation.end_time

        self._history.append(investigation)
        self.active = None
        self._persist()
        return investigation

    def complete(
        self,
        findings: Optional[List[str]] = None,
        recommendations: Optional[List[str]] = None
    ) -> Investigation:
        """Complete the active investigation at whatever step it is on."""
        investigation = self._require_active()
        extracted = extract_findings(self.report_messages(investigation))

        investigation.findings = findings if findings is not None else extracted.findings
        investigation.recommendations = recommendations if recommendations is not None else extracted.recommendations
        investigation.insights = extracted.insights

        closed = self._close(InvestigationStatus.COMPLETED)
        logger.info(
            f"Completed investigation {closed.id}: {len(closed.findings)} finding(s), "
            f"{len(closed.recommendations)} recommendation(s)"
        )
        return closed

    def cancel(self) -> Investigation:
        closed = self._close(InvestigationStatus.CANCELLED)
        logger.info(f"Cancelled investigation {closed.id}")
        return closed
