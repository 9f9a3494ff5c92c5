"""Named KAgent connections and the agents each one exposes."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..client.api import KagentClient
from ..config.settings import KAgentConfig
from ..errors import SkanyxxError
from ..models.kagent import Agent, utc_now_iso

logger = logging.getLogger(__name__)

ClientFactory = Callable[[KAgentConfig], KagentClient]


@dataclass
class ConnectionStatus:
    connected: bool = False
    last_checked: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Connector:
    id: str
    name: str
    config: KAgentConfig
    client: KagentClient
    status: ConnectionStatus = field(default_factory=ConnectionStatus)
    agents: List[Agent] = field(default_factory=list)


class ConnectorRegistry:
    """Keeps connectors in insertion order; at most one is active."""

    def __init__(self, client_factory: ClientFactory = KagentClient):
        self.client_factory = client_factory
        self._connectors: Dict[str, Connector] = {}
        self.active_id: Optional[str] = None

    @property
    def connectors(self) -> List[Connector]:
        return list(self._connectors.values())

    @property
    def active(self) -> Optional[Connector]:
        return self._connectors.get(self.active_id) if self.active_id else None

    def all_agents(self) -> List[Agent]:
        return [agent for c in self._connectors.values() for agent in c.agents]

    def add(self, config: KAgentConfig, name: Optional[str] = None, connector_id: Optional[str] = None) -> Connector:
        connector_id = connector_id or f"connector-{int(time.time() * 1000)}"
        if connector_id in self._connectors:
            raise ValueError(f"Connector already exists: {connector_id}")

        connector = Connector(
            id=connector_id,
            name=name or f"KAgent {len(self._connectors) + 1}",
            config=config,
            client=self.client_factory(config),
        )
        self._connectors[connector_id] = connector
        if self.active_id is None:
            self.active_id = connector_id

        logger.info(f"Added connector: {connector.name}")
        return connector

    async def remove(self, connector_id: str) -> None:
        connector = self._connectors.pop(connector_id, None)
        if connector is None:
            return

        await connector.client.aclose()
        if self.active_id == connector_id:
            self.active_id = next(iter(self._connectors), None)
        logger.info(f"Removed connector: {connector.name}")

    def set_active(self, connector_id: str) -> Connector:
        if connector_id not in self._connectors:
            raise KeyError(f"Unknown connector: {connector_id}")
        self.active_id = connector_id
        return self._connectors[connector_id]

    async def connect(self, connector_id: str) -> Connector:
        """Refresh a connector's agent list; the list is replaced wholesale on success."""
        connector = self._connectors[connector_id]
        logger.info(f"Connecting to {connector.name}...")

        try:
            agents = await connector.client.get_agents()
        except SkanyxxError as e:
            connector.status = ConnectionStatus(connected=False, last_checked=utc_now_iso(), error=str(e))
            logger.error(f"Connection to {connector.name} failed: {e}")
            return connector

        connector.agents = agents
        connector.status = ConnectionStatus(connected=True, last_checked=utc_now_iso())
        logger.info(f"Connected to {connector.name}! Found {len(agents)} agents")
        return connector

    async def check_status(self, connector_id: str) -> ConnectionStatus:
        connector = self._connectors[connector_id]
        connected = await connector.client.test_connection()
        connector.status = ConnectionStatus(
            connected=connected,
            last_checked=utc_now_iso(),
            error=None if connected else "Connection test failed",
        )
        return connector.status

    async def aclose(self) -> None:
        for connector in self._connectors.values():
            await connector.client.aclose()
