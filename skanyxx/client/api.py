"""
KAgent backend client.

One client talks to two backends: the primary KAgent API (every call carries
the configured ``user_id`` query parameter) and the khook hook/alert service
(no identity parameter). The transport strategy is fixed when the client is
built from the configured runtime context.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..config.settings import KAgentConfig, build_api_url, get_config
from ..errors import NotFoundError, ProtocolError, SkanyxxError
from ..models.alerts import Alert, AlertSummary, Hook
from ..models.kagent import (
    DEFAULT_NAMESPACE,
    Agent,
    ChatMessage,
    ChatResponse,
    Feedback,
    KagentEvent,
    Memory,
    ModelConfig,
    Session,
    SessionAnalytics,
    Task,
    ToolServer,
    utc_now_iso,
)
from ..models.results import Result
from ..observability.logging_config import truncate_large_result
from .alerts import AlertCallback, AlertSubscription, ErrorCallback
from .alerts import subscribe_to_alerts as _subscribe_to_alerts
from .streaming import (
    StreamFrameAssembler,
    build_a2a_url,
    build_stream_request,
    resolve_agent_target,
)
from .transport import (
    BaseTransport,
    RuntimeContext,
    Service,
    create_transport,
    select_base_url,
    select_hook_base_url,
)

logger = logging.getLogger(__name__)

LOCAL_SESSION_PREFIX = "local-session-"
HOOKS_PATH = "/api/v1/hooks"
ALERTS_PATH = "/api/alerts"


def _unwrap(response: Any) -> Any:
    """Return the ``data`` member of a ``{"data": ...}`` envelope, or the response itself."""
    if isinstance(response, dict) and "data" in response:
        return response["data"]
    return response


def _parse_time(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


class KagentClient:
    """Async client for the KAgent primary backend and the khook service."""

    def __init__(
        self,
        config: Optional[KAgentConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        runtime: Optional[RuntimeContext] = None
    ):
        self.config = config or get_config()
        self.user_id = self.config.userId
        self.runtime = runtime or RuntimeContext(self.config.runtime)

        self.api_base_url = select_base_url(
            self.runtime,
            build_api_url(self.config),
            self.config.devProxyUrl,
            self.config.backendOverride,
        )
        self.hook_base_url = select_hook_base_url(self.runtime, self.config.khookUrl, self.config.devProxyUrl)

        client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self.transport: BaseTransport = create_transport(self.runtime, client, self.user_id, self.config.token)

        logger.info(
            f"KAgent client using {self.transport.name} transport: "
            f"api={self.api_base_url} hooks={self.hook_base_url}"
        )

    async def __aenter__(self) -> "KagentClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        service: Service = Service.PRIMARY
    ) -> Any:
        if service is Service.PRIMARY:
            url = f"{self.api_base_url}{path}"
            params = dict(params or {})
            params["user_id"] = self.user_id
        else:
            url = f"{self.hook_base_url}{path}"

        return await self.transport.send(method, url, params=params or None, body=body)

    async def _list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """GET a primary list endpoint; failures are logged and yield an empty list."""
        try:
            response = await self._request("GET", path, params=params)
        except SkanyxxError as e:
            logger.warning(f"Failed to list {path}: {e}")
            return []
        data = _unwrap(response)
        return data if isinstance(data, list) else []

    # Health

    async def ping(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except SkanyxxError as e:
            logger.debug(f"Ping failed: {e}")
            return False

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/sessions")
            return True
        except SkanyxxError as e:
            logger.warning(f"Connection test failed: {e}")
            return False

    # Agents

    async def get_agents(self) -> List[Agent]:
        """Fetch and normalize the agent list.

        The backend answers with a bare list, ``{"data": [...]}`` or
        ``{"items": [...]}``; anything else is treated as no agents.
        """
        response = await self._request("GET", "/agents")

        if isinstance(response, list):
            items = response
        elif isinstance(response, dict) and isinstance(response.get("data"), list):
            items = response["data"]
        elif isinstance(response, dict) and isinstance(response.get("items"), list):
            items = response["items"]
        else:
            logger.warning(f"Unrecognized /agents response: {truncate_large_result(response)}")
            return []

        return [Agent.from_api(item) for item in items if isinstance(item, dict)]

    # Sessions

    async def get_sessions(self) -> List[Session]:
        return [Session.model_validate(s) for s in await self._list("/sessions")]

    async def create_session(self, agent_ref: str, session_id: Optional[str] = None) -> Session:
        data: Dict[str, Any] = {"user_id": self.user_id, "agent_ref": agent_ref}
        if session_id:
            data["id"] = session_id

        response = await self._request("POST", "/sessions", body=data)
        return Session.model_validate(_unwrap(response))

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Fetch one session; None when the backend does not know it."""
        if session_id.startswith(LOCAL_SESSION_PREFIX):
            return Session(
                id=session_id,
                user_id=self.user_id,
                agent_ref="k8s-agent",
                name="Local Session",
                last_update_time=utc_now_iso(),
                synthetic=True,
            )

        try:
            response = await self._request("GET", f"/sessions/{session_id}")
        except ProtocolError as e:
            if e.status_code == 404:
                return None
            raise

        data = _unwrap(response)
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            data = data["session"]
        if not isinstance(data, dict) or "id" not in data:
            return None

        try:
            return Session.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                f"Malformed session {session_id}: {e}",
                body=truncate_large_result(data),
            ) from e

    async def get_session_messages(self, session_id: str) -> List[ChatMessage]:
        # Messages travel over A2A; the backend keeps no per-session message list
        return []

    async def get_session_events(
        self,
        session_id: str,
        limit: Optional[int] = None,
        after: Optional[str] = None
    ) -> List[KagentEvent]:
        params: Dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if after:
            params["after"] = after

        try:
            response = await self._request("GET", f"/sessions/{session_id}", params=params)
        except SkanyxxError as e:
            logger.warning(f"Failed to fetch events for session {session_id}: {e}")
            return []

        data = _unwrap(response)
        events = data.get("events") if isinstance(data, dict) else None
        return [KagentEvent.model_validate(e) for e in events or []]

    async def get_session_tasks(self, session_id: str) -> List[Task]:
        return [Task.model_validate(t) for t in await self._list(f"/sessions/{session_id}/tasks")]

    async def add_event_to_session(self, session_id: str, event_id: str, data: str) -> None:
        await self._request("POST", f"/sessions/{session_id}/events", body={"id": event_id, "data": data})

    async def get_sessions_for_agent(self, namespace: str, agent_name: str) -> List[Session]:
        return [Session.model_validate(s) for s in await self._list(f"/sessions/agent/{namespace}/{agent_name}")]

    async def get_session_analytics(self, session_id: str) -> SessionAnalytics:
        """Summarize one session from its events and tasks. Duration is in seconds."""
        events = await self.get_session_events(session_id)
        tasks = await self.get_session_tasks(session_id)

        session = await self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")

        tools_used: List[str] = []
        for task in tasks:
            for name in task.tools_used():
                if name not in tools_used:
                    tools_used.append(name)

        created_at = session.last_update_time or utc_now_iso()
        last_activity = events[-1].timestamp if events and events[-1].timestamp else created_at

        start, end = _parse_time(created_at), _parse_time(last_activity)
        duration = (end - start).total_seconds() if start and end else 0.0

        return SessionAnalytics(
            sessionId=session_id,
            totalMessages=len(events),
            totalTokens=sum(task.total_tokens() for task in tasks),
            duration=duration,
            toolsUsed=tools_used,
            createdAt=created_at,
            lastActivity=last_activity,
        )

    async def create_session_with_name(self, agent_ref: str, session_name: str) -> Result[Session]:
        """
        Create a named session for an agent.

        On failure, falls back to an existing session for the same agent and
        finally to a locally synthesized session; both come back as
        ``Result.fallback`` carrying the creation error.
        """
        qualified_ref = agent_ref if "/" in agent_ref else f"{DEFAULT_NAMESPACE}/{agent_ref}"
        data = {"user_id": self.user_id, "agent_ref": qualified_ref, "name": session_name}

        try:
            response = await self._request("POST", "/sessions", body=data)
            created = _unwrap(response)
            if not isinstance(created, dict) or not created.get("id"):
                raise ProtocolError("Invalid session response - missing session ID", body=str(response))

            return Result.ok(Session(
                id=created["id"],
                user_id=created.get("user_id") or self.user_id,
                agent_ref=created.get("agent_ref") or qualified_ref,
                agent_id=created.get("agent_id"),
                name=created.get("name"),
                last_update_time=created.get("last_update_time") or utc_now_iso(),
            ))
        except SkanyxxError as e:
            error = str(e)
            logger.warning(f"Failed to create session for {agent_ref}: {error}")

        for session in await self.get_sessions():
            if session.agent_ref in (agent_ref, qualified_ref):
                logger.info(f"Reusing existing session {session.id} for {agent_ref}")
                return Result.fallback(session, error)

        session = Session(
            id=f"{LOCAL_SESSION_PREFIX}{int(time.time() * 1000)}",
            user_id=self.user_id,
            agent_ref=agent_ref,
            name=session_name,
            last_update_time=utc_now_iso(),
            synthetic=True,
        )
        logger.warning(f"Using local session {session.id} for {agent_ref}")
        return Result.fallback(session, error)

    # Chat

    async def stream_message(self, session_id: str, text: str) -> ChatResponse:
        """Send one message over the A2A push stream and return the last agent reply."""
        session = await self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")

        namespace, agent_name = resolve_agent_target(session)
        url = build_a2a_url(self.api_base_url, namespace, agent_name)
        request = build_stream_request(session_id, text)

        logger.info(f"Sending message to {namespace}/{agent_name} in session {session_id}")

        assembler = StreamFrameAssembler()
        async with self.transport.open_stream("POST", url, body=request) as response:
            async for chunk in response.aiter_bytes():
                assembler.feed_bytes(chunk)

        if assembler.decode_errors:
            logger.warning(f"Skipped {assembler.decode_errors} malformed frame(s) from {namespace}/{agent_name}")

        return assembler.finish(session_id)

    async def send_message(self, session_id: str, text: str) -> Result[ChatResponse]:
        """Send one message; any failure yields a placeholder reply instead of raising."""
        try:
            return Result.ok(await self.stream_message(session_id, text))
        except SkanyxxError as e:
            logger.error(f"A2A send failed for session {session_id}: {e}")
            placeholder = ChatResponse(
                message=f'Placeholder response to: "{text}" (A2A error: {e})',
                sessionId=session_id,
                placeholder=True,
                error=str(e),
            )
            return Result.fallback(placeholder, str(e))

    # Tool servers

    async def get_tool_servers(self) -> List[ToolServer]:
        return [ToolServer.model_validate(t) for t in await self._list("/toolservers")]

    async def create_tool_server(self, request: Dict[str, Any]) -> ToolServer:
        response = await self._request("POST", "/toolservers", body=request)
        return ToolServer.model_validate(_unwrap(response))

    async def delete_tool_server(self, namespace: str, name: str) -> None:
        await self._request("DELETE", f"/toolservers/{namespace}/{name}")

    # Memories

    async def get_memories(self) -> List[Memory]:
        return [Memory.model_validate(m) for m in await self._list("/memories")]

    async def create_memory(self, request: Dict[str, Any]) -> Memory:
        response = await self._request("POST", "/memories", body=request)
        return Memory.model_validate(_unwrap(response))

    async def delete_memory(self, namespace: str, name: str) -> None:
        await self._request("DELETE", f"/memories/{namespace}/{name}")

    # Tasks

    async def get_task(self, task_id: str) -> Task:
        response = await self._request("GET", f"/tasks/{task_id}")
        return Task.model_validate(_unwrap(response))

    async def create_task(self, task_data: Dict[str, Any]) -> Task:
        response = await self._request("POST", "/tasks", body=task_data)
        return Task.model_validate(_unwrap(response))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    # Feedback

    async def submit_feedback(self, feedback: Feedback) -> None:
        await self._request("POST", "/feedback", body=feedback.model_dump(exclude_none=True))

    async def get_feedback(self) -> List[Feedback]:
        return [Feedback.model_validate(f) for f in await self._list("/feedback")]

    # Model configs and providers

    async def get_model_configs(self) -> List[ModelConfig]:
        return [ModelConfig.model_validate(m) for m in await self._list("/modelconfigs")]

    async def get_model_config(self, namespace: str, name: str) -> ModelConfig:
        response = await self._request("GET", f"/modelconfigs/{namespace}/{name}")
        return ModelConfig.model_validate(_unwrap(response))

    async def create_model_config(self, model_config: Dict[str, Any]) -> ModelConfig:
        response = await self._request("POST", "/modelconfigs", body=model_config)
        return ModelConfig.model_validate(_unwrap(response))

    async def update_model_config(self, namespace: str, name: str, model_config: Dict[str, Any]) -> ModelConfig:
        response = await self._request("PUT", f"/modelconfigs/{namespace}/{name}", body=model_config)
        return ModelConfig.model_validate(_unwrap(response))

    async def delete_model_config(self, namespace: str, name: str) -> None:
        await self._request("DELETE", f"/modelconfigs/{namespace}/{name}")

    async def get_providers(self) -> List[Dict[str, Any]]:
        return await self._list("/providers/models")

    async def get_models(self) -> List[Dict[str, Any]]:
        return await self._list("/models")

    async def get_namespaces(self) -> List[str]:
        return await self._list("/namespaces")

    # LangGraph checkpoints

    async def save_checkpoint(self, checkpoint: Dict[str, Any]) -> None:
        await self._request("POST", "/langgraph/checkpoints", body=checkpoint)

    async def get_checkpoints(self) -> List[Dict[str, Any]]:
        return await self._list("/langgraph/checkpoints")

    async def delete_checkpoint(self, thread_id: str) -> None:
        await self._request("DELETE", f"/langgraph/checkpoints/{thread_id}")

    # Hooks (khook)

    async def get_hooks(self) -> List[Hook]:
        response = await self._request("GET", HOOKS_PATH, service=Service.HOOKS)
        items = response.get("items") if isinstance(response, dict) else None
        return [Hook.model_validate(h) for h in items or []]

    async def get_hook(self, name: str, namespace: str = "default") -> Hook:
        response = await self._request("GET", f"{HOOKS_PATH}/{namespace}/{name}", service=Service.HOOKS)
        return Hook.model_validate(response)

    async def create_hook(self, hook: Hook) -> Hook:
        response = await self._request("POST", HOOKS_PATH, body=hook.to_payload(), service=Service.HOOKS)
        return Hook.model_validate(response)

    async def update_hook(self, name: str, namespace: str, hook: Hook) -> Hook:
        response = await self._request(
            "PUT", f"{HOOKS_PATH}/{namespace}/{name}", body=hook.to_payload(), service=Service.HOOKS
        )
        return Hook.model_validate(response)

    async def delete_hook(self, name: str, namespace: str = "default") -> None:
        await self._request("DELETE", f"{HOOKS_PATH}/{namespace}/{name}", service=Service.HOOKS)

    # Alerts (khook)

    async def get_alerts(self) -> List[Alert]:
        response = await self._request("GET", ALERTS_PATH, service=Service.HOOKS)
        return [Alert.model_validate(a) for a in _unwrap(response) or []]

    async def get_alert_summary(self) -> AlertSummary:
        response = await self._request("GET", f"{ALERTS_PATH}/summary", service=Service.HOOKS)
        data = _unwrap(response)
        if not data:
            return AlertSummary()
        return AlertSummary.model_validate(data)

    async def acknowledge_alert(self, alert_id: str) -> None:
        await self._request("POST", f"{ALERTS_PATH}/{alert_id}/acknowledge", service=Service.HOOKS)

    async def resolve_alert(self, alert_id: str) -> None:
        await self._request("POST", f"{ALERTS_PATH}/{alert_id}/resolve", service=Service.HOOKS)

    async def subscribe_to_alerts(
        self,
        on_alert: AlertCallback,
        on_error: Optional[ErrorCallback] = None
    ) -> AlertSubscription:
        return _subscribe_to_alerts(self.transport, self.hook_base_url, on_alert, on_error)


