"""
Tests for the KAgent primary API wrappers and khook hook endpoints.
"""

import json

import httpx
import pytest

from skanyxx.errors import ProtocolError
from skanyxx.models.alerts import AgentRef, EventConfiguration, Hook, HookMetadata, HookSpec
from skanyxx.models.kagent import Feedback


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

AGENT_RESOURCE = {
    "metadata": {"name": "k8s-agent", "namespace": "kagent"},
    "spec": {"type": "Declarative", "description": "Kubernetes expert"},
    "status": {"conditions": [{"type": "Ready", "status": "True"}, {"type": "Accepted", "status": "False"}]},
}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    [AGENT_RESOURCE],
    {"data": [AGENT_RESOURCE]},
    {"items": [{"agent": AGENT_RESOURCE, "deploymentReady": False}]},
])
async def test_get_agents_normalizes_response_shapes(make_client, recorder, payload):
    recorder.json("GET", "/api/agents", payload)
    client = make_client()

    agents = await client.get_agents()

    assert len(agents) == 1
    agent = agents[0]
    assert (agent.id, agent.name, agent.namespace, agent.ref) == ("k8s-agent", "k8s-agent", "kagent", "kagent/k8s-agent")
    assert agent.ready is True
    assert agent.accepted is False
    assert agent.description == "Kubernetes expert"


@pytest.mark.asyncio
async def test_get_agents_unknown_shape_is_empty(make_client, recorder):
    recorder.json("GET", "/api/agents", {"unexpected": True})
    assert await make_client().get_agents() == []


# ---------------------------------------------------------------------------
# Lists degrade to empty
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_endpoints_return_empty_on_failure(make_client):
    client = make_client()

    assert await client.get_sessions() == []
    assert await client.get_tool_servers() == []
    assert await client.get_memories() == []
    assert await client.get_feedback() == []
    assert await client.get_model_configs() == []
    assert await client.get_providers() == []
    assert await client.get_models() == []
    assert await client.get_namespaces() == []
    assert await client.get_checkpoints() == []
    assert await client.get_session_events("s1") == []
    assert await client.get_session_tasks("s1") == []
    assert await client.ping() is False


@pytest.mark.asyncio
async def test_list_endpoints_unwrap_data(make_client, recorder):
    recorder.json("GET", "/api/namespaces", {"data": ["default", "kagent"]})
    recorder.json("GET", "/api/toolservers", {"data": [{"ref": "kagent/tools", "discoveredTools": [{"name": "k8s_get"}]}]})
    client = make_client()

    assert await client.get_namespaces() == ["default", "kagent"]
    servers = await client.get_tool_servers()
    assert servers[0].discoveredTools[0].name == "k8s_get"


@pytest.mark.asyncio
async def test_mutations_propagate_errors(make_client):
    client = make_client()
    with pytest.raises(ProtocolError):
        await client.delete_memory("kagent", "m1")
    with pytest.raises(ProtocolError):
        await client.submit_feedback(Feedback(messageId=1, feedbackText="good", isPositive=True, userId="u"))


# ---------------------------------------------------------------------------
# Session analytics
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_session_analytics(make_client, recorder):
    def session_with_events(request):
        return httpx.Response(200, json={"data": {
            "session": {"id": "s1", "last_update_time": "2024-01-01T00:00:00Z"},
            "events": [
                {"id": "e1", "timestamp": "2024-01-01T00:00:30Z"},
                {"id": "e2", "timestamp": "2024-01-01T00:01:00Z"},
            ],
        }})

    tool_call = {
        "kind": "data",
        "data": {"name": "k8s_get_pods"},
        "metadata": {"kagent_type": "function_call"},
    }
    recorder.add("GET", "/api/sessions/s1", session_with_events)
    recorder.json("GET", "/api/sessions/s1/tasks", {"data": [
        {"id": "t1", "metadata": {"kagent_usage_metadata": {"totalTokenCount": 120}},
         "history": [{"kind": "message", "parts": [tool_call, tool_call]}]},
        {"id": "t2", "metadata": {"kagent_usage_metadata": {"totalTokenCount": 30}}},
    ]})
    client = make_client()

    analytics = await client.get_session_analytics("s1")

    assert analytics.totalMessages == 2
    assert analytics.totalTokens == 150
    assert analytics.toolsUsed == ["k8s_get_pods"]
    assert analytics.duration == 60.0
    assert analytics.lastActivity == "2024-01-01T00:01:00Z"


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------

def make_hook():
    return Hook(
        metadata=HookMetadata(name="pod-hook", namespace="default"),
        spec=HookSpec(eventConfigurations=[
            EventConfiguration(eventType="pod-restart", agentRef=AgentRef(name="k8s-agent"), prompt="Investigate {{.ResourceName}}"),
        ]),
    )


@pytest.mark.asyncio
async def test_hook_crud(make_client, recorder):
    hook = make_hook()
    recorder.json("GET", "/api/v1/hooks", {"items": [hook.to_payload()]})
    recorder.json("GET", "/api/v1/hooks/default/pod-hook", hook.to_payload())
    recorder.add("POST", "/api/v1/hooks", lambda request: httpx.Response(201, content=request.content))
    recorder.add("PUT", "/api/v1/hooks/default/pod-hook", lambda request: httpx.Response(200, content=request.content))
    recorder.add("DELETE", "/api/v1/hooks/default/pod-hook", lambda request: httpx.Response(204))
    client = make_client()

    hooks = await client.get_hooks()
    assert hooks[0].name == "pod-hook"
    assert (await client.get_hook("pod-hook")).spec.eventConfigurations[0].agentRef.name == "k8s-agent"

    created = await client.create_hook(hook)
    assert created.namespace == "default"
    sent = json.loads(recorder.last("POST", "/api/v1/hooks").content)
    assert sent["kind"] == "Hook"
    assert "status" not in sent

    updated = await client.update_hook("pod-hook", "default", hook)
    assert updated.name == "pod-hook"
    await client.delete_hook("pod-hook")
    assert recorder.last("DELETE", "/api/v1/hooks/default/pod-hook").url.host == "khook.test"
