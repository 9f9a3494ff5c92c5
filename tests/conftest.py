"""
Shared fixtures: a KagentClient wired to an in-process httpx mock transport.
"""

import json
from typing import Callable, Iterable, List, Optional

import httpx
import pytest

from skanyxx.client.api import KagentClient
from skanyxx.client.transport import RuntimeContext
from skanyxx.config.settings import KAgentConfig
from skanyxx.models.kagent import Agent

API = "http://kagent.test:8083/api"
KHOOK = "http://khook.test"


def sse_frame(payload, event: Optional[str] = None) -> str:
    """One push-stream frame carrying ``payload`` (JSON-encoded unless already a string)."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {data}\n\n"


def agent_status(text: str, role: str = "agent") -> dict:
    return {
        "jsonrpc": "2.0",
        "id": "req-1",
        "result": {
            "kind": "status-update",
            "status": {"state": "working", "message": {"role": role, "parts": [{"kind": "text", "text": text}]}},
        },
    }


def streamed(chunks: Iterable[bytes], status_code: int = 200) -> httpx.Response:
    """A response whose body arrives as the given byte chunks."""
    async def body():
        for chunk in chunks:
            yield chunk

    return httpx.Response(status_code, content=body(), headers={"content-type": "text/event-stream"})


class Recorder:
    """Mock transport handler that routes by (method, path) and records requests."""

    def __init__(self):
        self.routes = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, path)] = handler

    def json(self, method: str, path: str, payload, status_code: int = 200) -> None:
        self.add(method, path, lambda request: httpx.Response(status_code, json=payload))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        return handler(request)

    def last(self, method: str, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method and request.url.path == path:
                return request
        raise AssertionError(f"no {method} {path} request recorded")


@pytest.fixture
def config():
    return KAgentConfig(
        baseUrl="kagent.test",
        port=8083,
        protocol="http",
        token="secret-token",
        userId="tester@kagent.dev",
        khookUrl=KHOOK,
    )


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_client(config, recorder):
    def _factory(runtime: RuntimeContext = RuntimeContext.BROWSER) -> KagentClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return KagentClient(config, http_client=http_client, runtime=runtime)
    return _factory


@pytest.fixture
def agents():
    return [
        Agent(id="k8s-agent", name="k8s-agent"),
        Agent(id="observability-agent", name="observability-agent"),
        Agent(id="helm-agent", name="helm-agent"),
    ]
