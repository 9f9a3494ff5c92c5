"""
Transport selection and request dispatch.

The runtime context (native shell bridge, plain browser-like client, local
dev server proxy) is resolved once when a client is built; the resulting
strategy object owns header construction and error normalization for every
call made through it.
"""

import json
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import ProtocolError, TransportError
from ..observability.logging_config import mask_headers, truncate_large_result

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


class RuntimeContext(str, Enum):
    NATIVE = "native"
    BROWSER = "browser"
    DEV_SERVER = "dev_server"


class Service(str, Enum):
    PRIMARY = "primary"
    HOOKS = "hooks"


def select_base_url(
    context: RuntimeContext,
    api_base_url: str,
    dev_proxy_url: str,
    override: Optional[str] = None
) -> str:
    """Base address of the primary backend's /api root for one runtime context."""
    if override:
        return override.rstrip("/")
    if context is RuntimeContext.DEV_SERVER:
        # The dev server proxies /api to the backend
        return f"{dev_proxy_url.rstrip('/')}/api"
    return f"{api_base_url.rstrip('/')}/api"


def select_hook_base_url(
    context: RuntimeContext,
    khook_url: str,
    dev_proxy_url: str,
    override: Optional[str] = None
) -> str:
    """Base address of the khook service for one runtime context."""
    if override:
        return override.rstrip("/")
    if context is RuntimeContext.DEV_SERVER:
        return f"{dev_proxy_url.rstrip('/')}/khook-api"
    return khook_url.rstrip("/")


class BaseTransport:
    """Sends one logical request over an httpx client and normalizes failures."""

    name = "base"

    def __init__(self, client: httpx.AsyncClient, user_id: str, token: Optional[str] = None):
        self.client = client
        self.user_id = user_id
        self.token = token

    def build_headers(self, method: str) -> Dict[str, str]:
        raise NotImplementedError

    async def send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """Send a request and return the decoded JSON body (None for an empty body)."""
        method = method.upper()
        request_headers = self.build_headers(method)
        if headers:
            request_headers.update({k: str(v) for k, v in headers.items()})

        content = json.dumps(body) if body is not None else None

        logger.debug(
            f"{self.name} {method} {url} params={params} headers={mask_headers(request_headers)} "
            f"body={truncate_large_result(body)}"
        )

        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                headers=request_headers,
                content=content,
            )
        except httpx.RequestError as e:
            logger.error(f"Network error calling {method} {url}: {e}")
            raise TransportError(f"Network error: {e}", cause=e) from e

        if not response.is_success:
            error_text = response.text
            logger.error(f"{method} {url} returned status {response.status_code}: {truncate_large_result(error_text)}")
            raise ProtocolError(
                f"HTTP error! status: {response.status_code}, message: {error_text}",
                status_code=response.status_code,
                body=error_text,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(
                f"Malformed JSON response from {url}: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    @asynccontextmanager
    async def open_stream(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed response; read failures inside the block become TransportError."""
        request_headers = {"Accept": "text/event-stream"}
        if body is not None:
            request_headers["Content-Type"] = "application/json"
        if self.token:
            request_headers["Authorization"] = f"Bearer {self.token}"
        if headers:
            request_headers.update(headers)

        content = json.dumps(body) if body is not None else None
        # Push streams may stay quiet indefinitely; only connecting is bounded
        timeout = httpx.Timeout(self.client.timeout.connect, read=None)

        try:
            async with self.client.stream(
                method.upper(), url, headers=request_headers, content=content, timeout=timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    error_text = response.text
                    logger.error(f"Stream {url} returned status {response.status_code}")
                    raise ProtocolError(
                        f"Stream request failed: {response.status_code}",
                        status_code=response.status_code,
                        body=error_text,
                    )
                yield response
        except httpx.RequestError as e:
            logger.error(f"Network error on stream {url}: {e}")
            raise TransportError(f"Network error: {e}", cause=e) from e

    async def aclose(self) -> None:
        await self.client.aclose()


class BridgeTransport(BaseTransport):
    """Privileged host bridge: explicit identity and auth headers, body sent as a string."""

    name = "bridge"

    def build_headers(self, method: str) -> Dict[str, str]:
        headers = {USER_ID_HEADER: self.user_id}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


class DirectTransport(BaseTransport):
    """Direct cross-origin networking: minimal headers to avoid preflight requests."""

    name = "direct"

    def build_headers(self, method: str) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        # Only add Content-Type for non-GET requests to avoid preflight
        if method != "GET":
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


def create_transport(
    context: RuntimeContext,
    client: httpx.AsyncClient,
    user_id: str,
    token: Optional[str] = None
) -> BaseTransport:
    """Pick the transport strategy for a runtime context."""
    if context is RuntimeContext.NATIVE:
        return BridgeTransport(client, user_id, token)
    return DirectTransport(client, user_id, token)
