"""
Alert stream subscriber.

Connects to the khook alert push stream and hands each decoded alert to a
callback. The connection runs as its own asyncio task; the returned handle
cancels it. There is no automatic reconnect.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from ..errors import DecodeError, SkanyxxError, TransportError
from ..models.alerts import Alert
from .streaming import SSEFrameBuffer, parse_sse_frame
from .transport import BaseTransport

logger = logging.getLogger(__name__)

ALERT_STREAM_PATH = "/api/alerts/stream"
ALERT_EVENT = "alert"
HEARTBEAT_EVENT = "heartbeat"

AlertCallback = Callable[[Alert], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]


async def _invoke(callback: Optional[Callable[..., Any]], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def decode_alert(payload: str) -> Alert:
    """Decode one alert event payload."""
    try:
        return Alert.model_validate(json.loads(payload))
    except (ValueError, ValidationError) as e:
        raise DecodeError(f"Failed to parse alert event: {e}", payload=payload) from e


class AlertSubscription:
    """Handle to a running alert subscription."""

    def __init__(self, url: str):
        self.url = url
        self._task: Optional["asyncio.Task[None]"] = None

    def _attach(self, task: "asyncio.Task[None]") -> None:
        self._task = task

    @property
    def closed(self) -> bool:
        return self._task is None or self._task.done()

    def close(self) -> None:
        """Cancel the connection. Safe to call more than once."""
        if self._task and not self._task.done():
            logger.info(f"Closing alert stream {self.url}")
            self._task.cancel()

    async def aclose(self) -> None:
        self.close()
        await self.wait()

    async def wait(self) -> None:
        """Wait until the connection ends, by error, server close or cancellation."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass


async def _run_subscription(
    transport: BaseTransport,
    url: str,
    on_alert: AlertCallback,
    on_error: Optional[ErrorCallback]
) -> None:
    frames = SSEFrameBuffer()

    try:
        async with transport.open_stream("GET", url) as response:
            logger.info(f"Connected to alert stream {url}")
            async for chunk in response.aiter_bytes():
                for frame in frames.feed_bytes(chunk):
                    if not frame.strip():
                        continue
                    event = parse_sse_frame(frame)
                    if event.event == HEARTBEAT_EVENT:
                        continue
                    if event.event != ALERT_EVENT:
                        logger.debug(f"Ignoring alert stream event '{event.event}'")
                        continue
                    try:
                        alert = decode_alert(event.payload)
                    except DecodeError as e:
                        logger.error(f"{e}")
                        await _invoke(on_error, e)
                        continue
                    try:
                        await _invoke(on_alert, alert)
                    except Exception as e:
                        logger.error(f"Alert callback failed for alert {alert.id}: {e}")
                        await _invoke(on_error, e)
    except SkanyxxError as e:
        logger.error(f"Alert stream error: {e}")
        await _invoke(on_error, e)
        return

    logger.warning(f"Alert stream {url} closed by server")
    await _invoke(on_error, TransportError("Alert stream closed by server"))


def subscribe_to_alerts(
    transport: BaseTransport,
    hook_base_url: str,
    on_alert: AlertCallback,
    on_error: Optional[ErrorCallback] = None
) -> AlertSubscription:
    """Start the subscription task on the running loop and return its handle."""
    url = f"{hook_base_url.rstrip('/')}{ALERT_STREAM_PATH}"
    subscription = AlertSubscription(url)
    task = asyncio.get_running_loop().create_task(_run_subscription(transport, url, on_alert, on_error))
    subscription._attach(task)
    return subscription
