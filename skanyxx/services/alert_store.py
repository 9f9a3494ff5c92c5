"""
In-memory alert collection fed by the khook alert stream.
"""

import logging
from typing import Any, Dict, List, Optional

from ..client.alerts import AlertSubscription
from ..client.api import KagentClient
from ..models.alerts import Alert, AlertSummary

logger = logging.getLogger(__name__)


class AlertStore:
    """
    Alerts keyed by id, newest first.

    A pushed alert whose id is already present replaces the stored record in
    place, so a "firing" then "resolved" pair for one id leaves a single
    resolved record.
    """

    def __init__(self):
        self._alerts: List[Alert] = []
        self._subscription: Optional[AlertSubscription] = None
        self.error: Optional[str] = None

    @property
    def alerts(self) -> List[Alert]:
        return list(self._alerts)

    @property
    def is_streaming(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def get(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self._alerts if a.id == alert_id), None)

    def set_alerts(self, alerts: List[Alert]) -> None:
        self._alerts = []
        for alert in alerts:
            if self.get(alert.id) is None:
                self._alerts.append(alert)

    def upsert(self, alert: Alert) -> None:
        for index, existing in enumerate(self._alerts):
            if existing.id == alert.id:
                self._alerts[index] = alert
                logger.debug(f"Updated alert {alert.id}: {alert.status}")
                return
        self._alerts.insert(0, alert)
        logger.info(f"New alert {alert.id} ({alert.severity}) {alert.eventType} on {alert.namespace}/{alert.resourceName}")

    def update(self, alert_id: str, **updates: Any) -> Optional[Alert]:
        """Apply field updates to one stored alert; returns the new record, or None if unknown."""
        for index, existing in enumerate(self._alerts):
            if existing.id == alert_id:
                data: Dict[str, Any] = existing.model_dump()
                data.update(updates)
                self._alerts[index] = Alert.model_validate(data)
                return self._alerts[index]
        logger.warning(f"Cannot update unknown alert {alert_id}")
        return None

    def acknowledge(self, alert_id: str) -> Optional[Alert]:
        return self.update(alert_id, status="acknowledged")

    def resolve(self, alert_id: str) -> Optional[Alert]:
        return self.update(alert_id, status="resolved")

    def summary(self) -> AlertSummary:
        return AlertSummary.from_alerts(self._alerts)

    def _on_error(self, error: Exception) -> None:
        self.error = str(error)
        logger.error(f"Alert stream failed: {error}")

    async def start_streaming(self, client: KagentClient) -> AlertSubscription:
        """Subscribe to the client's alert stream; a second call returns the running subscription."""
        if self.is_streaming:
            return self._subscription

        self.error = None
        self._subscription = await client.subscribe_to_alerts(self.upsert, self._on_error)
        return self._subscription

    async def stop_streaming(self) -> None:
        if self._subscription is not None:
            await self._subscription.aclose()
            self._subscription = None
