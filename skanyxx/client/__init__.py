from .api import KagentClient
from .alerts import AlertSubscription
from .transport import RuntimeContext, Service

__all__ = ["KagentClient", "AlertSubscription", "RuntimeContext", "Service"]
