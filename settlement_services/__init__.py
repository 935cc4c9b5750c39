"""
settlement_services -- Outer services layer.

Responsibility:
    Notification dispatchers, the read-only query surface and the service
    wiring container.  Module packages never import from here.
"""

from settlement_services.container import SettlementServices
from settlement_services.notifications import (
    InMemoryNotificationDispatcher,
    LoggingNotificationDispatcher,
)
from settlement_services.queries import SettlementQueries

__all__ = [
    "InMemoryNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "SettlementQueries",
    "SettlementServices",
]
