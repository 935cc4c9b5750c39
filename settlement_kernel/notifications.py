"""
Notification value object and dispatcher protocol.

Services never deliver notifications themselves.  They hand a
``Notification`` to a ``NotificationDispatcher`` through
``dispatch_after_commit``, which defers the call until the owning unit of
work has committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from settlement_kernel.db.unit_of_work import UnitOfWork
from settlement_kernel.logging_config import get_logger

logger = get_logger("notifications")

OTP_REQUESTED = "signature.otp_requested"
LEASE_ACTIVATED = "lease.activated"
PDC_CLEARED = "pdc.cleared"
STATEMENT_ISSUED = "billing.statement_issued"
PAYMENT_RECEIVED = "billing.payment_received"


@dataclass(frozen=True)
class Notification:
    """A request to notify a party.  ``payload`` may hold secrets (OTP)."""

    kind: str
    lease_id: UUID
    recipient_id: UUID | None = None
    recipient: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: Notification) -> None: ...


def dispatch_after_commit(
    uow: UnitOfWork,
    dispatcher: NotificationDispatcher | None,
    notification: Notification,
) -> None:
    """Queue ``notification`` for delivery once ``uow`` commits."""
    logger.info("notification_enqueued", extra={
        "kind": notification.kind,
        "lease_id": str(notification.lease_id),
        "has_dispatcher": dispatcher is not None,
    })
    if dispatcher is not None:
        uow.after_commit(lambda: dispatcher.dispatch(notification))
