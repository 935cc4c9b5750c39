"""
Notification dispatchers.

Delivery itself (email, push) is outside this package.  These dispatchers
are the two ends the engine ships with: one that only logs, for local runs,
and one that keeps notifications in memory, for tests and for a caller that
drains and delivers them itself.
"""

from __future__ import annotations

from settlement_kernel.logging_config import get_logger
from settlement_kernel.notifications import OTP_REQUESTED, Notification

logger = get_logger("services.notifications")


class LoggingNotificationDispatcher:
    """Logs each notification.  The payload is never logged; it may hold an OTP."""

    def dispatch(self, notification: Notification) -> None:
        logger.info("notification_dispatched", extra={
            "kind": notification.kind,
            "lease_id": str(notification.lease_id),
            "recipient_id": (
                str(notification.recipient_id) if notification.recipient_id else None
            ),
            "recipient": notification.recipient,
            "payload_keys": sorted(notification.payload),
        })


class InMemoryNotificationDispatcher:
    """Collects notifications in ``sent``.

    ``fail_with`` makes every dispatch raise, to exercise post-commit
    failure handling.
    """

    def __init__(self, fail_with: Exception | None = None):
        self.sent: list[Notification] = []
        self.fail_with = fail_with

    def dispatch(self, notification: Notification) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(notification)

    def of_kind(self, kind: str) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]

    def last_otp(self, role: str) -> str:
        """The code from the most recent OTP notification for ``role``."""
        for notification in reversed(self.sent):
            if (
                notification.kind == OTP_REQUESTED
                and notification.payload.get("role") == role
            ):
                return notification.payload["code"]
        raise LookupError(f"No OTP notification sent for role {role!r}")

    def clear(self) -> None:
        self.sent.clear()
