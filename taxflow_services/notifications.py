"""
Notification delivery seam (``taxflow_services.notifications``).

Contract:
    ``Notifier`` is the outbound channel every workflow talks to.  The core
    never knows whether a notification becomes an e-mail, an SMS or an
    in-app message.  ``HandlerDirectory`` maps a handler role to the
    identity that receives its work.

Failure modes:
    ``dispatch_notification`` logs a failed delivery as
    ``notification_failed`` and returns False.  The state change that
    prompted the notification is never rolled back because of it, and
    delivery is not retried.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@runtime_checkable
class Notifier(Protocol):
    async def notify(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None: ...


class LoggingNotifier:
    """Default channel: every notification becomes a structured log line."""

    async def notify(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient": recipient,
                "title": title,
                "body": message,
                "severity": severity.value,
            },
        )


class RecordingNotifier:
    """Keeps every notification in memory, in delivery order.

    Used for dry runs and tests.
    """

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def notify(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None:
        self.sent.append(Notification(recipient, title, message, severity))

    def to(self, recipient: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient == recipient]

    def clear(self) -> None:
        self.sent.clear()


async def dispatch_notification(
    notifier: Notifier,
    notification: Notification,
) -> bool:
    """Deliver ``notification``; True on success, False if the channel failed."""
    try:
        await notifier.notify(
            notification.recipient,
            notification.title,
            notification.message,
            notification.severity,
        )
    except Exception:
        logger.warning(
            "notification_failed",
            extra={
                "recipient": notification.recipient,
                "title": notification.title,
            },
            exc_info=True,
        )
        return False
    return True


# =============================================================================
# Handler directory
# =============================================================================


class HandlerDirectory(Protocol):
    def handler_for(self, role: Role) -> str: ...


class StaticHandlerDirectory:
    """Role -> handler identity from configuration.

    Roles without an entry fall back to a shared queue per role, e.g.
    ``queue:manager``.
    """

    def __init__(self, handlers: dict[str, str] | None = None) -> None:
        self._handlers = dict(handlers or {})

    def handler_for(self, role: Role) -> str:
        return self._handlers.get(role.value, f"queue:{role.value.lower()}")
