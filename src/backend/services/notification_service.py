"""
Notification Service

Tells proxies about delegation requests that wait for their acceptance.
Delivery (email, push) is done by an external collaborator that implements
NotificationSender. The default sender only logs.
"""

from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Outbound notification channel."""

    async def send(self, identity_id: str, subject: str, body: str) -> bool: ...


class LoggingNotificationSender:
    """Sender used when no delivery channel is configured."""

    async def send(self, identity_id: str, subject: str, body: str) -> bool:
        logger.info("notification_not_delivered", identity_id=identity_id, subject=subject)
        return False


class NotificationService:
    """Builds and sends the notifications of the delegation manager."""

    def __init__(self, sender: NotificationSender | None = None):
        self.sender = sender or LoggingNotificationSender()

    async def send_delegation_request(self, proxy_id: str, pending_count: int) -> bool:
        """
        Notify a proxy that delegation requests are waiting.

        Never names the requesting voter. The proxy sees them when they list
        their requests. A failing channel must not fail the delegation.
        """
        subject = "New delegation request"
        body = (
            f"A voter asked you to be their proxy. You have {pending_count} "
            "pending delegation request(s) waiting for your acceptance."
        )
        try:
            return await self.sender.send(proxy_id, subject, body)
        except Exception as e:
            logger.error("delegation_request_notification_failed", proxy_id=proxy_id, error=str(e))
            return False
