"""
Tests for the delegation request notifications.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.mark.unit
class TestNotificationService:
    """Tests for NotificationService."""

    async def test_default_sender_only_logs(self) -> None:
        """Test that the default sender only logs."""
        from services.notification_service import LoggingNotificationSender, NotificationService

        service = NotificationService()

        assert isinstance(service.sender, LoggingNotificationSender)
        assert await service.send_delegation_request("user-proxy", 1) is False

    async def test_message_does_not_name_the_voter(self) -> None:
        """Test that the message does not name the voter."""
        from services.notification_service import NotificationService

        sender = MagicMock()
        sender.send = AsyncMock(return_value=True)
        service = NotificationService(sender)

        assert await service.send_delegation_request("user-proxy", 2) is True

        identity_id, subject, body = sender.send.call_args[0]
        assert identity_id == "user-proxy"
        assert "2 pending" in body
        assert "user-" not in body

    async def test_failing_sender_does_not_raise(self) -> None:
        """Test that a failing sender returns False."""
        from services.notification_service import NotificationService

        sender = MagicMock()
        sender.send = AsyncMock(side_effect=ConnectionError("smtp down"))
        service = NotificationService(sender)

        assert await service.send_delegation_request("user-proxy", 1) is False

    def test_sender_protocol(self) -> None:
        """Test that the logging sender implements the protocol."""
        from services.notification_service import LoggingNotificationSender, NotificationSender

        assert isinstance(LoggingNotificationSender(), NotificationSender)
