"""
Tests for delegation and right to vote repositories.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.mark.unit
class TestDelegationRepository:
    """Test DelegationRepository operations."""

    async def test_list_requests_only_pending(self, mock_db_session) -> None:
        """Test that only pending requests are listed."""
        from repositories.delegation_repository import DelegationRepository

        mock_scalars = MagicMock()
        mock_scalars.all = MagicMock(return_value=[])
        mock_result = MagicMock()
        mock_result.scalars = MagicMock(return_value=mock_scalars)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = DelegationRepository(mock_db_session)
        await repo.list_requests_for_proxy("user-proxy")

        statement = str(mock_db_session.execute.call_args[0][0])
        assert "delegations.requested_delegation_from_id IS NOT NULL" in statement

    async def test_create_request(self, mock_db_session) -> None:
        """Test creating a delegation request."""
        from repositories.delegation_repository import DelegationRepository

        repo = DelegationRepository(mock_db_session)
        now = datetime.now(timezone.utc)
        delegation = await repo.create("user-a", "user-b", requested_delegation_from_id="rtv-a", requested_delegation_at=now)

        mock_db_session.add.assert_called_once_with(delegation)
        assert delegation.is_delegation_request is True
        assert delegation.requested_delegation_at == now


@pytest.mark.unit
class TestRightToVoteRepository:
    """Test RightToVoteRepository operations."""

    async def test_count_delegated_to(self, mock_db_session) -> None:
        """Test counting active delegations."""
        from repositories.right_to_vote_repository import RightToVoteRepository

        mock_result = MagicMock()
        mock_result.scalar = MagicMock(return_value=4)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = RightToVoteRepository(mock_db_session)

        assert await repo.count_delegated_to("rtv-proxy") == 4

    async def test_create_without_delegation(self, mock_db_session) -> None:
        """Test that a new right to vote has no delegation."""
        from repositories.right_to_vote_repository import RightToVoteRepository

        repo = RightToVoteRepository(mock_db_session)
        right_to_vote = await repo.create("rtv-hash", datetime.now(timezone.utc))

        assert right_to_vote.delegated_to_id is None
        assert right_to_vote.is_public_proxy is False
        assert "rtv-hash" not in repr(right_to_vote)

    async def test_get_by_id_refreshes_loaded_instance(self, mock_db_session) -> None:
        """Test that lookups overwrite stale attributes of already loaded rows."""
        from repositories.right_to_vote_repository import RightToVoteRepository

        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(return_value=None)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = RightToVoteRepository(mock_db_session)
        await repo.get_by_id("rtv-hash")

        statement = mock_db_session.execute.call_args[0][0]
        assert statement.get_execution_options()["populate_existing"] is True
