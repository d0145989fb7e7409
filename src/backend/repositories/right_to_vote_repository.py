"""
RightToVote repository for database operations.

The anonymous side of the delegation graph lives here: every forward edge is
RightToVote.delegated_to_id, reverse lookups use the index on that column.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.right_to_vote import RightToVote


class RightToVoteRepository:
    """Repository for right to vote database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, right_to_vote_id: str) -> Optional[RightToVote]:
        """
        Get a right to vote by its hashed id.

        Always refreshes an already loaded instance, so delegation edges
        committed by another transaction are seen after taking the graph lock.
        """
        result = await self.db.execute(
            select(RightToVote)
            .where(RightToVote.id == right_to_vote_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_delegated_to(self, right_to_vote_id: str) -> list[RightToVote]:
        """Get all rights to vote that are delegated to the given one (reverse edges)."""
        result = await self.db.execute(
            select(RightToVote)
            .where(RightToVote.delegated_to_id == right_to_vote_id)
            .order_by(RightToVote.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count_delegated_to(self, right_to_vote_id: str) -> int:
        """Count the active delegations to a right to vote."""
        result = await self.db.execute(
            select(func.count(RightToVote.id)).where(RightToVote.delegated_to_id == right_to_vote_id)
        )
        return result.scalar() or 0

    async def create(self, right_to_vote_id: str, expires_at: datetime) -> RightToVote:
        """Create a new right to vote without any delegation."""
        right_to_vote = RightToVote(id=right_to_vote_id, expires_at=expires_at)
        self.db.add(right_to_vote)
        await self.db.flush()
        return right_to_vote

    async def save(self, right_to_vote: RightToVote) -> None:
        """Persist changes of a right to vote (delegation edge, expiry, public proxy)."""
        self.db.add(right_to_vote)
        await self.db.flush()
