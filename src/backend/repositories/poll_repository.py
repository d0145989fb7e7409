"""
Poll repository for database operations.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.poll import Poll, PollStatus, Proposal


class PollRepository:
    """Repository for poll and proposal database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, poll_id: str) -> Optional[Poll]:
        result = await self.db.execute(select(Poll).where(Poll.id == poll_id))
        return result.scalar_one_or_none()

    async def get_proposals(self, poll_id: str) -> list[Proposal]:
        """
        Get the proposals of a poll in candidate order.

        Candidate order (created_at, then id) is the row/column order of the
        duel matrix and decides between multiple ranked pairs winners.
        """
        result = await self.db.execute(
            select(Proposal)
            .where(Proposal.poll_id == poll_id)
            .order_by(Proposal.created_at, Proposal.id)
        )
        return list(result.scalars().all())

    async def list_voting_polls_ended(self, now: datetime) -> list[Poll]:
        """Get polls in voting whose scheduled end has passed."""
        result = await self.db.execute(
            select(Poll)
            .where(
                Poll.status == PollStatus.VOTING.value,
                Poll.voting_end_at.isnot(None),
                Poll.voting_end_at <= now,
            )
            .order_by(Poll.voting_end_at)
        )
        return list(result.scalars().all())

    async def save(self, poll: Poll, proposals: Optional[list[Proposal]] = None) -> None:
        """Persist a poll and, optionally, changed proposals."""
        self.db.add(poll)
        for proposal in proposals or []:
            self.db.add(proposal)
        await self.db.flush()
