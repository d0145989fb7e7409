"""
Ballot repository for database operations.

Implements privacy-preserving ballot storage: readers get ballots by poll and
right to vote or by checksum, never by voter.
"""

from typing import Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.ballot import Ballot


class BallotRepository:
    """Repository for ballot database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_poll_and_right_to_vote(self, poll_id: str, right_to_vote_id: str) -> Optional[Ballot]:
        result = await self.db.execute(
            select(Ballot).where(
                Ballot.poll_id == poll_id,
                Ballot.right_to_vote_id == right_to_vote_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_poll_and_checksum(self, poll_id: str, checksum: str) -> Optional[Ballot]:
        result = await self.db.execute(
            select(Ballot).where(Ballot.poll_id == poll_id, Ballot.checksum == checksum)
        )
        return result.scalars().first()

    async def list_vote_orders(self, poll_id: str) -> list[list[str]]:
        """Get the vote order of every ballot in a poll, in a stable order."""
        result = await self.db.execute(
            select(Ballot.vote_order).where(Ballot.poll_id == poll_id).order_by(Ballot.id)
        )
        return [list(vote_order) for vote_order in result.scalars().all()]

    async def count_by_poll(self, poll_id: str) -> int:
        result = await self.db.execute(select(func.count(Ballot.id)).where(Ballot.poll_id == poll_id))
        return result.scalar() or 0

    async def upsert(
        self,
        poll_id: str,
        right_to_vote_id: str,
        level: int,
        vote_order: list[str],
        checksum: str,
    ) -> Optional[Ballot]:
        """
        Insert a ballot, or overwrite the existing one of this right to vote.

        An existing ballot with a smaller level is kept, and None is returned.
        The level comparison runs inside the statement, under the row lock of
        the conflicting row, so a concurrent closer vote is never overwritten.

        NOTE: no timestamps are stored - they would allow timing attacks.
        """
        stmt = pg_insert(Ballot).values(
            id=str(uuid4()),
            poll_id=poll_id,
            right_to_vote_id=right_to_vote_id,
            level=level,
            vote_order=list(vote_order),
            checksum=checksum,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Ballot.poll_id, Ballot.right_to_vote_id],
            set_={
                "level": stmt.excluded.level,
                "vote_order": stmt.excluded.vote_order,
                "checksum": stmt.excluded.checksum,
            },
            where=Ballot.level >= stmt.excluded.level,
        )
        result = await self.db.scalars(
            stmt.returning(Ballot),
            execution_options={"populate_existing": True},
        )
        return result.one_or_none()
