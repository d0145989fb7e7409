"""
Voter token repository for database operations.

Consumption is a single conditional DELETE ... RETURNING, so two concurrent
consumers of the same token can never both succeed.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.voter_token import VoterToken


class VoterTokenRepository:
    """Repository for voter token database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_hash(self, hashed_voter_token: str) -> Optional[VoterToken]:
        result = await self.db.execute(
            select(VoterToken).where(VoterToken.hashed_voter_token == hashed_voter_token)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        hashed_voter_token: str,
        poll_id: str,
        right_to_vote_id: str,
        expires_at: datetime,
    ) -> VoterToken:
        voter_token = VoterToken(
            hashed_voter_token=hashed_voter_token,
            poll_id=poll_id,
            right_to_vote_id=right_to_vote_id,
            expires_at=expires_at,
        )
        self.db.add(voter_token)
        await self.db.flush()
        return voter_token

    async def consume(self, hashed_voter_token: str, poll_id: str, now: datetime) -> Optional[str]:
        """
        Atomically delete a valid token and return its linked right to vote id.

        Returns None if no unexpired token with this hash exists for the poll,
        or if the token is not linked to a right to vote.
        """
        result = await self.db.execute(
            delete(VoterToken)
            .where(
                VoterToken.hashed_voter_token == hashed_voter_token,
                VoterToken.poll_id == poll_id,
                VoterToken.expires_at >= now,
            )
            .returning(VoterToken.right_to_vote_id)
        )
        row = result.first()
        return row[0] if row else None


    async def delete_expired(self, now: datetime) -> int:
        """Delete all tokens with expires_at < now. Safe to run concurrently."""
        result = await self.db.execute(delete(VoterToken).where(VoterToken.expires_at < now))
        return self._get_rowcount(result)
