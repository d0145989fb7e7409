"""
RightToVote store.

Finds the anonymous right to vote of an identity by hashing it, and keeps the
delegation edges. It does not check for cycles, that is the job of the
delegation service.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import NotEligibleError
from core.security import calc_right_to_vote_id
from models.right_to_vote import RightToVote
from repositories.provider import RepositoryProviderProtocol
from schemas.identity import Identity

logger = structlog.get_logger(__name__)


class RightToVoteService:
    """Service for the anonymous rights to vote."""

    def __init__(self, repos: RepositoryProviderProtocol):
        self.repos = repos

    def _new_expiry(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(hours=settings.RIGHT_TO_VOTE_EXPIRATION_HOURS)

    async def find_by_owner(self, identity: Identity) -> Optional[RightToVote]:
        right_to_vote_id = calc_right_to_vote_id(identity.id, identity.email, identity.credential_secret)
        return await self.repos.right_to_votes.get_by_id(right_to_vote_id)

    async def find_by_checksum(self, right_to_vote_id: str) -> Optional[RightToVote]:
        return await self.repos.right_to_votes.get_by_id(right_to_vote_id)

    async def get_valid(self, identity: Identity) -> RightToVote:
        """Get the identity's right to vote or raise NotEligibleError if it is missing or expired."""
        right_to_vote = await self.find_by_owner(identity)
        if right_to_vote is None:
            raise NotEligibleError("You have no right to vote.")
        if right_to_vote.is_expired:
            raise NotEligibleError("Your right to vote has expired.", {"expired": True})
        return right_to_vote

    async def grant(self, identity: Identity) -> RightToVote:
        """
        Create the right to vote of an identity, or refresh it if it exists.

        Idempotent: granting twice keeps delegations and only extends the expiry.
        """
        right_to_vote = await self.find_by_owner(identity)
        if right_to_vote is None:
            right_to_vote = await self.repos.right_to_votes.create(
                calc_right_to_vote_id(identity.id, identity.email, identity.credential_secret),
                self._new_expiry(),
            )
            logger.info("right_to_vote_granted")
            return right_to_vote
        await self.refresh(right_to_vote)
        return right_to_vote

    async def refresh(self, right_to_vote: RightToVote) -> None:
        right_to_vote.expires_at = self._new_expiry()
        await self.repos.right_to_votes.save(right_to_vote)

    async def set_delegation(self, voter: RightToVote, proxy: RightToVote) -> None:
        voter.delegated_to_id = proxy.id
        await self.repos.right_to_votes.save(voter)

    async def clear_delegation(self, voter: RightToVote) -> None:
        voter.delegated_to_id = None
        await self.repos.right_to_votes.save(voter)
