"""
Voter token service.

A voter token proves possession of a right to vote in one poll without
revealing the voter. Only its hash is stored, and it can be consumed once.
"""

from datetime import datetime, timedelta, timezone

import structlog

from core.config import settings
from core.exceptions import InvalidPollStatusError, InvalidTokenError
from core.security import calc_hashed_voter_token, generate_plain_voter_token, is_plausible_voter_token
from models.poll import Poll, PollStatus
from models.right_to_vote import RightToVote
from repositories.provider import RepositoryProviderProtocol
from schemas.identity import Identity
from services.right_to_vote_service import RightToVoteService

logger = structlog.get_logger(__name__)


class VoterTokenService:
    """Issues, resolves and consumes poll scoped voter tokens."""

    def __init__(self, repos: RepositoryProviderProtocol, right_to_votes: RightToVoteService):
        self.repos = repos
        self.right_to_votes = right_to_votes

    async def issue(self, identity: Identity, poll: Poll) -> str:
        """
        Issue a fresh voter token for the identity in this poll.

        Returns the plain token. It is only ever returned to the voter, the
        server keeps nothing but its hash.

        Raises:
            NotEligibleError: identity has no valid right to vote
            InvalidPollStatusError: poll is still in elaboration
        """
        if poll.status == PollStatus.ELABORATION.value:
            raise InvalidPollStatusError(
                "Cannot get a voter token for a poll in elaboration.",
                {"poll_id": poll.id, "status": poll.status},
            )
        right_to_vote = await self.right_to_votes.get_valid(identity)
        await self.right_to_votes.refresh(right_to_vote)

        plain_voter_token = generate_plain_voter_token()
        await self.repos.voter_tokens.create(
            calc_hashed_voter_token(plain_voter_token, poll.id),
            poll.id,
            right_to_vote.id,
            datetime.now(timezone.utc) + timedelta(hours=settings.VOTER_TOKEN_EXPIRATION_HOURS),
        )
        logger.info("voter_token_issued", poll_id=poll.id)
        return plain_voter_token

    async def resolve(self, plain_voter_token: str, poll: Poll) -> RightToVote:
        """Look up the right to vote of a token without consuming it."""
        if not is_plausible_voter_token(plain_voter_token):
            raise InvalidTokenError("Voter token is invalid.")
        voter_token = await self.repos.voter_tokens.get_by_hash(calc_hashed_voter_token(plain_voter_token, poll.id))
        if voter_token is None or voter_token.poll_id != poll.id or voter_token.is_expired:
            raise InvalidTokenError("Voter token is invalid or expired.")
        if voter_token.right_to_vote_id is None:
            raise InvalidTokenError("Voter token is not linked to a right to vote.")
        return await self._load_right_to_vote(voter_token.right_to_vote_id)

    async def consume(self, plain_voter_token: str, poll: Poll) -> RightToVote:
        """
        Consume a token and return its right to vote. A token can be consumed exactly once.

        Raises:
            InvalidTokenError: unknown, expired, already used, for another poll or unlinked
        """
        if not is_plausible_voter_token(plain_voter_token):
            raise InvalidTokenError("Voter token is invalid.")
        right_to_vote_id = await self.repos.voter_tokens.consume(
            calc_hashed_voter_token(plain_voter_token, poll.id),
            poll.id,
            datetime.now(timezone.utc),
        )
        if right_to_vote_id is None:
            raise InvalidTokenError("Voter token is invalid, expired or already used.")
        return await self._load_right_to_vote(right_to_vote_id)

    async def _load_right_to_vote(self, right_to_vote_id: str) -> RightToVote:
        right_to_vote = await self.repos.right_to_votes.get_by_id(right_to_vote_id)
        if right_to_vote is None:
            raise InvalidTokenError("Voter token is not linked to a right to vote.")
        return right_to_vote

    async def cleanup_expired(self) -> int:
        """Delete expired tokens. Idempotent."""
        deleted = await self.repos.voter_tokens.delete_expired(datetime.now(timezone.utc))
        if deleted:
            logger.info("expired_voter_tokens_deleted", count=deleted)
        return deleted
