"""
Effective proxy resolver.

Finds out who actually decided the ballot that is counted for a voter: the
voter, their direct proxy, or any proxy further up the chain.
"""

from typing import Optional

import structlog

from core.config import settings
from core.exceptions import DataInconsistencyError, InvalidPollStatusError, InvalidTokenError
from core.security import calc_right_to_vote_id
from models.ballot import Ballot
from models.poll import Poll, PollStatus
from models.right_to_vote import RightToVote
from repositories.provider import RepositoryProviderProtocol
from schemas.identity import Identity
from services.voter_token_service import VoterTokenService

logger = structlog.get_logger(__name__)


def _ensure_not_in_elaboration(poll: Poll) -> None:
    if poll.status == PollStatus.ELABORATION.value:
        raise InvalidPollStatusError(
            "Poll is still in elaboration, there are no ballots yet.",
            {"poll_id": poll.id, "status": poll.status},
        )


class ProxyService:
    """Walks the delegation chain of a voter in one poll."""

    def __init__(self, repos: RepositoryProviderProtocol, voter_tokens: VoterTokenService):
        self.repos = repos
        self.voter_tokens = voter_tokens

    async def find_effective_proxy(self, poll: Poll, identity: Identity, plain_voter_token: str) -> Optional[str]:
        """
        Find the identity that cast the ballot counted for this voter.

        Walks RightToVote.delegated_to and Delegation.to_proxy in parallel
        until it reaches a ballot with level 0.

        Returns:
            None if neither the voter nor any of their proxies voted yet.
            The voter's id if they voted themselves or their delegation was
            removed after the proxy had voted.
            Otherwise the id of the proxy who cast the ballot.

        Raises:
            InvalidPollStatusError: poll is in elaboration
            InvalidTokenError: token is invalid or does not belong to the identity
            DataInconsistencyError: the delegation graph is corrupt
        """
        _ensure_not_in_elaboration(poll)
        right_to_vote = await self.voter_tokens.resolve(plain_voter_token, poll)
        if right_to_vote.id != calc_right_to_vote_id(identity.id, identity.email, identity.credential_secret):
            raise InvalidTokenError("Voter token does not belong to you.")

        current: RightToVote = right_to_vote
        identity_guess = identity.id
        for _ in range(settings.MAX_DELEGATION_CHAIN_LENGTH + 1):
            if current.public_proxy_id is not None and current.public_proxy_id != identity_guess:
                logger.error("public_proxy_reached_under_wrong_identity", poll_id=poll.id)
                raise DataInconsistencyError("Public proxy right to vote reached under a wrong identity.")

            ballot = await self.repos.ballots.get_by_poll_and_right_to_vote(poll.id, current.id)
            if ballot is None:
                return None
            if ballot.level == 0:
                return identity_guess
            if current.delegated_to_id is None:
                return identity_guess

            delegation = await self.repos.delegations.get_by_from_user(identity_guess)
            if delegation is None or delegation.is_delegation_request:
                logger.error("delegated_right_to_vote_without_delegation", poll_id=poll.id)
                raise DataInconsistencyError(
                    "Right to vote is delegated, but there is no accepted delegation.",
                    {"poll_id": poll.id},
                )
            next_rtv = await self.repos.right_to_votes.get_by_id(current.delegated_to_id)
            if next_rtv is None:
                logger.error("delegation_target_missing", poll_id=poll.id)
                raise DataInconsistencyError("Right to vote references a missing proxy.")

            current = next_rtv
            identity_guess = delegation.to_proxy_id

        logger.error("delegation_chain_too_long", poll_id=poll.id)
        raise DataInconsistencyError("Delegation chain exceeds its maximum length.")

    async def get_ballot_of_direct_proxy(self, poll: Poll, plain_voter_token: str) -> Optional[Ballot]:
        """Ballot of the right to vote this voter delegated to, if any."""
        _ensure_not_in_elaboration(poll)
        right_to_vote = await self.voter_tokens.resolve(plain_voter_token, poll)
        if right_to_vote.delegated_to_id is None:
            return None
        return await self.repos.ballots.get_by_poll_and_right_to_vote(poll.id, right_to_vote.delegated_to_id)

    async def get_ballot_of_top_proxy(self, poll: Poll, plain_voter_token: str) -> Optional[Ballot]:
        """Ballot of the last right to vote in this voter's delegation chain, if any."""
        _ensure_not_in_elaboration(poll)
        right_to_vote = await self.voter_tokens.resolve(plain_voter_token, poll)
        if right_to_vote.delegated_to_id is None:
            return None

        top_id = right_to_vote.delegated_to_id
        for _ in range(settings.MAX_DELEGATION_CHAIN_LENGTH):
            top = await self.repos.right_to_votes.get_by_id(top_id)
            if top is None:
                logger.error("delegation_target_missing", poll_id=poll.id)
                raise DataInconsistencyError("Right to vote references a missing proxy.")
            if top.delegated_to_id is None:
                return await self.repos.ballots.get_by_poll_and_right_to_vote(poll.id, top.id)
            top_id = top.delegated_to_id

        logger.error("delegation_chain_too_long", poll_id=poll.id)
        raise DataInconsistencyError("Delegation chain exceeds its maximum length.")
