"""
Ballot cascade engine.

Stores the voter's ballot and replicates it to every transitive delegee
whose existing ballot does not come from a closer source.

Override rule: an existing ballot with a smaller level than the incoming one
is never overwritten. Level 0 is the voter's own vote, so a voter always has
the final say over all of their proxies.
"""

from collections import deque
from typing import Collection, Optional, Sequence

import structlog

from core.config import settings
from core.exceptions import CannotCastVoteError, DataInconsistencyError
from core.security import calc_ballot_checksum
from models.ballot import Ballot
from models.poll import Poll, PollStatus, ProposalStatus
from repositories.provider import RepositoryProviderProtocol
from services.voter_token_service import VoterTokenService

logger = structlog.get_logger(__name__)


class CastVoteService:
    """Casts ballots anonymously and cascades them to delegees."""

    def __init__(self, repos: RepositoryProviderProtocol, voter_tokens: VoterTokenService):
        self.repos = repos
        self.voter_tokens = voter_tokens

    async def cast_vote(
        self,
        plain_voter_token: str,
        poll: Poll,
        vote_order_ids: Sequence[str],
    ) -> tuple[Ballot, int]:
        """
        Cast a vote and cascade it to all delegees.

        Returns:
            The voter's own ballot and the number of delegee ballots that were
            actually set by this vote (the voter's own ballot not included).

        Raises:
            CannotCastVoteError: poll not in voting or ballot structurally invalid
            InvalidTokenError: voter token cannot be consumed
        """
        vote_order = [str(pid) for pid in vote_order_ids]
        voting_ids = await self._voting_proposal_ids(poll)
        self.check_ballot(poll, vote_order, voting_ids)

        right_to_vote = await self.voter_tokens.consume(plain_voter_token, poll)

        # Delegation mutations wait until the cascade has committed
        await self.repos.lock_delegation_graph(shared=True)

        ballot = await self._store_ballot(poll, right_to_vote.id, vote_order, 0, voting_ids)
        if ballot is None:
            logger.error("own_ballot_not_applied", poll_id=poll.id)
            raise DataInconsistencyError("Own ballot of a voter was not applied.")

        vote_count = await self._cascade(poll, right_to_vote.id, vote_order, voting_ids)
        logger.info("vote_cast", poll_id=poll.id, vote_count=vote_count)
        return ballot, vote_count

    async def _voting_proposal_ids(self, poll: Poll) -> list[str]:
        proposals = await self.repos.polls.get_proposals(poll.id)
        if len(proposals) < 2:
            raise CannotCastVoteError(
                "Poll must have at least two proposals.",
                {"poll_id": poll.id, "num_proposals": len(proposals)},
            )
        return [p.id for p in proposals if p.status == ProposalStatus.VOTING.value]

    def check_ballot(self, poll: Poll, vote_order: Sequence[str], voting_ids: Collection[str]) -> None:
        """Validate the structure of a ballot. Raises CannotCastVoteError."""
        if poll.status != PollStatus.VOTING.value:
            raise CannotCastVoteError(
                "Poll is not in its voting phase.",
                {"poll_id": poll.id, "status": poll.status},
            )
        if not vote_order:
            raise CannotCastVoteError("Vote order must not be empty.", {"poll_id": poll.id})
        if len(set(vote_order)) != len(vote_order):
            raise CannotCastVoteError("Vote order must not contain a proposal twice.", {"poll_id": poll.id})
        foreign = [pid for pid in vote_order if pid not in voting_ids]
        if foreign:
            raise CannotCastVoteError(
                "Vote order contains proposals that are not voted on in this poll.",
                {"poll_id": poll.id, "proposal_ids": foreign},
            )

    async def _store_ballot(
        self,
        poll: Poll,
        right_to_vote_id: str,
        vote_order: list[str],
        level: int,
        voting_ids: Collection[str],
    ) -> Optional[Ballot]:
        """Insert or overwrite the ballot of one right to vote. Returns None if not applied."""
        self.check_ballot(poll, vote_order, voting_ids)

        checksum = calc_ballot_checksum(vote_order, poll.id, right_to_vote_id)
        return await self.repos.ballots.upsert(poll.id, right_to_vote_id, level, vote_order, checksum)

    async def _cascade(
        self,
        poll: Poll,
        root_id: str,
        vote_order: list[str],
        voting_ids: Collection[str],
    ) -> int:
        """
        Replicate a ballot down the reverse delegation edges, breadth first.

        A delegee whose ballot was not applied keeps its own subtree: its
        delegees already follow its closer ballot.
        """
        applied = 0
        visited = {root_id}
        queue: deque[tuple[str, int]] = deque([(root_id, 0)])
        while queue:
            proxy_id, level = queue.popleft()
            for delegee in await self.repos.right_to_votes.list_delegated_to(proxy_id):
                if delegee.id in visited:
                    logger.error("delegation_cycle_detected", poll_id=poll.id)
                    raise DataInconsistencyError("Delegation graph contains a cycle.")
                visited.add(delegee.id)
                if level + 1 > settings.MAX_DELEGATION_CHAIN_LENGTH:
                    logger.error("delegation_chain_too_long", poll_id=poll.id)
                    raise DataInconsistencyError("Delegation chain exceeds its maximum length.")

                ballot = await self._store_ballot(poll, delegee.id, vote_order, level + 1, voting_ids)
                if ballot is None:
                    continue
                applied += 1
                queue.append((delegee.id, level + 1))
        return applied
