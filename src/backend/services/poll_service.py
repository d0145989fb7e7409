"""
Poll phase transitions, tallying and ballot lookups.

Poll and proposal CRUD is not done here. This service only moves a poll
through its voting phase and exposes ballots without their right to vote.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import InvalidPollStatusError, NotFoundError
from models.ballot import Ballot
from models.poll import Poll, PollStatus, Proposal, ProposalStatus
from repositories.provider import RepositoryProviderProtocol
from schemas.identity import Identity
from schemas.poll import PollResult, TallyResult
from services.ranked_pairs import calc_ranked_pairs, tally
from services.right_to_vote_service import RightToVoteService
from services.voter_token_service import VoterTokenService

logger = structlog.get_logger(__name__)


class PollService:
    """Service for the voting phase of polls."""

    def __init__(
        self,
        repos: RepositoryProviderProtocol,
        voter_tokens: VoterTokenService,
        right_to_votes: RightToVoteService,
    ):
        self.repos = repos
        self.voter_tokens = voter_tokens
        self.right_to_votes = right_to_votes

    def _require_status(self, poll: Poll, *allowed: PollStatus) -> None:
        if poll.status not in {s.value for s in allowed}:
            raise InvalidPollStatusError(
                f"Operation not allowed while poll is in status {poll.status}.",
                {"poll_id": poll.id, "status": poll.status},
            )

    # ========================================================================
    # Phase transitions
    # ========================================================================

    async def start_voting_phase(self, poll: Poll) -> Poll:
        """
        Start the voting phase. Proposals are frozen from now on.

        The voting phase ends DURATION_OF_VOTING_PHASE_DAYS after today's midnight (UTC).
        """
        self._require_status(poll, PollStatus.ELABORATION)
        proposals = await self.repos.polls.get_proposals(poll.id)
        if len(proposals) < 2:
            raise InvalidPollStatusError(
                "Need at least two proposals to start the voting phase.",
                {"poll_id": poll.id, "num_proposals": len(proposals)},
            )

        now = datetime.now(timezone.utc)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        for proposal in proposals:
            proposal.status = ProposalStatus.VOTING.value
        poll.status = PollStatus.VOTING.value
        poll.voting_start_at = now
        poll.voting_end_at = midnight + timedelta(days=settings.DURATION_OF_VOTING_PHASE_DAYS)
        await self.repos.polls.save(poll, proposals)

        logger.info("voting_phase_started", poll_id=poll.id, voting_end_at=poll.voting_end_at.isoformat())
        return poll

    async def finish_voting_phase(self, poll: Poll) -> Optional[Proposal]:
        """
        End the voting phase, calculate the winner and snapshot the duel matrix.

        All proposals are LOST, except the winner which becomes LAW.

        Returns:
            The winning proposal, or None if there is no winner (e.g. no ballots).
        """
        self._require_status(poll, PollStatus.VOTING)
        proposals = await self.repos.polls.get_proposals(poll.id)
        result = await self._tally(poll, proposals)

        winner: Optional[Proposal] = None
        for proposal in proposals:
            if proposal.id == result.winner_id:
                proposal.status = ProposalStatus.LAW.value
                winner = proposal
            else:
                proposal.status = ProposalStatus.LOST.value

        poll.status = PollStatus.FINISHED.value
        poll.voting_end_at = datetime.now(timezone.utc)
        poll.winner_id = winner.id if winner else None
        poll.duel_matrix = result.duel_matrix
        await self.repos.polls.save(poll, proposals)

        logger.info(
            "voting_phase_finished",
            poll_id=poll.id,
            winner_id=poll.winner_id,
            unique_winner=result.unique_winner,
        )
        return winner

    # ========================================================================
    # Tally and results
    # ========================================================================

    async def _tally(self, poll: Poll, proposals: list[Proposal]) -> TallyResult:
        vote_orders = await self.repos.ballots.list_vote_orders(poll.id)
        return tally(
            [p.id for p in proposals],
            vote_orders,
            rank_unlisted_last=settings.TALLY_RANK_UNLISTED_LAST,
        )

    async def calc_winner_of_poll(self, poll: Poll) -> TallyResult:
        """Tally the current ballots without changing the poll."""
        self._require_status(poll, PollStatus.VOTING, PollStatus.FINISHED)
        proposals = await self.repos.polls.get_proposals(poll.id)
        return await self._tally(poll, proposals)

    async def get_poll_results(self, poll: Poll) -> PollResult:
        """Results of a finished poll, from the duel matrix snapshot."""
        self._require_status(poll, PollStatus.FINISHED)
        proposals = await self.repos.polls.get_proposals(poll.id)
        candidate_ids = [p.id for p in proposals]
        num_ballots = await self.repos.ballots.count_by_poll(poll.id)

        winner_ids: list[str] = []
        if poll.duel_matrix is not None:
            winner_ids = calc_ranked_pairs(candidate_ids, poll.duel_matrix).winner_ids

        return PollResult(
            poll_id=poll.id,
            winner_id=poll.winner_id,
            num_ballots=num_ballots,
            candidate_ids=candidate_ids,
            duel_matrix=poll.duel_matrix,
            winner_ids=winner_ids,
            unique_winner=len(winner_ids) == 1,
        )

    async def count_ballots(self, poll: Poll) -> int:
        return await self.repos.ballots.count_by_poll(poll.id)

    # ========================================================================
    # Ballot lookups
    # ========================================================================

    async def get_ballot_for_token(self, poll: Poll, plain_voter_token: str) -> Optional[Ballot]:
        """Ballot counted for the holder of a voter token. The token is not consumed."""
        self._require_status(poll, PollStatus.VOTING, PollStatus.FINISHED)
        right_to_vote = await self.voter_tokens.resolve(plain_voter_token, poll)
        return await self.repos.ballots.get_by_poll_and_right_to_vote(poll.id, right_to_vote.id)

    async def get_ballot_of_identity(self, poll: Poll, identity: Identity) -> Optional[Ballot]:
        self._require_status(poll, PollStatus.VOTING, PollStatus.FINISHED)
        right_to_vote = await self.right_to_votes.get_valid(identity)
        return await self.repos.ballots.get_by_poll_and_right_to_vote(poll.id, right_to_vote.id)

    async def get_ballot_for_checksum(self, poll: Poll, checksum: str) -> Optional[Ballot]:
        return await self.repos.ballots.get_by_poll_and_checksum(poll.id, checksum)

    async def verify_ballot(self, poll: Poll, checksum: str) -> Ballot:
        """Like get_ballot_for_checksum, but a missing ballot is an error."""
        ballot = await self.get_ballot_for_checksum(poll, checksum)
        if ballot is None:
            raise NotFoundError("No ballot with this checksum in this poll.", {"poll_id": poll.id})
        return ballot
