"""
Voting core facade.

The single entry point for a transport layer. Every public operation runs as
exactly one transaction: either all of its reads and writes commit, or none
do. Return values are schemas, so a ballot's right to vote never leaves
the core.

Usage:
    async with async_session_maker() as session:
        core = VotingCore.from_session(session)
        response = await core.cast_vote(plain_voter_token, poll_id, ["p1", "p2"])
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotEligibleError, NotFoundError
from models.poll import Poll
from repositories.provider import Repositories, RepositoryProviderProtocol
from schemas.converters import ballot_model_to_schema, delegation_model_to_schema, poll_model_to_schema
from schemas.delegation import DelegationRead
from schemas.identity import Identity, IdentityProvider
from schemas.poll import PollRead, PollResult, TallyResult
from schemas.vote import BallotRead, CastVoteResponse
from services.cast_vote_service import CastVoteService
from services.delegation_service import DelegationService
from services.notification_service import NotificationSender, NotificationService
from services.poll_service import PollService
from services.proxy_service import ProxyService
from services.right_to_vote_service import RightToVoteService
from services.voter_token_service import VoterTokenService

logger = structlog.get_logger(__name__)


class VotingCore:
    """Transactional facade over the voting services."""

    def __init__(
        self,
        repos: RepositoryProviderProtocol,
        notification_sender: NotificationSender | None = None,
        identity_provider: IdentityProvider | None = None,
    ):
        self.repos = repos
        self.identity_provider = identity_provider
        self.notifications = NotificationService(notification_sender)
        self.right_to_votes = RightToVoteService(repos)
        self.voter_tokens = VoterTokenService(repos, self.right_to_votes)
        self.delegations = DelegationService(repos, self.right_to_votes)
        self.cast_votes = CastVoteService(repos, self.voter_tokens)
        self.proxies = ProxyService(repos, self.voter_tokens)
        self.polls = PollService(repos, self.voter_tokens, self.right_to_votes)

    @classmethod
    def from_session(cls, session: AsyncSession, **kwargs) -> "VotingCore":
        return cls(Repositories(session), **kwargs)

    async def current_identity(self) -> Identity:
        """The authenticated identity from the identity provider."""
        identity = await self.identity_provider.current_identity() if self.identity_provider else None
        if identity is None:
            raise NotEligibleError("Must be logged in.")
        return identity

    async def _caller(self, identity: Optional[Identity]) -> Identity:
        """The given identity, or the authenticated one if None is given."""
        return identity if identity is not None else await self.current_identity()

    async def _get_poll(self, poll_id: str) -> Poll:
        poll = await self.repos.polls.get_by_id(poll_id)
        if poll is None:
            raise NotFoundError("Poll not found.", {"poll_id": poll_id})
        return poll

    # ========================================================================
    # Rights to vote and delegations
    #
    # Operations acting on behalf of a voter take an Identity. None means the
    # currently authenticated identity of the identity provider.
    # ========================================================================

    async def grant_right_to_vote(self, identity: Optional[Identity] = None) -> None:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            await self.right_to_votes.grant(identity)

    async def delegate_to(self, identity: Optional[Identity], proxy: Identity) -> DelegationRead:
        """Delegate to a proxy. A proxy who must accept is notified after commit."""
        identity = await self._caller(identity)
        async with self.repos.transaction():
            delegation = await self.delegations.delegate_to(identity, proxy)
            result = delegation_model_to_schema(delegation)
            pending = await self.delegations.get_delegation_requests(proxy) if result.is_delegation_request else []

        if result.is_delegation_request:
            await self.notifications.send_delegation_request(proxy.id, len(pending))
        return result

    async def remove_delegation(self, identity: Optional[Identity] = None) -> None:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            await self.delegations.remove_delegation(identity)

    async def accept_delegation_requests(
        self, proxy: Optional[Identity] = None, delegation_ids: Optional[list[str]] = None
    ) -> list[DelegationRead]:
        proxy = await self._caller(proxy)
        async with self.repos.transaction():
            accepted = await self.delegations.accept_delegation_requests(proxy, delegation_ids)
            return [delegation_model_to_schema(d) for d in accepted]

    async def get_delegation_requests(self, proxy: Optional[Identity] = None) -> list[DelegationRead]:
        proxy = await self._caller(proxy)
        async with self.repos.transaction():
            return [delegation_model_to_schema(d) for d in await self.delegations.get_delegation_requests(proxy)]

    async def get_proxy(self, identity: Optional[Identity] = None) -> Optional[DelegationRead]:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            delegation = await self.delegations.get_proxy(identity)
            return delegation_model_to_schema(delegation) if delegation else None

    async def count_delegations(self, proxy: Optional[Identity] = None) -> int:
        proxy = await self._caller(proxy)
        async with self.repos.transaction():
            return await self.delegations.count_delegations(proxy)

    async def become_public_proxy(self, identity: Optional[Identity] = None) -> None:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            await self.delegations.become_public_proxy(identity)

    async def stop_being_public_proxy(self, identity: Optional[Identity] = None) -> None:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            await self.delegations.stop_being_public_proxy(identity)

    # ========================================================================
    # Voting
    # ========================================================================

    async def issue_voter_token(self, identity: Optional[Identity], poll_id: str) -> str:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            return await self.voter_tokens.issue(identity, poll)

    async def cast_vote(self, plain_voter_token: str, poll_id: str, vote_order_ids: Sequence[str]) -> CastVoteResponse:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot, vote_count = await self.cast_votes.cast_vote(plain_voter_token, poll, vote_order_ids)
            return CastVoteResponse(ballot=ballot_model_to_schema(ballot), vote_count=vote_count)

    async def get_ballot_for_token(self, poll_id: str, plain_voter_token: str) -> Optional[BallotRead]:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot = await self.polls.get_ballot_for_token(poll, plain_voter_token)
            return ballot_model_to_schema(ballot) if ballot else None

    async def get_ballot_for_checksum(self, poll_id: str, checksum: str) -> Optional[BallotRead]:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot = await self.polls.get_ballot_for_checksum(poll, checksum)
            return ballot_model_to_schema(ballot) if ballot else None

    async def verify_ballot(self, poll_id: str, checksum: str) -> BallotRead:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            return ballot_model_to_schema(await self.polls.verify_ballot(poll, checksum))

    async def get_ballot_of_identity(self, poll_id: str, identity: Optional[Identity] = None) -> Optional[BallotRead]:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot = await self.polls.get_ballot_of_identity(poll, identity)
            return ballot_model_to_schema(ballot) if ballot else None

    async def find_effective_proxy(
        self, poll_id: str, identity: Optional[Identity], plain_voter_token: str
    ) -> Optional[str]:
        identity = await self._caller(identity)
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            return await self.proxies.find_effective_proxy(poll, identity, plain_voter_token)

    async def get_ballot_of_direct_proxy(self, poll_id: str, plain_voter_token: str) -> Optional[BallotRead]:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot = await self.proxies.get_ballot_of_direct_proxy(poll, plain_voter_token)
            return ballot_model_to_schema(ballot) if ballot else None

    async def get_ballot_of_top_proxy(self, poll_id: str, plain_voter_token: str) -> Optional[BallotRead]:
        async with self.repos.transaction():
            poll = await self._get_poll(poll_id)
            ballot = await self.proxies.get_ballot_of_top_proxy(poll, plain_voter_token)
            return ballot_model_to_schema(ballot) if ballot else None

    # ========================================================================
    # Polls
    # ========================================================================

    async def start_voting_phase(self, poll_id: str) -> PollRead:
        async with self.repos.transaction():
            poll = await self.polls.start_voting_phase(await self._get_poll(poll_id))
            return poll_model_to_schema(poll, await self.repos.polls.get_proposals(poll.id))

    async def finish_voting_phase(self, poll_id: str) -> Optional[str]:
        """Finish the voting phase and return the id of the winning proposal, if any."""
        async with self.repos.transaction():
            winner = await self.polls.finish_voting_phase(await self._get_poll(poll_id))
            return winner.id if winner else None

    async def calc_winner_of_poll(self, poll_id: str) -> TallyResult:
        async with self.repos.transaction():
            return await self.polls.calc_winner_of_poll(await self._get_poll(poll_id))

    async def get_poll_results(self, poll_id: str) -> PollResult:
        async with self.repos.transaction():
            return await self.polls.get_poll_results(await self._get_poll(poll_id))

    async def count_ballots(self, poll_id: str) -> int:
        async with self.repos.transaction():
            return await self.polls.count_ballots(await self._get_poll(poll_id))

    # ========================================================================
    # Maintenance
    # ========================================================================

    async def cleanup_expired_voter_tokens(self) -> int:
        async with self.repos.transaction():
            return await self.voter_tokens.cleanup_expired()

    async def finish_expired_polls(self) -> int:
        """Finish every poll whose voting phase is over, each in its own transaction."""
        async with self.repos.transaction():
            polls = await self.repos.polls.list_voting_polls_ended(datetime.now(timezone.utc))
            poll_ids = [poll.id for poll in polls]

        finished = 0
        for poll_id in poll_ids:
            try:
                await self.finish_voting_phase(poll_id)
                finished += 1
            except Exception as e:
                logger.error("finish_expired_poll_failed", poll_id=poll_id, error=str(e), exc_info=True)
        return finished
