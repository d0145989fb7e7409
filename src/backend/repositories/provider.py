"""
Repository provider for dependency injection.

Services depend only on the protocols declared here. The SQL implementations
are grouped by Repositories, which shares one AsyncSession between them and
owns the transaction boundary of every top-level voting operation.

Usage:
    from repositories.provider import Repositories

    async with async_session_maker() as session:
        repos = Repositories(session)
        async with repos.transaction():
            ballot = await repos.ballots.get_by_poll_and_checksum(poll_id, checksum)
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repositories.ballot_repository import BallotRepository
from repositories.delegation_repository import DelegationRepository
from repositories.poll_repository import PollRepository
from repositories.right_to_vote_repository import RightToVoteRepository
from repositories.voter_token_repository import VoterTokenRepository

logger = structlog.get_logger(__name__)

# Key of the PostgreSQL advisory lock that serializes delegation graph mutations
DELEGATION_GRAPH_LOCK_KEY = 0x4C44454C  # "LDEL"


# =============================================================================
# Repository Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class RightToVoteRepositoryProtocol(Protocol):
    """Protocol defining right to vote repository operations."""

    async def get_by_id(self, right_to_vote_id: str): ...
    async def list_delegated_to(self, right_to_vote_id: str) -> list: ...
    async def count_delegated_to(self, right_to_vote_id: str) -> int: ...
    async def create(self, right_to_vote_id: str, expires_at: datetime): ...
    async def save(self, right_to_vote) -> None: ...


@runtime_checkable
class DelegationRepositoryProtocol(Protocol):
    """Protocol defining delegation repository operations."""

    async def get_by_from_user(self, user_id: str): ...
    async def list_requests_for_proxy(self, proxy_id: str) -> list: ...
    async def create(
        self,
        from_user_id: str,
        to_proxy_id: str,
        requested_delegation_from_id: Optional[str] = None,
        requested_delegation_at: Optional[datetime] = None,
    ): ...
    async def save(self, delegation) -> None: ...
    async def delete(self, delegation) -> None: ...


@runtime_checkable
class VoterTokenRepositoryProtocol(Protocol):
    """Protocol defining voter token repository operations."""

    async def get_by_hash(self, hashed_voter_token: str): ...
    async def create(self, hashed_voter_token: str, poll_id: str, right_to_vote_id: str, expires_at: datetime): ...
    async def consume(self, hashed_voter_token: str, poll_id: str, now: datetime) -> Optional[str]: ...
    async def delete_expired(self, now: datetime) -> int: ...


@runtime_checkable
class BallotRepositoryProtocol(Protocol):
    """Protocol defining ballot repository operations."""

    async def get_by_poll_and_right_to_vote(self, poll_id: str, right_to_vote_id: str): ...
    async def get_by_poll_and_checksum(self, poll_id: str, checksum: str): ...
    async def list_vote_orders(self, poll_id: str) -> list[list[str]]: ...
    async def count_by_poll(self, poll_id: str) -> int: ...
    async def upsert(
        self, poll_id: str, right_to_vote_id: str, level: int, vote_order: list[str], checksum: str
    ): ...


@runtime_checkable
class PollRepositoryProtocol(Protocol):
    """Protocol defining poll repository operations."""

    async def get_by_id(self, poll_id: str): ...
    async def get_proposals(self, poll_id: str) -> list: ...
    async def list_voting_polls_ended(self, now: datetime) -> list: ...
    async def save(self, poll, proposals: Optional[list] = None) -> None: ...


@runtime_checkable
class RepositoryProviderProtocol(Protocol):
    """All repositories of one unit of work plus its transaction control."""

    right_to_votes: RightToVoteRepositoryProtocol
    delegations: DelegationRepositoryProtocol
    voter_tokens: VoterTokenRepositoryProtocol
    ballots: BallotRepositoryProtocol
    polls: PollRepositoryProtocol

    def transaction(self): ...
    async def lock_delegation_graph(self, shared: bool = False) -> None: ...


# =============================================================================
# SQL implementation
# =============================================================================


class Repositories:
    """SQL repositories sharing one session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.right_to_votes = RightToVoteRepository(db)
        self.delegations = DelegationRepository(db)
        self.voter_tokens = VoterTokenRepository(db)
        self.ballots = BallotRepository(db)
        self.polls = PollRepository(db)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Repositories"]:
        """Commit on success, roll back on any exception."""
        try:
            yield self
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def lock_delegation_graph(self, shared: bool = False) -> None:
        """
        Take a transaction scoped advisory lock on the delegation graph.

        Writers take it exclusively before their cycle check, so two concurrent
        delegations can never close a cycle together. The ballot cascade takes
        it shared, so it walks a stable graph. Released on commit or rollback.
        """
        lock_fn = func.pg_advisory_xact_lock_shared if shared else func.pg_advisory_xact_lock
        await self.db.execute(select(lock_fn(DELEGATION_GRAPH_LOCK_KEY)))
        logger.debug("delegation_graph_locked", shared=shared)
