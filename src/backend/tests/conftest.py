"""
Pytest fixtures for LiquidVote backend tests.

Service tests run against in-memory repositories that implement the
repository protocols, including transaction rollback. SQL repositories are
tested against a mocked AsyncSession.
"""

import copy
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("HASH_SECRET", "test-hash-secret-for-testing")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DB", "liquidvote_test")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ENABLE_BACKGROUND_JOBS", "false")


# =============================================================================
# In-memory repositories
# =============================================================================


class FakeTable:
    """Rows of one entity type, with snapshot and restore of their column values."""

    def __init__(self, model: Any):
        self.columns = list(model.__table__.columns.keys())
        self.rows: dict[str, Any] = {}

    def snapshot(self) -> dict[str, tuple[Any, dict[str, Any]]]:
        return {
            key: (obj, {col: copy.copy(getattr(obj, col)) for col in self.columns})
            for key, obj in self.rows.items()
        }

    def restore(self, snapshot: dict[str, tuple[Any, dict[str, Any]]]) -> None:
        self.rows = {}
        for key, (obj, values) in snapshot.items():
            for col, value in values.items():
                setattr(obj, col, value)
            self.rows[key] = obj


class FakeRightToVoteRepository:
    def __init__(self, table: FakeTable):
        self.table = table

    async def get_by_id(self, right_to_vote_id):
        return self.table.rows.get(right_to_vote_id)

    async def list_delegated_to(self, right_to_vote_id):
        return sorted(
            (r for r in self.table.rows.values() if r.delegated_to_id == right_to_vote_id),
            key=lambda r: r.id,
        )

    async def count_delegated_to(self, right_to_vote_id):
        return len(await self.list_delegated_to(right_to_vote_id))

    async def create(self, right_to_vote_id, expires_at):
        from models.right_to_vote import RightToVote

        right_to_vote = RightToVote(
            id=right_to_vote_id, expires_at=expires_at, delegated_to_id=None, public_proxy_id=None
        )
        self.table.rows[right_to_vote.id] = right_to_vote
        return right_to_vote

    async def save(self, right_to_vote):
        self.table.rows[right_to_vote.id] = right_to_vote


class FakeDelegationRepository:
    def __init__(self, table: FakeTable):
        self.table = table

    async def get_by_from_user(self, user_id):
        return next((d for d in self.table.rows.values() if d.from_user_id == user_id), None)

    async def list_requests_for_proxy(self, proxy_id):
        return sorted(
            (
                d
                for d in self.table.rows.values()
                if d.to_proxy_id == proxy_id and d.requested_delegation_from_id is not None
            ),
            key=lambda d: (d.requested_delegation_at, d.id),
        )

    async def create(self, from_user_id, to_proxy_id, requested_delegation_from_id=None, requested_delegation_at=None):
        from models.delegation import Delegation

        if await self.get_by_from_user(from_user_id) is not None:
            raise ValueError("uq_delegations_from_user violated")
        delegation = Delegation(
            id=str(uuid4()),
            from_user_id=from_user_id,
            to_proxy_id=to_proxy_id,
            requested_delegation_from_id=requested_delegation_from_id,
            requested_delegation_at=requested_delegation_at,
        )
        self.table.rows[delegation.id] = delegation
        return delegation

    async def save(self, delegation):
        self.table.rows[delegation.id] = delegation

    async def delete(self, delegation):
        self.table.rows.pop(delegation.id, None)


class FakeVoterTokenRepository:
    def __init__(self, table: FakeTable):
        self.table = table

    async def get_by_hash(self, hashed_voter_token):
        return self.table.rows.get(hashed_voter_token)

    async def create(self, hashed_voter_token, poll_id, right_to_vote_id, expires_at):
        from models.voter_token import VoterToken

        voter_token = VoterToken(
            hashed_voter_token=hashed_voter_token,
            poll_id=poll_id,
            right_to_vote_id=right_to_vote_id,
            expires_at=expires_at,
        )
        self.table.rows[hashed_voter_token] = voter_token
        return voter_token

    async def consume(self, hashed_voter_token, poll_id, now):
        voter_token = self.table.rows.get(hashed_voter_token)
        if voter_token is None or voter_token.poll_id != poll_id or voter_token.expires_at < now:
            return None
        del self.table.rows[hashed_voter_token]
        return voter_token.right_to_vote_id

    async def delete_expired(self, now):
        expired = [key for key, t in self.table.rows.items() if t.expires_at < now]
        for key in expired:
            del self.table.rows[key]
        return len(expired)


class FakeBallotRepository:
    def __init__(self, table: FakeTable):
        self.table = table

    def _find(self, poll_id, right_to_vote_id):
        return next(
            (b for b in self.table.rows.values() if b.poll_id == poll_id and b.right_to_vote_id == right_to_vote_id),
            None,
        )

    async def get_by_poll_and_right_to_vote(self, poll_id, right_to_vote_id):
        return self._find(poll_id, right_to_vote_id)

    async def get_by_poll_and_checksum(self, poll_id, checksum):
        return next((b for b in self.table.rows.values() if b.poll_id == poll_id and b.checksum == checksum), None)

    async def list_vote_orders(self, poll_id):
        ballots = sorted((b for b in self.table.rows.values() if b.poll_id == poll_id), key=lambda b: b.id)
        return [list(b.vote_order) for b in ballots]

    async def count_by_poll(self, poll_id):
        return sum(1 for b in self.table.rows.values() if b.poll_id == poll_id)

    async def upsert(self, poll_id, right_to_vote_id, level, vote_order, checksum):
        from models.ballot import Ballot

        # Same row lock semantics as INSERT ... ON CONFLICT DO UPDATE WHERE level >= new level
        existing = self._find(poll_id, right_to_vote_id)
        if existing is None:
            ballot = Ballot(
                id=str(uuid4()),
                poll_id=poll_id,
                right_to_vote_id=right_to_vote_id,
                level=level,
                vote_order=list(vote_order),
                checksum=checksum,
            )
            self.table.rows[ballot.id] = ballot
            return ballot
        if existing.level < level:
            return None
        existing.level = level
        existing.vote_order = list(vote_order)
        existing.checksum = checksum
        return existing


class FakePollRepository:
    def __init__(self, polls: FakeTable, proposals: FakeTable):
        self.polls = polls
        self.proposals = proposals

    async def get_by_id(self, poll_id):
        return self.polls.rows.get(poll_id)

    async def get_proposals(self, poll_id):
        return sorted(
            (p for p in self.proposals.rows.values() if p.poll_id == poll_id),
            key=lambda p: (p.created_at, p.id),
        )

    async def list_voting_polls_ended(self, now):
        return sorted(
            (
                p
                for p in self.polls.rows.values()
                if p.status == "voting" and p.voting_end_at is not None and p.voting_end_at <= now
            ),
            key=lambda p: p.voting_end_at,
        )

    async def save(self, poll, proposals=None):
        self.polls.rows[poll.id] = poll
        for proposal in proposals or []:
            self.proposals.rows[proposal.id] = proposal


class FakeRepositories:
    """In-memory unit of work. A failing transaction restores all tables."""

    def __init__(self):
        from models import Ballot, Delegation, Poll, Proposal, RightToVote, VoterToken

        self.tables = {
            "right_to_votes": FakeTable(RightToVote),
            "delegations": FakeTable(Delegation),
            "voter_tokens": FakeTable(VoterToken),
            "ballots": FakeTable(Ballot),
            "polls": FakeTable(Poll),
            "proposals": FakeTable(Proposal),
        }
        self.right_to_votes = FakeRightToVoteRepository(self.tables["right_to_votes"])
        self.delegations = FakeDelegationRepository(self.tables["delegations"])
        self.voter_tokens = FakeVoterTokenRepository(self.tables["voter_tokens"])
        self.ballots = FakeBallotRepository(self.tables["ballots"])
        self.polls = FakePollRepository(self.tables["polls"], self.tables["proposals"])
        self.commits = 0
        self.rollbacks = 0
        self.graph_locks: list[bool] = []

    @asynccontextmanager
    async def transaction(self):
        snapshots = {name: table.snapshot() for name, table in self.tables.items()}
        try:
            yield self
            self.commits += 1
        except Exception:
            for name, table in self.tables.items():
                table.restore(snapshots[name])
            self.rollbacks += 1
            raise

    async def lock_delegation_graph(self, shared: bool = False) -> None:
        self.graph_locks.append(shared)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def repos() -> FakeRepositories:
    return FakeRepositories()


@pytest.fixture
def notification_sender() -> MagicMock:
    sender = MagicMock()
    sender.send = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def voting_core(repos, notification_sender):
    """VotingCore on in-memory repositories."""
    from services.voting_core import VotingCore

    return VotingCore(repos, notification_sender=notification_sender)


@pytest.fixture
def make_identity():
    """Factory for identities: make_identity("alice")."""
    from schemas.identity import Identity

    def _make(name: str) -> Identity:
        return Identity(id=f"user-{name}", email=f"{name}@example.org", credential_secret=f"cred-{name}")

    return _make


@pytest.fixture
def voter(voting_core, make_identity):
    """Factory for identities that already have a right to vote."""

    async def _make(name: str):
        identity = make_identity(name)
        await voting_core.grant_right_to_vote(identity)
        return identity

    return _make


@pytest.fixture
def make_poll(repos):
    """
    Factory for polls with proposals named by their titles.

    Returns the poll; proposal ids are "<poll title>-<proposal title>".
    """
    from models.poll import Poll, PollStatus, Proposal, ProposalStatus

    proposal_status = {
        PollStatus.ELABORATION.value: ProposalStatus.ELABORATION.value,
        PollStatus.VOTING.value: ProposalStatus.VOTING.value,
        PollStatus.FINISHED.value: ProposalStatus.LOST.value,
    }

    def _make(
        title: str = "poll",
        proposals: tuple[str, ...] = ("A", "B", "C"),
        status: str = PollStatus.VOTING.value,
        voting_end_at: Optional[datetime] = None,
    ) -> Poll:
        now = datetime.now(timezone.utc)
        poll = Poll(
            id=f"{title}-id",
            title=title,
            status=status,
            voting_start_at=now if status != PollStatus.ELABORATION.value else None,
            voting_end_at=voting_end_at,
            winner_id=None,
            duel_matrix=None,
            created_at=now,
        )
        repos.tables["polls"].rows[poll.id] = poll
        for i, name in enumerate(proposals):
            proposal = Proposal(
                id=f"{title}-{name}",
                poll_id=poll.id,
                title=name,
                description=None,
                status=proposal_status[status],
                created_by_id=None,
                created_at=now + timedelta(seconds=i),
            )
            repos.tables["proposals"].rows[proposal.id] = proposal
        return poll

    return _make


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session
