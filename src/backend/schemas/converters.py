"""
Schema converter functions.

Centralized helper functions for converting SQLAlchemy models to Pydantic schemas.
These are the single source of truth for model-to-schema conversions.
"""

from typing import TYPE_CHECKING, Sequence

from schemas.delegation import DelegationRead
from schemas.poll import PollRead, ProposalRead
from schemas.vote import BallotRead

if TYPE_CHECKING:
    from models.ballot import Ballot
    from models.delegation import Delegation
    from models.poll import Poll, Proposal


def ballot_model_to_schema(ballot: "Ballot") -> BallotRead:
    """Convert a Ballot model to its public schema, dropping the right to vote."""
    return BallotRead(
        id=str(ballot.id),
        poll_id=str(ballot.poll_id),
        level=ballot.level,
        vote_order=[str(pid) for pid in ballot.vote_order],
        checksum=ballot.checksum,
    )


def poll_model_to_schema(poll: "Poll", proposals: Sequence["Proposal"] = ()) -> PollRead:
    """Convert a Poll model and its proposals to a PollRead schema."""
    return PollRead(
        id=str(poll.id),
        title=poll.title,
        status=poll.status,
        voting_start_at=poll.voting_start_at,
        voting_end_at=poll.voting_end_at,
        winner_id=str(poll.winner_id) if poll.winner_id else None,
        proposals=[ProposalRead(id=str(p.id), title=p.title, status=p.status) for p in proposals],
    )


def delegation_model_to_schema(delegation: "Delegation") -> DelegationRead:
    """Convert a Delegation model to its schema without the requested right to vote."""
    return DelegationRead(
        id=str(delegation.id),
        from_user_id=delegation.from_user_id,
        to_proxy_id=delegation.to_proxy_id,
        is_delegation_request=delegation.is_delegation_request,
        requested_delegation_at=delegation.requested_delegation_at,
    )
