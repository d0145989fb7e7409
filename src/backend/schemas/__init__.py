"""Schemas module initialization."""

from schemas.delegation import DelegationRead
from schemas.identity import Identity, IdentityProvider
from schemas.poll import PollRead, PollResult, ProposalRead, TallyResult
from schemas.vote import BallotRead, CastVoteResponse

__all__ = [
    "BallotRead",
    "CastVoteResponse",
    "DelegationRead",
    "Identity",
    "IdentityProvider",
    "PollRead",
    "PollResult",
    "ProposalRead",
    "TallyResult",
]
