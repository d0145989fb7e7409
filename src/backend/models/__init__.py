"""Database models module."""

from models.ballot import Ballot
from models.delegation import Delegation
from models.poll import Poll, PollStatus, Proposal, ProposalStatus
from models.right_to_vote import RightToVote
from models.voter_token import VoterToken

__all__ = [
    "Ballot",
    "Delegation",
    "Poll",
    "PollStatus",
    "Proposal",
    "ProposalStatus",
    "RightToVote",
    "VoterToken",
]
