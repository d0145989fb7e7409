"""Repository modules for database access."""

from repositories.ballot_repository import BallotRepository
from repositories.delegation_repository import DelegationRepository
from repositories.poll_repository import PollRepository
from repositories.provider import Repositories
from repositories.right_to_vote_repository import RightToVoteRepository
from repositories.voter_token_repository import VoterTokenRepository

__all__ = [
    "BallotRepository",
    "DelegationRepository",
    "PollRepository",
    "Repositories",
    "RightToVoteRepository",
    "VoterTokenRepository",
]
