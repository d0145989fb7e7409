"""
Poll-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ProposalRead(BaseModel):
    """A candidate in a poll."""

    id: str
    title: str
    status: str

    model_config = {"from_attributes": True}


class PollRead(BaseModel):
    """A poll and its phase."""

    id: str
    title: str
    status: str
    voting_start_at: Optional[datetime] = None
    voting_end_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    proposals: list[ProposalRead] = Field(default_factory=list)


class TallyResult(BaseModel):
    """Outcome of the ranked pairs method."""

    candidate_ids: list[str] = Field(..., description="Row/column order of the duel matrix")
    duel_matrix: list[list[int]]
    locked_pairs: list[tuple[str, str]] = Field(default_factory=list, description="(winner, loser) in lock order")
    winner_ids: list[str] = Field(default_factory=list)

    @property
    def winner_id(self) -> Optional[str]:
        """First winner in candidate order, or None if nobody won."""
        return self.winner_ids[0] if self.winner_ids else None

    @property
    def unique_winner(self) -> bool:
        return len(self.winner_ids) == 1


class PollResult(BaseModel):
    """Published result of a finished poll."""

    poll_id: str
    winner_id: Optional[str] = None
    num_ballots: int = 0
    candidate_ids: list[str] = Field(default_factory=list)
    duel_matrix: Optional[list[list[int]]] = None
    winner_ids: list[str] = Field(default_factory=list)
    unique_winner: bool = False
