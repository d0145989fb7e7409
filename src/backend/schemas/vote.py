"""
Vote-related Pydantic schemas.

These schemas never contain the right to vote of a ballot.
"""

from pydantic import BaseModel, Field


class BallotRead(BaseModel):
    """
    Public view of a ballot.

    PRIVACY NOTE: There is no right to vote and no voter here. The checksum
    lets a voter verify their own counted preference.
    """

    id: str
    poll_id: str
    level: int
    vote_order: list[str]
    checksum: str

    model_config = {"from_attributes": True}


class CastVoteResponse(BaseModel):
    """Result of casting a vote."""

    ballot: BallotRead
    vote_count: int = Field(
        0,
        description="For how many delegees this ballot was also counted (excluding the voter's own ballot)",
    )
