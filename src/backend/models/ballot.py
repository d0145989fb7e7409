"""
Ballot model for PostgreSQL storage.

A ballot is linked to a right to vote, never to a user. No created/updated
timestamps are stored, they would allow timing attacks on anonymity.
"""

from uuid import uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class Ballot(Base):
    """
    Anonymous ranked ballot of one right to vote in one poll.

    level = 0: the voter voted themselves
    level = 1: cast by the direct proxy
    level = n: cast by a transitive proxy n hops away
    """

    __tablename__ = "ballots"

    __table_args__ = (
        # One ballot per right to vote and poll
        UniqueConstraint("poll_id", "right_to_vote_id", name="uq_ballots_poll_right_to_vote"),
        Index("ix_ballots_poll_checksum", "poll_id", "checksum"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    poll_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("polls.id", ondelete="CASCADE"),
        index=True,
    )

    # Never exposed to readers
    right_to_vote_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("right_to_votes.id", ondelete="CASCADE"),
    )

    level: Mapped[int] = mapped_column(Integer, default=0)

    # Ordered proposal ids, most preferred first
    vote_order: Mapped[list] = mapped_column(JSONB)

    # SHA3-256 of vote_order + poll_id + right_to_vote_id (not of level)
    checksum: Mapped[str] = mapped_column(String(64))

    def __repr__(self) -> str:
        # Do not expose the right to vote
        return f"<Ballot(id={self.id}, poll_id={self.poll_id}, level={self.level}, vote_order={self.vote_order})>"
