"""
Poll and proposal models for PostgreSQL storage.

A poll groups competing proposals. Ballots reference proposals by id only;
a poll never links to its ballots, so they are not exposed while voting runs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class PollStatus(str, Enum):
    """Poll lifecycle status."""

    ELABORATION = "elaboration"  # Alternative proposals may still join the poll
    VOTING = "voting"  # Proposals are frozen, ballots can be cast
    FINISHED = "finished"  # Winner has been calculated, duel matrix is fixed


class ProposalStatus(str, Enum):
    """Status of a proposal inside (or on its way into) a poll."""

    PROPOSAL = "proposal"  # Reached its quorum, not yet in a poll
    ELABORATION = "elaboration"  # Part of a poll in elaboration
    VOTING = "voting"  # Part of a poll in voting phase
    LAW = "law"  # Won its poll
    LOST = "lost"  # Lost its poll


class Poll(Base):
    """
    Poll with its phase and, once finished, its results.

    The duel matrix is snapshotted here when the voting phase ends and is
    never changed afterwards.
    """

    __tablename__ = "polls"

    __table_args__ = (
        # Used by the background job that finishes polls whose voting phase is over
        Index("ix_polls_status_voting_end_at", "status", "voting_end_at"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    title: Mapped[str] = mapped_column(String(500))

    status: Mapped[str] = mapped_column(
        String(20),
        default=PollStatus.ELABORATION.value,
        index=True,
    )

    voting_start_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voting_end_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Results (filled when the voting phase is finished)
    winner_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("proposals.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    # Format: [[0, 2, 1], [1, 0, 2], [2, 1, 0]] - row/column order is the poll's candidate order
    duel_matrix: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    @property
    def is_voting_phase_over(self) -> bool:
        """Check if the scheduled end of the voting phase has passed."""
        if self.status != PollStatus.VOTING.value or not self.voting_end_at:
            return False
        return datetime.now(timezone.utc) >= self.voting_end_at

    def __repr__(self) -> str:
        return f"<Poll(id={self.id}, status={self.status}, title={self.title!r})>"


class Proposal(Base):
    """A candidate that voters rank in their ballots."""

    __tablename__ = "proposals"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    poll_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("polls.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ProposalStatus.PROPOSAL.value,
        index=True,
    )

    created_by_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, poll_id={self.poll_id}, status={self.status})>"
