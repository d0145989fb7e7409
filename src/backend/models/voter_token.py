"""
VoterToken model for PostgreSQL storage.

Single-use, poll scoped token that proves possession of a right to vote
without revealing the voter. Only the hash of the plain token is stored.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class VoterToken(Base):
    """
    Hashed one time voter token.

    hashed_voter_token = SHA3-256(plain_token + poll_id + server secret).
    The record is deleted when the token is used or when it has expired.
    """

    __tablename__ = "voter_tokens"

    hashed_voter_token: Mapped[str] = mapped_column(String(64), primary_key=True)

    poll_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("polls.id", ondelete="CASCADE"),
        index=True,
    )

    right_to_vote_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("right_to_votes.id", ondelete="CASCADE"),
        nullable=True,
    )

    # Cleanup job deletes rows where expires_at < now
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > self.expires_at

    def __repr__(self) -> str:
        return f"<VoterToken(poll_id={self.poll_id}, linked={self.right_to_vote_id is not None})>"
