"""
RightToVote model for PostgreSQL storage.

The digital representation of one voter's eligibility. Its id is a one-way
hash of the voter's identity, so a right to vote can be found for a given
voter, but the voter of a given right to vote can never be found.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class RightToVote(Base):
    """
    Anonymous right to vote and its (at most one) outgoing delegation edge.

    PRIVACY DESIGN:
    - id = SHA3-256(user_id + email + credential secret + server secret)
    - No user reference, except public_proxy_id for voters who opted in
      to be publicly known as a proxy
    - delegated_to_id points to the proxy's right to vote, never to a user
    """

    __tablename__ = "right_to_votes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Single nullable self reference: out-degree is at most one by construction
    delegated_to_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("right_to_votes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Only set when the owner opted in to automatically accept delegations
    public_proxy_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
    )

    @property
    def is_expired(self) -> bool:
        """Check if this right to vote has expired."""
        return datetime.now(timezone.utc) > self.expires_at if self.expires_at else True

    @property
    def is_public_proxy(self) -> bool:
        return self.public_proxy_id is not None

    def __repr__(self) -> str:
        # Do not expose the hash or the delegation target
        return (
            f"<RightToVote(delegated={self.delegated_to_id is not None}, "
            f"public_proxy={self.is_public_proxy}, expires_at={self.expires_at})>"
        )
