"""
Delegation model for PostgreSQL storage.

Identity level link from a voter to a proxy. This is not anonymous: a voter
knows their proxy and a proxy knows who asked them. The anonymous counterpart
is RightToVote.delegated_to_id.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class Delegation(Base):
    """
    Delegation from a user to a proxy.

    A user has none or exactly one proxy. While the proxy has not accepted,
    requested_delegation_from_id holds the voter's right to vote so that it can
    be delegated on acceptance.
    """

    __tablename__ = "delegations"

    __table_args__ = (
        # A user may only assign one proxy
        UniqueConstraint("from_user_id", name="uq_delegations_from_user"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    from_user_id: Mapped[str] = mapped_column(String(64), index=True)
    to_proxy_id: Mapped[str] = mapped_column(String(64), index=True)

    # Pending request (None once the proxy accepted, or when delegated to a public proxy)
    requested_delegation_from_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("right_to_votes.id", ondelete="CASCADE"),
        nullable=True,
    )
    requested_delegation_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    @property
    def is_delegation_request(self) -> bool:
        """True if the proxy still has to accept this delegation."""
        return self.requested_delegation_from_id is not None

    def __repr__(self) -> str:
        return (
            f"<Delegation(id={self.id}, from={self.from_user_id}, to={self.to_proxy_id}, "
            f"pending={self.is_delegation_request})>"
        )
