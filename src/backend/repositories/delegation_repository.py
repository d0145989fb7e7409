"""
Delegation repository for database operations.

Delegations are identity level and therefore not anonymous.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.delegation import Delegation


class DelegationRepository:
    """Repository for delegation database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_from_user(self, user_id: str) -> Optional[Delegation]:
        """Get the (at most one) delegation of a user."""
        result = await self.db.execute(
            select(Delegation)
            .where(Delegation.from_user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_requests_for_proxy(self, proxy_id: str) -> list[Delegation]:
        """Get pending delegation requests addressed to a proxy, oldest first."""
        result = await self.db.execute(
            select(Delegation)
            .where(
                Delegation.to_proxy_id == proxy_id,
                Delegation.requested_delegation_from_id.isnot(None),
            )
            .order_by(Delegation.requested_delegation_at, Delegation.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def create(
        self,
        from_user_id: str,
        to_proxy_id: str,
        requested_delegation_from_id: Optional[str] = None,
        requested_delegation_at: Optional[datetime] = None,
    ) -> Delegation:
        """Create a delegation, or a delegation request if requested_delegation_from_id is given."""
        delegation = Delegation(
            id=str(uuid4()),
            from_user_id=from_user_id,
            to_proxy_id=to_proxy_id,
            requested_delegation_from_id=requested_delegation_from_id,
            requested_delegation_at=requested_delegation_at,
        )
        self.db.add(delegation)
        await self.db.flush()
        return delegation

    async def save(self, delegation: Delegation) -> None:
        self.db.add(delegation)
        await self.db.flush()

    async def delete(self, delegation: Delegation) -> None:
        await self.db.execute(delete(Delegation).where(Delegation.id == delegation.id))
