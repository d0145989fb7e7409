"""
Delegation-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DelegationRead(BaseModel):
    """
    A delegation (or delegation request) between two users.

    The requested right to vote is never exposed, only whether the
    delegation is still pending.
    """

    id: str
    from_user_id: str
    to_proxy_id: str
    is_delegation_request: bool
    requested_delegation_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
