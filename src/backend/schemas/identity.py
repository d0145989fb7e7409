"""
Identity of an authenticated user.

Authentication itself happens elsewhere. The voting core only receives the
already authenticated identity from its caller.
"""

from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """An authenticated, real user."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3)
    # A secret bound to the user's credential (e.g. passkey credential id).
    # Part of the right to vote hash, never stored by the voting core.
    credential_secret: str = Field(..., min_length=1, repr=False)


@runtime_checkable
class IdentityProvider(Protocol):
    """Supplies the currently authenticated identity, if any."""

    async def current_identity(self) -> Optional[Identity]: ...
