"""
Business exceptions of the voting core.

Every error carries a stable ErrorCode so that a client can show a localized
message. The payload must never contain voter tokens, rights to vote or
anything else that could link a ballot to a person.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error codes exposed to callers."""

    NOT_ELIGIBLE = "not_eligible"
    SELF_DELEGATION = "self_delegation"
    CIRCULAR_DELEGATION = "circular_delegation"
    NO_DELEGATION = "no_delegation"
    INVALID_TOKEN = "invalid_token"
    INVALID_POLL_STATUS = "invalid_poll_status"
    CANNOT_CAST_VOTE = "cannot_cast_vote"
    NOT_FOUND = "not_found"
    DATA_INCONSISTENCY = "data_inconsistency"


class VotingError(Exception):
    """Base exception for voting core operations."""

    code: ErrorCode = ErrorCode.CANNOT_CAST_VOTE
    is_internal: bool = False

    def __init__(self, message: str, payload: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation for a transport layer."""
        return {
            "error": self.code.value,
            "message": self.message,
            "payload": self.payload,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code={self.code.value}, message={self.message!r})>"


class NotEligibleError(VotingError):
    """Identity has no (valid) right to vote."""

    code = ErrorCode.NOT_ELIGIBLE


class SelfDelegationError(VotingError):
    """A voter tried to delegate to themselves."""

    code = ErrorCode.SELF_DELEGATION


class CircularDelegationError(VotingError):
    """Delegation would close a cycle in the proxy graph."""

    code = ErrorCode.CIRCULAR_DELEGATION


class NoDelegationError(VotingError):
    """There is no pending delegation request to act upon."""

    code = ErrorCode.NO_DELEGATION


class InvalidTokenError(VotingError):
    """Voter token is unknown, expired, already used or not linked to a right to vote."""

    code = ErrorCode.INVALID_TOKEN


class InvalidPollStatusError(VotingError):
    """Operation is not allowed in the poll's current phase."""

    code = ErrorCode.INVALID_POLL_STATUS


class CannotCastVoteError(VotingError):
    """Ballot violates a structural rule."""

    code = ErrorCode.CANNOT_CAST_VOTE


class NotFoundError(VotingError):
    """Referenced entity does not exist."""

    code = ErrorCode.NOT_FOUND


class DataInconsistencyError(VotingError):
    """
    Stored data violates an invariant of the delegation graph.

    This is an internal error. It must be logged and surfaced, never defaulted.
    """

    code = ErrorCode.DATA_INCONSISTENCY
    is_internal = True
