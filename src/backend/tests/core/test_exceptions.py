"""
Tests for voting core exceptions.
"""

import pytest


@pytest.mark.unit
class TestVotingErrors:
    def test_to_dict(self) -> None:
        """Test serialization of an error."""
        from core.exceptions import CircularDelegationError

        error = CircularDelegationError("Would cause a circle.", {"proxy_id": "user-b"})

        assert error.to_dict() == {
            "error": "circular_delegation",
            "message": "Would cause a circle.",
            "payload": {"proxy_id": "user-b"},
        }

    def test_payload_defaults_to_empty_dict(self) -> None:
        """Test the default payload."""
        from core.exceptions import InvalidTokenError

        assert InvalidTokenError("nope").payload == {}

    def test_only_data_inconsistency_is_internal(self) -> None:
        """Test that only data inconsistency is internal."""
        from core.exceptions import (
            CannotCastVoteError,
            DataInconsistencyError,
            NotEligibleError,
            VotingError,
        )

        assert DataInconsistencyError("corrupt").is_internal is True
        assert NotEligibleError("no").is_internal is False
        assert CannotCastVoteError("no").is_internal is False
        assert isinstance(DataInconsistencyError("corrupt"), VotingError)

    def test_error_codes_are_distinct(self) -> None:
        """Test that every error has its own code."""
        from core.exceptions import VotingError

        codes = [cls.code for cls in VotingError.__subclasses__()]
        assert len(codes) == len(set(codes))
