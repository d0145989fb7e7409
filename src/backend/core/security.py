"""Security utilities for anonymous voting.

Implements the one-way hashes that keep ballots unlinkable to voters:

- right to vote id   = SHA3-256(user_id : email : credential_secret : HASH_SECRET)
- hashed voter token = SHA3-256(plain_token : poll_id : HASH_SECRET)
- ballot checksum    = SHA3-256(vote_order : poll_id : right_to_vote_id)

The right to vote id and the hashed voter token are computed from different
inputs, so a voter token is never a stable per-voter identifier across polls.
"""

import hashlib
import secrets
from collections.abc import Sequence

from core.config import settings

# Plain voter tokens shorter than this are rejected without a database lookup
MIN_VOTER_TOKEN_LENGTH = 10

# Length of a SHA3-256 hex digest
CHECKSUM_LENGTH = 64


def _sha3_hex(data: str) -> str:
    return hashlib.sha3_256(data.encode("utf-8")).hexdigest()


def calc_right_to_vote_id(user_id: str, email: str, credential_secret: str) -> str:
    """
    Derive the id of a voter's RightToVote.

    Only the server can compute this, because HASH_SECRET is part of the input.
    It is not possible to go the other way round and find the voter of a
    given right to vote.

    Args:
        user_id: The voter's unique identifier
        email: The voter's email address
        credential_secret: A value only the voter's credential knows (e.g. passkey id)

    Returns:
        A SHA3-256 hex digest
    """
    return _sha3_hex(f"{user_id}:{email.lower().strip()}:{credential_secret}:{settings.HASH_SECRET}")


def generate_plain_voter_token() -> str:
    """Generate a fresh random voter token. It is returned to the voter only."""
    return secrets.token_urlsafe(32)


def calc_hashed_voter_token(plain_voter_token: str, poll_id: str) -> str:
    """
    Hash a plain voter token for storage and lookup.

    The poll id is part of the hash, so a token issued for one poll never
    matches a token record of another poll.
    """
    return _sha3_hex(f"{plain_voter_token}:{poll_id}:{settings.HASH_SECRET}")


def calc_ballot_checksum(vote_order: Sequence[str], poll_id: str, right_to_vote_id: str) -> str:
    """
    Content checksum of a ballot.

    Deliberately independent of the ballot's level and of any delegation, so a
    voter can verify that their preference was counted no matter who cast it.
    """
    return _sha3_hex(f"{','.join(vote_order)}:{poll_id}:{right_to_vote_id}")


def is_plausible_voter_token(plain_voter_token: str | None) -> bool:
    """Cheap format check before any hashing or lookup."""
    return bool(plain_voter_token) and len(plain_voter_token) >= MIN_VOTER_TOKEN_LENGTH
