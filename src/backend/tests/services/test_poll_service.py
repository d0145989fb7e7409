"""
Tests for poll phase transitions, results and ballot lookups.
"""

from datetime import datetime, timedelta, timezone

import pytest


async def _cast(voting_core, identity, poll, order):
    token = await voting_core.issue_voter_token(identity, poll.id)
    return await voting_core.cast_vote(token, poll.id, [f"{poll.title}-{p}" for p in order])


@pytest.mark.unit
class TestStartVotingPhase:
    """Tests for start_voting_phase."""

    async def test_starts_voting(self, voting_core, make_poll, repos) -> None:
        """Test that the voting phase starts with an end at midnight."""
        poll = make_poll(status="elaboration")

        result = await voting_core.start_voting_phase(poll.id)

        assert result.status == "voting"
        assert {p.status for p in result.proposals} == {"voting"}
        end = poll.voting_end_at
        assert (end.hour, end.minute, end.second) == (0, 0, 0)
        assert timedelta(days=13) < end - poll.voting_start_at <= timedelta(days=14)

    async def test_needs_two_proposals(self, voting_core, make_poll) -> None:
        """Test that voting needs at least two proposals."""
        from core.exceptions import InvalidPollStatusError

        poll = make_poll(status="elaboration", proposals=("A",))

        with pytest.raises(InvalidPollStatusError):
            await voting_core.start_voting_phase(poll.id)
        assert poll.status == "elaboration"

    async def test_only_from_elaboration(self, voting_core, make_poll) -> None:
        """Test that voting only starts from elaboration."""
        from core.exceptions import InvalidPollStatusError

        poll = make_poll()

        with pytest.raises(InvalidPollStatusError):
            await voting_core.start_voting_phase(poll.id)


@pytest.mark.unit
class TestFinishVotingPhase:
    """Tests for finish_voting_phase and results."""

    async def test_winner_becomes_law(self, voting_core, voter, make_poll, repos) -> None:
        """Test that the winner becomes law and the others lose."""
        poll = make_poll()
        for name, order in (("v1", "ABC"), ("v2", "ABC"), ("v3", "BAC")):
            await _cast(voting_core, await voter(name), poll, list(order))

        winner_id = await voting_core.finish_voting_phase(poll.id)

        assert winner_id == "poll-A"
        assert poll.status == "finished"
        assert poll.winner_id == "poll-A"
        assert poll.duel_matrix == [[0, 2, 3], [1, 0, 3], [0, 0, 0]]
        statuses = {p.id: p.status for p in repos.tables["proposals"].rows.values()}
        assert statuses == {"poll-A": "law", "poll-B": "lost", "poll-C": "lost"}

    async def test_without_ballots_nobody_wins(self, voting_core, make_poll, repos) -> None:
        """Test that a poll without ballots has no winner."""
        poll = make_poll()

        assert await voting_core.finish_voting_phase(poll.id) is None
        assert poll.status == "finished"
        assert {p.status for p in repos.tables["proposals"].rows.values()} == {"lost"}

    async def test_condorcet_cycle(self, voting_core, voter, make_poll) -> None:
        """Test finishing a poll whose ballots form a Condorcet cycle."""
        poll = make_poll()
        for name, order in (("v1", "ABC"), ("v2", "BCA"), ("v3", "CAB")):
            await _cast(voting_core, await voter(name), poll, list(order))

        winner_id = await voting_core.finish_voting_phase(poll.id)
        results = await voting_core.get_poll_results(poll.id)

        assert winner_id == "poll-A"
        assert results.unique_winner is False
        assert results.winner_ids == ["poll-A", "poll-B", "poll-C"]
        assert results.num_ballots == 3

    async def test_only_in_voting(self, voting_core, make_poll) -> None:
        """Test that only a poll in voting can be finished."""
        from core.exceptions import InvalidPollStatusError

        poll = make_poll(status="elaboration")

        with pytest.raises(InvalidPollStatusError):
            await voting_core.finish_voting_phase(poll.id)

    async def test_results_only_when_finished(self, voting_core, make_poll) -> None:
        """Test that results are only published for finished polls."""
        from core.exceptions import InvalidPollStatusError

        poll = make_poll()

        with pytest.raises(InvalidPollStatusError):
            await voting_core.get_poll_results(poll.id)

    async def test_calc_winner_does_not_change_poll(self, voting_core, voter, make_poll) -> None:
        """Test that calculating the winner leaves the poll unchanged."""
        poll = make_poll()
        await _cast(voting_core, await voter("v1"), poll, ["B", "A"])

        result = await voting_core.calc_winner_of_poll(poll.id)

        assert result.winner_ids == ["poll-B"]
        assert poll.status == "voting"
        assert poll.duel_matrix is None

    async def test_finish_expired_polls(self, voting_core, make_poll) -> None:
        """Test that only polls whose voting ended are finished."""
        now = datetime.now(timezone.utc)
        ended = make_poll("ended", voting_end_at=now - timedelta(minutes=1))
        running = make_poll("running", voting_end_at=now + timedelta(days=1))

        assert await voting_core.finish_expired_polls() == 1
        assert ended.status == "finished"
        assert running.status == "voting"
        assert await voting_core.finish_expired_polls() == 0


@pytest.mark.unit
class TestBallotLookups:
    """Tests for ballot lookups by token, checksum and identity."""

    async def test_get_ballot_for_checksum(self, voting_core, voter, make_poll) -> None:
        """Test ballot lookup by checksum."""
        poll = make_poll()
        response = await _cast(voting_core, await voter("alice"), poll, ["A", "B"])

        ballot = await voting_core.get_ballot_for_checksum(poll.id, response.ballot.checksum)
        verified = await voting_core.verify_ballot(poll.id, response.ballot.checksum)

        assert ballot == response.ballot
        assert verified == response.ballot

    async def test_unknown_checksum(self, voting_core, make_poll) -> None:
        """Test that an unknown checksum cannot be verified."""
        from core.exceptions import NotFoundError

        poll = make_poll()

        assert await voting_core.get_ballot_for_checksum(poll.id, "0" * 64) is None
        with pytest.raises(NotFoundError):
            await voting_core.verify_ballot(poll.id, "0" * 64)

    async def test_checksum_is_independent_of_level(self, voting_core, voter, make_poll) -> None:
        """Test that a proxy ballot has the checksum of an own ballot."""
        alice, bob = await voter("alice"), await voter("bob")
        await voting_core.become_public_proxy(bob)
        await voting_core.delegate_to(alice, bob)
        poll = make_poll()
        await _cast(voting_core, bob, poll, ["A", "B"])
        by_proxy = await voting_core.get_ballot_of_identity(poll.id, alice)

        await _cast(voting_core, alice, poll, ["A", "B"])
        own = await voting_core.get_ballot_of_identity(poll.id, alice)

        assert (by_proxy.level, own.level) == (1, 0)
        assert by_proxy.checksum == own.checksum

    async def test_get_ballot_for_token(self, voting_core, voter, make_poll) -> None:
        """Test ballot lookup by voter token."""
        alice = await voter("alice")
        poll = make_poll()
        await _cast(voting_core, alice, poll, ["C"])
        token = await voting_core.issue_voter_token(alice, poll.id)

        ballot = await voting_core.get_ballot_for_token(poll.id, token)

        assert ballot.vote_order == ["poll-C"]

    async def test_get_ballot_of_identity_not_in_elaboration(self, voting_core, voter, make_poll) -> None:
        """Test that ballots cannot be read during elaboration."""
        from core.exceptions import InvalidPollStatusError

        alice = await voter("alice")
        poll = make_poll(status="elaboration")

        with pytest.raises(InvalidPollStatusError):
            await voting_core.get_ballot_of_identity(poll.id, alice)
