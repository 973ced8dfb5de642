import pytest

from elections.database.models import ElectionStatus, Vote
from elections.errors import (
    DuplicateError, EligibilityError, NotFoundError, StateConflictError, ValidationError,
)
from elections.voting import ballot_box, lifecycle


@pytest.fixture
def open_election(make_election, add_candidate):
    election = make_election(status=ElectionStatus.ONGOING)
    alice = add_candidate(election, "Alice")
    bob = add_candidate(election, "Bob")
    return election, alice, bob


def test_scenario_second_vote_rejected(open_election, make_user, enrol):
    election, alice, bob = open_election
    voter = make_user()
    enrol(election, voter.srn)

    vote = ballot_box.cast_vote(election.id, voter.id, alice.id)
    assert vote.position_name == election.position_name
    assert ballot_box.has_voted(election.id, voter.id)

    with pytest.raises(DuplicateError):
        ballot_box.cast_vote(election.id, voter.id, bob.id)
    assert Vote.query.filter_by(election_id=election.id).count() == 1


def test_ineligible_voter(open_election, make_user):
    election, alice, _ = open_election
    with pytest.raises(EligibilityError):
        ballot_box.cast_vote(election.id, make_user().id, alice.id)


def test_unknown_voter(open_election):
    election, alice, _ = open_election
    with pytest.raises(NotFoundError):
        ballot_box.cast_vote(election.id, 999, alice.id)


def test_missing_candidate_id(open_election, make_user, enrol):
    election, _, _ = open_election
    voter = make_user()
    enrol(election, voter.srn)
    with pytest.raises(ValidationError):
        ballot_box.cast_vote(election.id, voter.id, None)


@pytest.mark.parametrize("status", [
    ElectionStatus.DRAFT, ElectionStatus.SCHEDULED, ElectionStatus.CLOSED,
])
def test_election_not_open(make_election, add_candidate, make_user, enrol, status):
    election = make_election(status=status)
    candidate = add_candidate(election, "Alice")
    voter = make_user()
    enrol(election, voter.srn)
    with pytest.raises(StateConflictError):
        ballot_box.cast_vote(election.id, voter.id, candidate.id)


def test_candidate_from_another_election(open_election, make_election, add_candidate,
                                         make_user, enrol):
    election, _, _ = open_election
    other = make_election(status=ElectionStatus.ONGOING)
    stranger = add_candidate(other, "Mallory")
    voter = make_user()
    enrol(election, voter.srn)

    with pytest.raises(ValidationError) as exc:
        ballot_box.cast_vote(election.id, voter.id, stranger.id)
    assert exc.value.message == "Invalid candidate"


def test_non_numeric_candidate(open_election, make_user, enrol):
    election, _, _ = open_election
    voter = make_user()
    enrol(election, voter.srn)
    with pytest.raises(ValidationError):
        ballot_box.cast_vote(election.id, voter.id, "alice")


def test_duplicate_reported_before_candidate_check(open_election, make_user, enrol):
    election, alice, _ = open_election
    voter = make_user()
    enrol(election, voter.srn)
    ballot_box.cast_vote(election.id, voter.id, alice.id)
    with pytest.raises(DuplicateError):
        ballot_box.cast_vote(election.id, voter.id, 424242)


def test_unique_constraint_catches_race(open_election, make_user, enrol, monkeypatch):
    """Two casts that both pass the friendly check still leave one vote."""
    election, alice, bob = open_election
    voter = make_user()
    enrol(election, voter.srn)
    ballot_box.cast_vote(election.id, voter.id, alice.id)

    monkeypatch.setattr(ballot_box, "has_voted", lambda election_id, voter_id: False)
    with pytest.raises(DuplicateError):
        ballot_box.cast_vote(election.id, voter.id, bob.id)
    assert Vote.query.filter_by(election_id=election.id, voter_id=voter.id).count() == 1


def test_same_voter_in_two_elections(make_election, add_candidate, make_user, enrol):
    first = make_election(status=ElectionStatus.ONGOING)
    second = make_election(status=ElectionStatus.ONGOING, position_name="Treasurer")
    voter = make_user()
    enrol(first, voter.srn)
    enrol(second, voter.srn)

    ballot_box.cast_vote(first.id, voter.id, add_candidate(first, "Alice").id)
    vote = ballot_box.cast_vote(second.id, voter.id, add_candidate(second, "Bob").id)
    assert vote.position_name == "Treasurer"


class TestVoteRoute:
    def test_cast_and_repeat(self, client, auth_header, open_election, make_user, enrol):
        election, alice, _ = open_election
        voter = make_user()
        enrol(election, voter.srn)
        url = f"/user/elections/{election.id}/vote"

        resp = client.post(url, json={"candidateId": alice.id}, headers=auth_header(voter))
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert body["data"]["vote"]["candidateId"] == alice.id

        again = client.post(url, json={"candidateId": alice.id}, headers=auth_header(voter))
        assert again.status_code == 409
        assert again.get_json()["message"] == "You have already voted in this election"

    def test_not_eligible(self, client, auth_header, open_election, make_user):
        election, alice, _ = open_election
        resp = client.post(f"/user/elections/{election.id}/vote", json={"candidateId": alice.id},
                           headers=auth_header(make_user()))
        assert resp.status_code == 403


@pytest.mark.parametrize("raw", [True, 1.9, 1.0, "1.9", "-1", [1]])
def test_malformed_candidate_id_is_invalid(open_election, make_user, enrol, raw):
    election, alice, _ = open_election
    assert alice.id == 1
    voter = make_user()
    enrol(election, voter.srn)

    with pytest.raises(ValidationError) as exc:
        ballot_box.cast_vote(election.id, voter.id, raw)
    assert exc.value.message == "Invalid candidate"
    assert Vote.query.filter_by(election_id=election.id).count() == 0


@pytest.mark.parametrize("raw", ["", "   "])
def test_blank_candidate_id_is_missing(open_election, make_user, enrol, raw):
    election, alice, _ = open_election
    voter = make_user()
    enrol(election, voter.srn)
    ballot_box.cast_vote(election.id, voter.id, alice.id)

    # Reported as missing before the already-voted check runs
    with pytest.raises(ValidationError) as exc:
        ballot_box.cast_vote(election.id, voter.id, raw)
    assert exc.value.message == "candidateId is required"


def test_digit_string_candidate_id(open_election, make_user, enrol):
    election, _, bob = open_election
    voter = make_user()
    enrol(election, voter.srn)
    vote = ballot_box.cast_vote(election.id, voter.id, f" {bob.id} ")
    assert vote.candidate_id == bob.id


def test_close_between_check_and_insert_leaves_no_vote(open_election, make_user, enrol,
                                                       monkeypatch):
    election, alice, _ = open_election
    voter = make_user()
    enrol(election, voter.srn)
    election_id = election.id

    class _SeenOngoing:
        id = election_id
        status = ElectionStatus.ONGOING
        position_name = "President"

    # The status read still sees ongoing; the row has already been closed
    lifecycle.force_close(election_id)
    monkeypatch.setattr(ballot_box, "_lock_election", lambda eid: _SeenOngoing())

    with pytest.raises(StateConflictError):
        ballot_box.cast_vote(election_id, voter.id, alice.id)
    assert Vote.query.filter_by(election_id=election_id).count() == 0
