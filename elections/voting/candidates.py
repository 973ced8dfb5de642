# elections/voting/candidates.py

from sqlalchemy.exc import IntegrityError

from elections import db
from elections.database.models import Candidate, ElectionStatus, Vote, utc_now
from elections.errors import NotFoundError, StateConflictError
from elections.voting.lifecycle import get_election


def list_candidates(election_id):
    election = get_election(election_id)
    candidates = Candidate.query.filter_by(election_id=election_id).order_by(Candidate.id).all()
    return election, candidates


def create_candidate(election_id, display_name, manifesto='', photo_url=None, now=None):
    now = now or utc_now()
    election = get_election(election_id)

    if election.status == ElectionStatus.CLOSED:
        raise StateConflictError("Cannot add candidates. Election is already closed.")
    if election.status == ElectionStatus.ONGOING:
        raise StateConflictError("Cannot add candidates after voting has started.")
    if election.status != ElectionStatus.DRAFT:
        raise StateConflictError("Candidates can only be added while the election is in draft")

    candidate = Candidate(
        election_id=election_id,
        display_name=display_name,
        manifesto=manifesto or '',
        photo_url=photo_url or None,
        created_at=now,
        updated_at=now,
    )
    db.session.add(candidate)
    db.session.commit()
    return candidate


def vote_count(candidate_id):
    return Vote.query.filter_by(candidate_id=candidate_id).count()


def delete_candidate(candidate_id):
    """Delete a candidate that has no votes from a draft election."""
    candidate = db.session.get(Candidate, candidate_id)
    if candidate is None:
        raise NotFoundError("Candidate not found")

    votes = vote_count(candidate.id)
    if votes > 0:
        raise StateConflictError(f"Cannot delete candidate: {votes} vote(s) already recorded")

    election = get_election(candidate.election_id)
    if election.status != ElectionStatus.DRAFT:
        raise StateConflictError(
            "Cannot delete candidate after election setup has finished "
            "(only allowed in draft status)"
        )

    db.session.delete(candidate)
    try:
        db.session.commit()
    except IntegrityError:
        # A vote row still references it
        db.session.rollback()
        raise StateConflictError(
            f"Cannot delete candidate: {vote_count(candidate_id)} vote(s) already recorded"
        )
    return candidate_id
