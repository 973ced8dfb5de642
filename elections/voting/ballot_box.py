# elections/voting/ballot_box.py

# Append-only vote ledger: one vote per voter per election

import logging

from sqlalchemy import insert, literal, select
from sqlalchemy.exc import IntegrityError

from elections import db
from elections.database.models import Candidate, Election, ElectionStatus, User, Vote, utc_now
from elections.errors import (
    DuplicateError, EligibilityError, NotFoundError, StateConflictError, ValidationError,
)
from elections.voting.roster import is_eligible

logger = logging.getLogger(__name__)


def has_voted(election_id, voter_id):
    return db.session.query(
        Vote.query.filter_by(election_id=election_id, voter_id=voter_id).exists()
    ).scalar()


def _candidate_id(value):
    """Parse a submitted candidate id.

    Returns None when nothing was submitted. Only ints and all-digit strings
    are ids; booleans, floats and other strings are an invalid candidate.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if not value.isdigit():
            raise ValidationError("Invalid candidate")
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Invalid candidate")
    return value


def _lock_election(election_id):
    # Row lock on backends that support it; force-close and the daemon wait
    return Election.query.filter_by(id=election_id).with_for_update().first()


def cast_vote(election_id, voter_id, candidate_id, now=None):
    """Record a vote. Checks run in a fixed order and the first failure wins.

    The has_voted() check only produces a friendly error early; the unique
    constraint on (election_id, voter_id) is what actually stops a second
    vote when two casts race. The insert itself is conditional on the
    election still being ongoing, so a close that lands between the status
    check and the insert leaves no vote behind.
    """
    now = now or utc_now()

    voter = db.session.get(User, voter_id)
    if voter is None:
        raise NotFoundError("User not found")

    if not is_eligible(election_id, voter.srn):
        raise EligibilityError("You are not eligible to vote in this election")

    candidate_id = _candidate_id(candidate_id)
    if candidate_id is None:
        raise ValidationError("candidateId is required")

    election = _lock_election(election_id)
    if election is None:
        raise NotFoundError("Election not found")

    if election.status != ElectionStatus.ONGOING:
        db.session.rollback()
        raise StateConflictError("Voting is not open for this election")

    if has_voted(election_id, voter_id):
        db.session.rollback()
        raise DuplicateError("You have already voted in this election")

    candidate = Candidate.query.filter_by(id=candidate_id, election_id=election_id).first()
    if candidate is None:
        db.session.rollback()
        raise ValidationError("Invalid candidate")

    # position_name is snapshotted from the election row the guard matched
    stmt = insert(Vote).from_select(
        ['election_id', 'position_name', 'candidate_id', 'voter_id', 'cast_at'],
        select(
            Election.id,
            Election.position_name,
            literal(candidate.id, type_=db.Integer),
            literal(voter_id, type_=db.Integer),
            literal(now, type_=db.DateTime),
        ).where(Election.id == election_id, Election.status == ElectionStatus.ONGOING),
    )
    try:
        inserted = db.session.execute(stmt).rowcount
        if inserted != 1:
            db.session.rollback()
            raise StateConflictError("Voting is not open for this election")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("You have already voted in this election")

    vote = Vote.query.filter_by(election_id=election_id, voter_id=voter_id).one()
    logger.info("Vote %s recorded in election %s", vote.id, election_id)
    return vote
