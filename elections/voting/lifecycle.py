# elections/voting/lifecycle.py

# Election lifecycle: draft -> scheduled -> ongoing -> closed.
#
# Every transition, manual or time-driven, is a single conditional UPDATE
# guarded on the status it leaves from. A transition whose guard no longer
# matches (because the scheduler or another admin got there first) touches no
# rows and is reported as a state conflict. started_at / closed_at are only
# ever written by UPDATEs guarded on IS NULL, so whichever writer lands first
# wins and later ones are no-ops.

import logging
from datetime import timedelta

from sqlalchemy import case, func

from elections import db
from elections.database.models import (
    Candidate, Election, ElectionStatus, EligibleVoter, Vote, utc_now,
)
from elections.errors import NotFoundError, StateConflictError, ValidationError

logger = logging.getLogger(__name__)

# Clock skew allowance when creating an election that starts "now"
CREATE_START_GRACE = timedelta(seconds=60)

EDITABLE_FIELDS = ('title', 'position_name', 'description', 'start_time', 'end_time')


def get_election(election_id):
    election = db.session.get(Election, election_id)
    if election is None:
        raise NotFoundError("Election not found")
    return election


def _guarded_update(election_id, from_statuses, values, *criteria):
    """Apply `values` only if the election is still in one of `from_statuses`.

    Returns the refreshed election, or raises StateConflictError when the
    guard matched nothing.
    """
    matched = (
        Election.query
        .filter(Election.id == election_id, Election.status.in_(from_statuses), *criteria)
        .update(values, synchronize_session=False)
    )
    if matched != 1:
        db.session.rollback()
        raise StateConflictError("Election state changed concurrently, please retry")
    db.session.commit()
    return get_election(election_id)


def create_election(title, position_name, start_time, end_time, created_by,
                    description='', now=None):
    now = now or utc_now()
    if start_time < now - CREATE_START_GRACE:
        raise ValidationError("startTime cannot be in the past", status_code=422)
    if start_time >= end_time:
        raise ValidationError("startTime must be before endTime", status_code=422)

    election = Election(
        title=title,
        position_name=position_name,
        description=description or '',
        status=ElectionStatus.DRAFT,
        start_time=start_time,
        end_time=end_time,
        public_results=False,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    db.session.add(election)
    db.session.commit()
    logger.info("Election %s created by user %s", election.id, created_by)
    return election


def update_election(election_id, changes, now=None):
    """Edit title/position/description/times; only allowed while draft."""
    now = now or utc_now()
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    election = get_election(election_id)

    if election.status != ElectionStatus.DRAFT:
        raise StateConflictError("Election can only be edited while it is in draft state")
    if not changes:
        raise ValidationError("Update fields are empty")

    start = changes.get('start_time', election.start_time)
    end = changes.get('end_time', election.end_time)
    if 'start_time' in changes and start < now:
        raise ValidationError("startTime cannot be in the past", status_code=422)
    if start >= end:
        raise ValidationError("startTime must be before endTime", status_code=422)

    values = {getattr(Election, k): v for k, v in changes.items()}
    values[Election.updated_at] = now
    election = _guarded_update(election_id, [ElectionStatus.DRAFT], values)
    logger.info("Election %s updated: %s", election_id, sorted(changes))
    return election


def schedule_election(election_id, now=None):
    now = now or utc_now()
    election = get_election(election_id)

    if election.status != ElectionStatus.DRAFT:
        raise StateConflictError("Only draft elections can be moved to scheduled")
    if election.start_time is None or election.end_time is None:
        raise ValidationError(
            "Election must have startTime and endTime set before scheduling", status_code=422,
        )
    if election.start_time <= now:
        raise ValidationError(
            "startTime must be in the future to schedule the election", status_code=422,
        )
    if election.end_time <= election.start_time:
        raise ValidationError("endTime must be after startTime", status_code=422)

    return _guarded_update(
        election_id, [ElectionStatus.DRAFT],
        {Election.status: ElectionStatus.SCHEDULED, Election.updated_at: now},
        Election.start_time > now,
    )


def force_start(election_id, now=None):
    """Start a scheduled election immediately; start_time becomes now."""
    now = now or utc_now()
    election = get_election(election_id)

    if election.status == ElectionStatus.CLOSED:
        raise StateConflictError("Cannot start a closed election")
    if election.status == ElectionStatus.ONGOING:
        raise StateConflictError("Election is already ongoing")
    if election.status != ElectionStatus.SCHEDULED:
        raise StateConflictError("Election must be scheduled before it can be force-started")
    if election.end_time <= now:
        raise ValidationError(
            "Cannot start election because endTime has already passed", status_code=422,
        )

    return _guarded_update(
        election_id, [ElectionStatus.SCHEDULED],
        {
            Election.status: ElectionStatus.ONGOING,
            Election.start_time: now,
            Election.started_at: now,
            Election.updated_at: now,
        },
        Election.end_time > now,
        Election.started_at.is_(None),
    )


def force_close(election_id, now=None):
    """Close any non-closed election now.

    end_time moves to now unless the election has not reached its planned
    start yet, in which case end_time keeps its planned value so that
    start_time < end_time still holds; closed_at records the real close.
    """
    now = now or utc_now()
    election = get_election(election_id)

    if election.status == ElectionStatus.CLOSED:
        raise StateConflictError("Election is already closed")

    return _guarded_update(
        election_id,
        [ElectionStatus.DRAFT, ElectionStatus.SCHEDULED, ElectionStatus.ONGOING],
        {
            Election.status: ElectionStatus.CLOSED,
            Election.end_time: case((Election.start_time < now, now), else_=Election.end_time),
            Election.closed_at: now,
            Election.updated_at: now,
        },
        Election.closed_at.is_(None),
    )


def publish_results(election_id, now=None):
    now = now or utc_now()
    election = get_election(election_id)

    if election.status != ElectionStatus.CLOSED:
        raise StateConflictError("Results can only be published after the election is closed")
    if election.public_results:
        raise StateConflictError("Results are already public")

    return _guarded_update(
        election_id, [ElectionStatus.CLOSED],
        {Election.public_results: True, Election.updated_at: now},
        Election.public_results.is_(False),
    )


def apply_time_transitions(now=None):
    """Auto-start and auto-close every election whose time has come.

    Each step is one bulk conditional UPDATE, so re-running it is harmless.
    Returns the number of rows each step touched.
    """
    now = now or utc_now()
    try:
        started = (
            Election.query
            .filter(
                Election.status.in_([ElectionStatus.DRAFT, ElectionStatus.SCHEDULED]),
                Election.start_time <= now,
                Election.end_time > now,
            )
            .update({Election.status: ElectionStatus.ONGOING, Election.updated_at: now},
                    synchronize_session=False)
        )
        started_at_filled = (
            Election.query
            .filter(Election.status == ElectionStatus.ONGOING, Election.started_at.is_(None))
            .update({Election.started_at: Election.start_time}, synchronize_session=False)
        )
        closed = (
            Election.query
            .filter(Election.status != ElectionStatus.CLOSED, Election.end_time <= now)
            .update({Election.status: ElectionStatus.CLOSED, Election.updated_at: now},
                    synchronize_session=False)
        )
        closed_at_filled = (
            Election.query
            .filter(Election.status == ElectionStatus.CLOSED, Election.closed_at.is_(None))
            .update({Election.closed_at: Election.end_time}, synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {
        'started': started,
        'startedAtFilled': started_at_filled,
        'closed': closed,
        'closedAtFilled': closed_at_filled,
    }


# Queries


def _count_by_election(column):
    rows = db.session.query(column, func.count()).group_by(column).all()
    return dict(rows)


def list_elections():
    """All elections, newest first, with candidate and roster counts."""
    elections = Election.query.order_by(Election.created_at.desc(), Election.id.desc()).all()
    candidate_counts = _count_by_election(Candidate.election_id)
    eligible_counts = _count_by_election(EligibleVoter.election_id)
    listed = []
    for election in elections:
        entry = election.to_dict()
        entry['candidateCount'] = candidate_counts.get(election.id, 0)
        entry['eligibleCount'] = eligible_counts.get(election.id, 0)
        listed.append(entry)
    return listed


def election_details(election_id):
    election = get_election(election_id)
    candidates = Candidate.query.filter_by(election_id=election_id).order_by(Candidate.id).all()
    return {
        'election': election.to_dict(),
        'stats': {
            'totalCandidates': len(candidates),
            'totalVotes': Vote.query.filter_by(election_id=election_id).count(),
            'eligibleCount': EligibleVoter.query.filter_by(election_id=election_id).count(),
        },
        'candidates': [c.to_dict() for c in candidates],
    }


def active_elections(now=None):
    now = now or utc_now()
    elections = (
        Election.query
        .filter(
            Election.status.in_([ElectionStatus.SCHEDULED, ElectionStatus.ONGOING]),
            Election.end_time > now,
        )
        .order_by(Election.start_time.asc())
        .all()
    )
    return {
        'scheduled': [e.to_dict() for e in elections if e.status == ElectionStatus.SCHEDULED],
        'ongoing': [e.to_dict() for e in elections if e.status == ElectionStatus.ONGOING],
    }


def public_elections():
    elections = (
        Election.query
        .filter(Election.status == ElectionStatus.CLOSED, Election.public_results.is_(True))
        .order_by(Election.created_at.desc(), Election.id.desc())
        .all()
    )
    return [e.to_dict() for e in elections]


def ballot(election_id):
    election = get_election(election_id)
    if election.status != ElectionStatus.ONGOING:
        raise StateConflictError("Election is not open for voting")
    candidates = Candidate.query.filter_by(election_id=election_id).order_by(Candidate.id).all()
    return {
        'election': {
            'id': election.id,
            'title': election.title,
            'positionName': election.position_name,
            'status': election.status,
        },
        'candidates': [{'id': c.id, 'displayName': c.display_name} for c in candidates],
    }
